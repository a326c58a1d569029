"""项目API - 提交、修改、删除、查询与获奖排名。"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from portal.api.v1.auth import get_current_caller
from portal.config import Settings
from portal.dependencies import get_app_settings, get_db
from portal.models import Project, ProjectState
from portal.services import ranking
from portal.services.identity import Caller
from portal.services.projects import ProjectService

router = APIRouter()


def get_project_service(settings: Settings = Depends(get_app_settings)) -> ProjectService:
    return ProjectService(settings)


# === Schemas ===

class ProjectCreate(BaseModel):
    award_id: int
    title: str
    area: str
    abstract: str
    author_ids: List[int] = Field(default_factory=list)
    principal_author_id: Optional[int] = None  # 管理员代为提交时必填


class ProjectUpdate(BaseModel):
    award_id: Optional[int] = None
    title: Optional[str] = None
    area: Optional[str] = None
    abstract: Optional[str] = None
    author_ids: Optional[List[int]] = None


class AuthorSummary(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class EvaluationSummary(BaseModel):
    id: int
    evaluator_id: int
    evaluator_name: Optional[str] = None
    score: float
    opinion: str
    evaluated_at: datetime


class ProjectResponse(BaseModel):
    id: int
    area: str
    title: str
    abstract: str
    submitted_at: datetime
    evaluated: bool
    winner: bool
    state: ProjectState
    principal_author_id: int
    award_id: int
    authors: Optional[List[AuthorSummary]] = None
    evaluations: Optional[List[EvaluationSummary]] = None


class WinnerResponse(BaseModel):
    rank: int
    total_score: float
    evaluation_count: int
    project: ProjectResponse


# === Helpers ===

def _to_response(
    project: Project, with_authors: bool = False, with_evaluations: bool = False
) -> ProjectResponse:
    """按投影选项组装项目响应。"""
    response = ProjectResponse(
        id=project.id,
        area=project.area,
        title=project.title,
        abstract=project.abstract,
        submitted_at=project.submitted_at,
        evaluated=project.evaluated,
        winner=project.winner,
        state=project.state,
        principal_author_id=project.principal_author_id,
        award_id=project.award_id,
    )
    if with_authors:
        response.authors = [AuthorSummary.model_validate(author) for author in project.authors]
    if with_evaluations:
        response.evaluations = [
            EvaluationSummary(
                id=evaluation.id,
                evaluator_id=evaluation.evaluator_id,
                evaluator_name=evaluation.evaluator.name if evaluation.evaluator else None,
                score=float(evaluation.score),
                opinion=evaluation.opinion,
                evaluated_at=evaluation.evaluated_at,
            )
            for evaluation in project.evaluations
        ]
    return response


def _to_winners(items: List[ranking.RankedProject]) -> List[WinnerResponse]:
    return [
        WinnerResponse(
            rank=item.rank,
            total_score=float(item.total_score),
            evaluation_count=item.evaluation_count,
            project=_to_response(item.project),
        )
        for item in items
    ]


# === API 端点 ===

@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    evaluated: Optional[bool] = None,
    author_id: Optional[int] = None,
    award_id: Optional[int] = None,
    with_authors: bool = False,
    with_evaluations: bool = False,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: ProjectService = Depends(get_project_service),
):
    """项目列表；``author_id`` 传自己的 id 即为“我的项目”。"""
    projects = service.list_projects(
        db,
        evaluated=evaluated,
        author_id=author_id,
        award_id=award_id,
        with_authors=with_authors,
        with_evaluations=with_evaluations,
    )
    return [_to_response(p, with_authors, with_evaluations) for p in projects]


@router.get("/evaluated", response_model=List[ProjectResponse])
async def list_evaluated_projects(
    with_authors: bool = False,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: ProjectService = Depends(get_project_service),
):
    projects = service.list_evaluated(db, with_authors=with_authors)
    return [_to_response(p, with_authors) for p in projects]


@router.get("/not-evaluated", response_model=List[ProjectResponse])
async def list_not_evaluated_projects(
    with_authors: bool = False,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: ProjectService = Depends(get_project_service),
):
    """待评审的项目，供评审挑选。"""
    projects = service.list_not_evaluated(db, with_authors=with_authors)
    return [_to_response(p, with_authors) for p in projects]


@router.get("/winners", response_model=List[WinnerResponse])
async def list_winners(award_id: Optional[int] = None, db: Session = Depends(get_db)):
    """总分前三名，实时计算。"""
    return _to_winners(ranking.list_winners(db, award_id))


@router.post("/winners/refresh", response_model=List[WinnerResponse])
async def refresh_winners(
    award_id: Optional[int] = None,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """重新计算前三名并写回 winner 标记（管理员）。"""
    return _to_winners(ranking.refresh_winner_flags(db, caller, award_id))


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    with_authors: bool = True,
    with_evaluations: bool = False,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: ProjectService = Depends(get_project_service),
):
    project = service.get_project(db, project_id)
    return _to_response(project, with_authors, with_evaluations)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: ProjectCreate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: ProjectService = Depends(get_project_service),
):
    project = service.create_project(
        db,
        caller,
        award_id=payload.award_id,
        title=payload.title,
        area=payload.area,
        abstract=payload.abstract,
        author_ids=payload.author_ids,
        principal_author_id=payload.principal_author_id,
    )
    return _to_response(project, with_authors=True)


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    payload: ProjectUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: ProjectService = Depends(get_project_service),
):
    fields = {name: getattr(payload, name) for name in payload.model_fields_set}
    project = service.update_project(db, caller, project_id, fields)
    return _to_response(project, with_authors=True)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: ProjectService = Depends(get_project_service),
):
    service.delete_project(db, caller, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
