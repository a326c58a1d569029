"""评价API - 评审打分，达到 3 份后项目锁定。"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from portal.api.v1.auth import get_current_caller
from portal.config import Settings
from portal.dependencies import get_app_settings, get_db
from portal.models import Evaluation
from portal.services.evaluations import EvaluationService
from portal.services.identity import Caller

router = APIRouter()


def get_evaluation_service(settings: Settings = Depends(get_app_settings)) -> EvaluationService:
    return EvaluationService(settings)


# === Schemas ===

class EvaluationCreate(BaseModel):
    project_id: int
    score: float
    opinion: str
    evaluator_id: Optional[int] = None  # 管理员代评审提交时必填
    evaluated_at: Optional[datetime] = None


class EvaluationUpdate(BaseModel):
    score: Optional[float] = None
    opinion: Optional[str] = None
    project_id: Optional[int] = None
    evaluator_id: Optional[int] = None


class EvaluationResponse(BaseModel):
    id: int
    project_id: int
    evaluator_id: int
    score: float
    opinion: str
    evaluated_at: datetime
    project_evaluated: bool


# === Helpers ===

def _to_response(evaluation: Evaluation) -> EvaluationResponse:
    return EvaluationResponse(
        id=evaluation.id,
        project_id=evaluation.project_id,
        evaluator_id=evaluation.evaluator_id,
        score=float(evaluation.score),
        opinion=evaluation.opinion,
        evaluated_at=evaluation.evaluated_at,
        project_evaluated=evaluation.project.evaluated,
    )


# === API 端点 ===

@router.post("", response_model=EvaluationResponse, status_code=status.HTTP_201_CREATED)
async def submit_evaluation(
    payload: EvaluationCreate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: EvaluationService = Depends(get_evaluation_service),
):
    """提交评价。响应中的 ``project_evaluated`` 表示项目是否已锁定。"""
    evaluation = service.submit(
        db,
        caller,
        project_id=payload.project_id,
        score=payload.score,
        opinion=payload.opinion,
        evaluator_id=payload.evaluator_id,
        evaluated_at=payload.evaluated_at,
    )
    return _to_response(evaluation)


@router.get("", response_model=List[EvaluationResponse])
async def list_evaluations(
    project_id: Optional[int] = None,
    evaluator_id: Optional[int] = None,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: EvaluationService = Depends(get_evaluation_service),
):
    """评价列表；``evaluator_id`` 传自己的 id 即为“我的评价”。"""
    return [
        _to_response(evaluation)
        for evaluation in service.list(db, project_id=project_id, evaluator_id=evaluator_id)
    ]


@router.get("/{evaluation_id}", response_model=EvaluationResponse)
async def get_evaluation(
    evaluation_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: EvaluationService = Depends(get_evaluation_service),
):
    return _to_response(service.get(db, evaluation_id))


@router.put("/{evaluation_id}", response_model=EvaluationResponse)
async def update_evaluation(
    evaluation_id: int,
    payload: EvaluationUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: EvaluationService = Depends(get_evaluation_service),
):
    fields = {name: getattr(payload, name) for name in payload.model_fields_set}
    return _to_response(service.update(db, caller, evaluation_id, fields))


@router.delete("/{evaluation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_evaluation(
    evaluation_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
    service: EvaluationService = Depends(get_evaluation_service),
):
    service.delete(db, caller, evaluation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
