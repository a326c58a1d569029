"""奖项API - 公开列表只返回当前开放的奖项。"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from portal.api.v1.auth import get_current_caller, require_roles
from portal.dependencies import get_db
from portal.models import UserRole
from portal.services.awards import AwardService, SchedulePhase
from portal.services.identity import Caller

router = APIRouter()
awards = AwardService()


# === Schemas ===

class AwardCreate(BaseModel):
    name: str
    description: str
    year: int
    schedule: List[SchedulePhase] = Field(default_factory=list)


class AwardUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    year: Optional[int] = None
    schedule: Optional[List[SchedulePhase]] = None


class AwardResponse(BaseModel):
    id: int
    name: str
    description: str
    year: int
    schedule: List[SchedulePhase] = Field(validation_alias="schedule_json")
    created_by: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


# === API 端点 ===

@router.get("", response_model=List[AwardResponse])
async def list_active_awards(db: Session = Depends(get_db)):
    """当前开放的奖项。"""
    return awards.list_active_awards(db)


@router.get("/all", response_model=List[AwardResponse])
async def list_all_awards(
    caller: Caller = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    return awards.list_awards(db)


@router.get("/{award_id}", response_model=AwardResponse)
async def get_award(award_id: int, db: Session = Depends(get_db)):
    """按 id 查询奖项，不论是否开放。"""
    return awards.get_award(db, award_id)


@router.post("", response_model=AwardResponse, status_code=status.HTTP_201_CREATED)
async def create_award(
    payload: AwardCreate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return awards.create_award(
        db,
        caller,
        name=payload.name,
        description=payload.description,
        schedule=payload.schedule,
        year=payload.year,
    )


@router.put("/{award_id}", response_model=AwardResponse)
async def update_award(
    award_id: int,
    payload: AwardUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    fields = {name: getattr(payload, name) for name in payload.model_fields_set}
    return awards.update_award(db, caller, award_id, fields)


@router.delete("/{award_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_award(
    award_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    awards.delete_award(db, caller, award_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
