"""用户管理API。"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from portal.api.v1.auth import UserResponse, get_current_caller
from portal.dependencies import get_db
from portal.models import UserRole
from portal.services.identity import Caller
from portal.services.users import UserService

router = APIRouter()
users = UserService()


# === Schemas ===

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    national_id: Optional[str] = None
    birth_date: Optional[date] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    street: Optional[str] = None
    avenue: Optional[str] = None
    lot: Optional[str] = None
    number: Optional[str] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None
    specialty: Optional[str] = None


# === API 端点 ===

@router.get("/authors", response_model=List[UserResponse])
async def list_authors(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """作者列表，用于选择共同作者。"""
    return users.list_by_role(db, UserRole.AUTHOR)


@router.get("/evaluators", response_model=List[UserResponse])
async def list_evaluators(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return users.list_by_role(db, UserRole.EVALUATOR)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    return users.get_user(db, user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    """修改用户资料（本人或管理员）。"""
    return users.update_user(db, caller, user_id, payload.model_dump(exclude_unset=True))


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    users.delete_user(db, caller, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
