"""用户认证API - 注册、登录与当前用户。"""

from datetime import date
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Form, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from portal.dependencies import get_db, get_token_service
from portal.errors import Unauthenticated
from portal.models import User, UserRole
from portal.services.identity import Caller, TokenService, ensure_role
from portal.services.users import UserService

router = APIRouter()
users = UserService()


# === Schemas ===

class Token(BaseModel):
    access_token: str
    token_type: str
    user_id: int
    role: UserRole


class UserCreate(BaseModel):
    name: str
    email: str
    national_id: str
    birth_date: date
    phone: str
    country: str
    city: str
    state: str
    street: Optional[str] = None
    avenue: Optional[str] = None
    lot: Optional[str] = None
    number: Optional[str] = None
    password: str
    role: UserRole = UserRole.AUTHOR
    specialty: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    national_id: str
    birth_date: date
    phone: str
    country: str
    city: str
    state: str
    street: Optional[str]
    avenue: Optional[str]
    lot: Optional[str]
    number: Optional[str]
    role: UserRole
    specialty: Optional[str]

    class Config:
        from_attributes = True


# === 依赖 ===

async def get_current_caller(
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_token_service),
) -> Caller:
    """从 Bearer Token 解析调用方身份。"""

    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated()
    return tokens.verify(authorization[7:])


async def get_current_user(
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, caller.user_id)
    if user is None:
        raise Unauthenticated()
    return user


def require_roles(*roles: UserRole) -> Callable[..., Caller]:
    """生成要求特定角色的依赖。"""

    def dependency(caller: Caller = Depends(get_current_caller)) -> Caller:
        ensure_role(caller, *roles)
        return caller

    return dependency


# === API 端点 ===

@router.post("/register", response_model=UserResponse, status_code=201)
async def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """作者或评审自助注册。"""
    return users.register(db, user_data.model_dump(exclude={"role"}), user_data.role)


@router.post("/login", response_model=Token)
async def login(
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
):
    """用户登录，返回Token。"""
    user = users.authenticate(db, email, password)
    return {
        "access_token": tokens.create_token(user.id, user.role),
        "token_type": "bearer",
        "user_id": user.id,
        "role": user.role,
    }


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """获取当前登录用户信息。"""
    return current_user
