"""用户服务：注册、登录、资料维护与删除。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.errors import (
    Conflict,
    FieldValidationError,
    Forbidden,
    HasAssociatedProjects,
    HasEvaluations,
    NotFound,
    Unauthenticated,
)
from portal.models import Evaluation, Project, User, UserRole, project_authors
from portal.services.identity import Caller, hash_password, verify_password
from portal.utils.logging import get_logger
from portal.utils.text import clean_text, missing_fields

logger = get_logger(__name__)

REQUIRED_FIELDS = (
    "name",
    "email",
    "national_id",
    "birth_date",
    "phone",
    "country",
    "city",
    "state",
)
OPTIONAL_FIELDS = ("street", "avenue", "lot", "number", "specialty")
MIN_PASSWORD_LENGTH = 6


class UserService:
    """封装用户相关的查询与写入逻辑。"""

    def _validate_profile(self, values: Dict[str, Any], password: Optional[str]) -> None:
        errors = missing_fields({name: values.get(name) for name in REQUIRED_FIELDS})
        if password is not None and len(password) < MIN_PASSWORD_LENGTH:
            errors.append(f"password: 至少 {MIN_PASSWORD_LENGTH} 个字符")
        if values.get("role") == UserRole.EVALUATOR and clean_text(values.get("specialty")) is None:
            errors.append("specialty: 评审必须填写专长")
        if errors:
            raise FieldValidationError(errors)

    def _ensure_unique(
        self, db: Session, email: str, national_id: str, exclude_id: Optional[int] = None
    ) -> None:
        for column, value, label in (
            (User.email, email, "邮箱"),
            (User.national_id, national_id, "CPF"),
        ):
            query = select(User.id).where(column == value)
            if exclude_id is not None:
                query = query.where(User.id != exclude_id)
            if db.scalar(query) is not None:
                raise Conflict(f"{label} {value} 已被注册")

    def _commit_unique(self, db: Session) -> None:
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict("邮箱或 CPF 已被注册") from None

    def _ensure_role_change_allowed(self, db: Session, user: User) -> None:
        """已有评价的评审、已在作者名单中的作者都不能改角色。"""

        if user.role == UserRole.EVALUATOR:
            evaluation_count = db.scalar(
                select(func.count(Evaluation.id)).where(Evaluation.evaluator_id == user.id)
            )
            if evaluation_count:
                raise HasEvaluations(f"用户 {user.id} 已提交 {evaluation_count} 份评价，不能修改角色")
        if user.role == UserRole.AUTHOR:
            project_count = db.scalar(
                select(func.count()).select_from(project_authors).where(
                    project_authors.c.user_id == user.id
                )
            )
            if project_count:
                raise HasAssociatedProjects(f"用户 {user.id} 是 {project_count} 个项目的作者，不能修改角色")

    def create_user(self, db: Session, fields: Dict[str, Any], role: UserRole) -> User:
        """创建用户，不做调用方鉴权（由注册接口或初始化流程负责）。"""

        values = {name: fields.get(name) for name in REQUIRED_FIELDS + OPTIONAL_FIELDS}
        values["role"] = role
        password = fields.get("password") or ""
        self._validate_profile(values, password)

        email = clean_text(values["email"]).lower()
        national_id = clean_text(values["national_id"])
        self._ensure_unique(db, email, national_id)

        user = User(
            name=clean_text(values["name"]),
            email=email,
            national_id=national_id,
            birth_date=values["birth_date"],
            phone=clean_text(values["phone"]),
            country=clean_text(values["country"]),
            city=clean_text(values["city"]),
            state=clean_text(values["state"]),
            street=clean_text(values["street"]),
            avenue=clean_text(values["avenue"]),
            lot=clean_text(values["lot"]),
            number=clean_text(values["number"]),
            specialty=clean_text(values["specialty"]),
            password_hash=hash_password(password),
            role=role,
        )
        db.add(user)
        self._commit_unique(db)
        db.refresh(user)
        logger.info("user_created", user_id=user.id, role=role.value)
        return user

    def register(self, db: Session, fields: Dict[str, Any], role: UserRole) -> User:
        """公开注册，只允许作者与评审。"""

        if role == UserRole.ADMIN:
            raise Forbidden("管理员账号不能自行注册")
        return self.create_user(db, fields, role)

    def authenticate(self, db: Session, email: str, password: str) -> User:
        user = self.get_user_by_email(db, email)
        if not user or not verify_password(password, user.password_hash):
            raise Unauthenticated("邮箱或密码错误")
        return user

    def get_user(self, db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if not user:
            raise NotFound("用户", user_id)
        return user

    def get_user_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.scalar(select(User).where(User.email == email.strip().lower()))

    def list_by_role(self, db: Session, role: UserRole) -> List[User]:
        return list(db.scalars(select(User).where(User.role == role).order_by(User.id.asc())))

    def update_user(
        self, db: Session, caller: Caller, user_id: int, fields: Dict[str, Any]
    ) -> User:
        """本人或管理员可修改；角色只能由管理员修改。"""

        if caller.user_id != user_id and not caller.is_admin:
            raise Forbidden("只能修改自己的资料")
        user = self.get_user(db, user_id)

        new_role = fields.get("role") or user.role
        if new_role != user.role:
            if not caller.is_admin:
                raise Forbidden("只有管理员可以修改用户角色")
            self._ensure_role_change_allowed(db, user)

        values: Dict[str, Any] = {
            name: getattr(user, name) for name in REQUIRED_FIELDS + OPTIONAL_FIELDS
        }
        values.update({k: v for k, v in fields.items() if k in values})
        values["role"] = new_role
        password = fields.get("password")
        self._validate_profile(values, password)

        email = clean_text(values["email"]).lower()
        national_id = clean_text(values["national_id"])
        self._ensure_unique(db, email, national_id, exclude_id=user.id)

        for name in REQUIRED_FIELDS + OPTIONAL_FIELDS:
            value = values[name]
            setattr(user, name, clean_text(value) if isinstance(value, str) else value)
        user.email = email
        user.role = new_role
        if password:
            user.password_hash = hash_password(password)

        self._commit_unique(db)
        db.refresh(user)
        return user

    def delete_user(self, db: Session, caller: Caller, user_id: int) -> None:
        """删除用户，同时移除其共同作者关系。

        已有评价的评审、或作为第一作者的用户不能删除。
        """

        if caller.user_id != user_id and not caller.is_admin:
            raise Forbidden("只能删除自己的账号")
        user = self.get_user(db, user_id)

        evaluation_count = db.scalar(
            select(func.count(Evaluation.id)).where(Evaluation.evaluator_id == user_id)
        )
        if evaluation_count:
            raise HasEvaluations(f"用户 {user_id} 已提交 {evaluation_count} 份评价，不能删除")
        principal_count = db.scalar(
            select(func.count(Project.id)).where(Project.principal_author_id == user_id)
        )
        if principal_count:
            raise HasAssociatedProjects(f"用户 {user_id} 是 {principal_count} 个项目的第一作者，不能删除")

        db.delete(user)
        db.commit()
        logger.info("user_deleted", user_id=user_id)
