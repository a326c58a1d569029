"""启动时的管理员初始化。"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from portal.config import Settings
from portal.models import User, UserRole
from portal.services.users import UserService
from portal.utils.logging import get_logger

logger = get_logger(__name__)

ADMIN_PROFILE = {
    "name": "Administrador",
    "national_id": "000.000.000-00",
    "birth_date": date(1990, 1, 1),
    "phone": "(11) 98765-4321",
    "country": "Brasil",
    "city": "São Paulo",
    "state": "SP",
}


def ensure_admin(db: Session, settings: Settings) -> Optional[User]:
    """按配置的邮箱幂等创建管理员；未配置密码时跳过。"""

    users = UserService()
    existing = users.get_user_by_email(db, settings.admin_email)
    if existing:
        return existing
    if not settings.admin_password:
        logger.warning("admin_seed_skipped", reason="未配置管理员密码", email=settings.admin_email)
        return None

    admin = users.create_user(
        db,
        {**ADMIN_PROFILE, "email": settings.admin_email, "password": settings.admin_password},
        UserRole.ADMIN,
    )
    logger.info("admin_seeded", user_id=admin.id, email=admin.email)
    return admin
