"""FastAPI 依赖注入工具。"""

from fastapi import Request

from portal.config import Settings
from portal.db import get_db
from portal.services.identity import TokenService

__all__ = ["get_app_settings", "get_db", "get_token_service"]


def get_app_settings(request: Request) -> Settings:
    """启动时传入应用的配置。"""

    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    settings = get_app_settings(request)
    return TokenService(settings.secret_key, settings.token_expire_hours)
