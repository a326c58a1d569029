"""应用配置管理。

使用 Pydantic Settings 统一读取环境变量，启动时一次性构建并显式传入应用。
``secret_key`` 没有默认值，未配置时直接启动失败。
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """核心配置项。

    - ``database_url``：默认使用本地 SQLite，便于快速启动。
    - ``secret_key``：令牌签名密钥，必须通过环境变量提供。
    - ``admin_email`` / ``admin_password``：启动时幂等创建的管理员账号。
    - ``allow_evaluations_after_lock``：项目锁定后是否仍接受新的评价。
    """

    database_url: str = Field(
        default="sqlite:///./storage/portal.db", description="SQLAlchemy 数据库 URL"
    )
    secret_key: str = Field(..., description="令牌签名密钥，无默认值")
    token_expire_hours: int = Field(default=24, ge=1, description="令牌有效期（小时）")

    environment: Literal["production", "development"] = "development"
    log_level: str = "INFO"

    admin_email: str = "admin@innovatehub.com"
    admin_password: Optional[str] = Field(
        default=None, description="为空时跳过管理员初始化"
    )

    # 评价与时间窗口策略
    allow_evaluations_after_lock: bool = False
    enforce_submission_window: bool = True
    enforce_evaluation_window: bool = False

    model_config = {
        "env_prefix": "PORTAL_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("secret_key")
    @classmethod
    def _reject_blank_secret(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("secret_key 不能为空")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """缓存后的全局配置实例。"""

    return Settings()
