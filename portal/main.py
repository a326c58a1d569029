"""FastAPI 入口：组装配置、日志、数据库与路由。"""

from typing import Optional

from fastapi import FastAPI

from portal.api.errors import register_exception_handlers
from portal.api.v1 import router as api_v1_router
from portal.config import Settings, get_settings
from portal.db import Base, build_engine, build_session_factory, session_scope
from portal.middleware import LoggingMiddleware
from portal.migrations import run_migrations
from portal.services.bootstrap import ensure_admin
from portal.utils.logging import configure_structlog, get_logger

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """应用工厂，便于测试时传入独立的配置。"""

    settings = settings or get_settings()
    configure_structlog(environment=settings.environment, level=settings.log_level)

    engine = build_engine(settings.database_url)
    app = FastAPI(title="InnovateHub Awards API", version="0.1.0")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_middleware(LoggingMiddleware)
    register_exception_handlers(app)
    app.include_router(api_v1_router)

    @app.on_event("startup")
    def init_models() -> None:
        """启动时建表、执行迁移并初始化管理员。"""

        Base.metadata.create_all(bind=app.state.engine)
        applied = run_migrations(app.state.engine)
        with session_scope(app.state.session_factory) as db:
            ensure_admin(db, settings)
        logger.info("app_started", environment=settings.environment, migrations=applied)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "environment": settings.environment}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("portal.main:app", host="0.0.0.0", port=8000, reload=False)
