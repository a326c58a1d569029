"""结构化日志配置（structlog）。

生产环境输出 JSON，开发环境输出彩色控制台格式。关联 ID 通过
``contextvars`` 在一次请求内传递，并由处理器自动写入每条日志。

用法::

    configure_structlog(environment="production", level="INFO")
    log = get_logger(__name__)
    log.info("evaluation_admitted", project_id=1)
"""

import logging
from contextvars import ContextVar
from typing import Any, cast
from uuid import uuid4

import structlog
from structlog.typing import FilteringBoundLogger, Processor

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    return str(uuid4())


def get_correlation_id() -> str:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def correlation_id_processor(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog 处理器：把当前上下文的关联 ID 加入日志。"""

    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def configure_structlog(environment: str = "production", level: str = "INFO") -> None:
    """在应用启动时调用一次。"""

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        cast(Processor, correlation_id_processor),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == "production":
        final_processor: Processor = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """获取绑定了模块名的 logger。"""

    return cast(FilteringBoundLogger, structlog.get_logger(logger_name=name))
