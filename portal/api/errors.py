"""领域错误到 HTTP 响应的统一转换。"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from portal.errors import PortalError
from portal.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE = {
    "ValidationError": status.HTTP_400_BAD_REQUEST,
    "InvalidEvaluator": status.HTTP_400_BAD_REQUEST,
    "SelfEvaluation": status.HTTP_400_BAD_REQUEST,
    "InvalidScore": status.HTTP_400_BAD_REQUEST,
    "InvalidOpinion": status.HTTP_400_BAD_REQUEST,
    "InvalidAuthors": status.HTTP_400_BAD_REQUEST,
    "AwardClosed": status.HTTP_400_BAD_REQUEST,
    "Unauthenticated": status.HTTP_401_UNAUTHORIZED,
    "Forbidden": status.HTTP_403_FORBIDDEN,
    "NotFound": status.HTTP_404_NOT_FOUND,
    "Conflict": status.HTTP_409_CONFLICT,
    "DuplicateEvaluation": status.HTTP_409_CONFLICT,
    "ProjectLocked": status.HTTP_409_CONFLICT,
    "ProjectAlreadyEvaluated": status.HTTP_409_CONFLICT,
    "HasEvaluations": status.HTTP_409_CONFLICT,
    "HasAssociatedProjects": status.HTTP_409_CONFLICT,
}


def error_body(code: str, message: str, details=None) -> dict:
    return {"error": code, "message": message, "details": details or []}


async def handle_portal_error(request: Request, exc: PortalError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=error_body(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("ValidationError", "请求参数校验失败", details),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    route = request.scope.get("route")
    logger.error(
        "unhandled_error",
        operation=getattr(route, "name", None),
        path=request.url.path,
        path_params=dict(request.path_params),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("InternalError", "服务器内部错误"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, handle_portal_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
