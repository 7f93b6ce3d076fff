import traceback
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from apps.api.app.core.config import settings
from apps.api.app.core.errors import AppError, RateLimitError
from apps.api.app.core.logging import get_logger
from apps.api.app.core.time import utc_now


logger = get_logger(__name__)

_STATUS_TO_CODE = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_FAILED",
    403: "INSUFFICIENT_PERMISSIONS",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMIT_EXCEEDED",
}


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    exc: Optional[BaseException] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    error = {
        "code": code,
        "message": message,
        "details": details if details is not None else [],
    }
    payload = {
        "success": False,
        "error": error,
        "timestamp": utc_now().isoformat(),
        "path": request.url.path,
        "method": request.method,
    }
    if settings.is_development:
        if exc is not None:
            error["stack"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        payload["ip"] = _client_ip(request)
        payload["userAgent"] = request.headers.get("user-agent")
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


def _validation_details(exc: RequestValidationError) -> list[dict]:
    details = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        details.append(
            {
                "field": ".".join(loc) or "body",
                "message": err.get("msg", "Invalid value"),
            }
        )
    return details


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "operational_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
            ip=_client_ip(request),
        )
        return error_response(
            request, exc.status_code, exc.code, exc.message, exc.details, exc=exc
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = _validation_details(exc)
        logger.warning(
            "request_validation_error",
            path=request.url.path,
            method=request.method,
            fields=[d["field"] for d in details],
        )
        return error_response(
            request, 400, "VALIDATION_ERROR", "Invalid input data", details
        )

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(request: Request, exc: RateLimitExceeded):
        logger.warning(
            "rate_limit_exceeded",
            path=request.url.path,
            ip=_client_ip(request),
            limit=str(exc.detail),
        )
        error = RateLimitError("Too many authentication attempts, please try again later")
        return error_response(
            request,
            error.status_code,
            error.code,
            error.message,
            headers={"Retry-After": "60"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _STATUS_TO_CODE.get(exc.status_code, "HTTP_ERROR")
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        if exc.status_code >= 500:
            logger.error("http_error", path=request.url.path, status_code=exc.status_code)
        return error_response(
            request, exc.status_code, code, message, headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        if settings.is_development:
            return error_response(request, 500, "INTERNAL_ERROR", str(exc), exc=exc)
        return error_response(request, 500, "INTERNAL_ERROR", "Something went wrong")
