"""
Application error hierarchy and FastAPI exception handlers
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def _default_code(cls_name: str) -> str:
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", cls_name).upper()
    if snake.endswith("_ERROR"):
        snake = snake[: -len("_ERROR")]
    return snake


class AppError(Exception):
    """Base error carrying an HTTP status and a machine readable code"""

    status_code: int = 500
    default_code: Optional[str] = None
    is_operational: bool = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code or self.default_code or _default_code(type(self).__name__)
        self.details = details


class ValidationError(AppError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401


class AuthorizationError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str = "Resource", code: Optional[str] = None, details=None):
        super().__init__(f"{resource} not found", code=code, details=details)
        self.resource = resource


class ConflictError(AppError):
    status_code = 409


class RateLimitError(AppError):
    status_code = 429

    def __init__(self, message: str, retry_after: int, code: Optional[str] = None, details=None):
        super().__init__(message, code=code, details=details)
        self.retry_after = retry_after


class InternalServerError(AppError):
    status_code = 500
    is_operational = False


class ServiceUnavailableError(AppError):
    status_code = 503


def error_body(
    request: Request,
    message: str,
    code: str,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build the error envelope shared by all handlers"""
    error: Dict[str, Any] = {
        "message": message,
        "code": code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "correlation_id": getattr(request.state, "correlation_id", None),
    }
    if details:
        error["details"] = details
    return {"status": "error", "error": error}


def _log(request: Request, status_code: int, message: str, code: str) -> None:
    log_line = "%s %s -> %s %s: %s"
    args = (request.method, request.url.path, status_code, code, message)
    if status_code >= 500:
        logger.error(log_line, *args)
    elif status_code >= 400:
        logger.warning(log_line, *args)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    _log(request, exc.status_code, exc.message, exc.code)
    if not exc.is_operational:
        logger.exception("Non-operational error", exc_info=exc)
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.message, exc.code, exc.details),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    _log(request, 400, "Validation failed", "VALIDATION_ERROR")
    return JSONResponse(
        status_code=400,
        content=error_body(request, "Validation failed", "VALIDATION_ERROR", {"errors": errors}),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.method} {request.url.path} not found"
        _log(request, 404, message, "ROUTE_NOT_FOUND")
        return JSONResponse(
            status_code=404,
            content=error_body(
                request,
                message,
                "ROUTE_NOT_FOUND",
                {"method": request.method, "path": request.url.path},
            ),
        )
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    code = "HTTP_%d" % exc.status_code
    _log(request, exc.status_code, message, code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, message, code),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(request, "Internal server error", "INTERNAL_SERVER"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error handlers to the application"""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
