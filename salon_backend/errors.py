"""Error taxonomy and the JSON envelope every failure is rendered with.

Handlers return ``{"success": false, "message": ...}`` plus optional
``details`` and ``retry_after``. Stack traces stay in the server log.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


class SalonError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = INTERNAL_ERROR_MESSAGE

    def __init__(self, message: str | None = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(SalonError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(SalonError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class LockoutError(AuthenticationError):
    default_message = "Account temporarily locked after repeated failed logins"

    def __init__(self, message: str | None = None, *, retry_after: int, details: Any = None) -> None:
        super().__init__(message, details=details)
        self.retry_after = max(1, int(retry_after))


class AuthorizationError(SalonError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class NotFoundError(SalonError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class RateLimitError(SalonError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests, please try again later"

    def __init__(self, message: str | None = None, *, retry_after: int, details: Any = None) -> None:
        super().__init__(message, details=details)
        self.retry_after = max(1, int(retry_after))


def error_response(
    status_code: int,
    message: str,
    *,
    details: Any = None,
    retry_after: int | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "message": message}
    if details is not None:
        content["details"] = details
    response_headers = dict(headers or {})
    if retry_after is not None:
        content["retry_after"] = retry_after
        response_headers["Retry-After"] = str(retry_after)
    return JSONResponse(status_code=status_code, content=content, headers=response_headers or None)


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(location) or "body", "message": error.get("msg", "invalid")})
    return errors


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SalonError)
    async def handle_salon_error(request: Request, exc: SalonError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "%s %s -> %s %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
        headers = None
        if isinstance(exc, AuthenticationError) and not isinstance(exc, LockoutError):
            headers = {"WWW-Authenticate": "Bearer"}
        return error_response(
            exc.status_code,
            exc.message,
            details=exc.details,
            retry_after=getattr(exc, "retry_after", None),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        fields = _field_errors(exc)
        logger.info("validation failed path=%s fields=%s", request.url.path, [f["field"] for f in fields])
        return error_response(status.HTTP_400_BAD_REQUEST, "Validation error", details=fields)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.exception("database error path=%s", request.url.path)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("unhandled error path=%s", request.url.path)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)
