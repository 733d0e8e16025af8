"""Translate application errors into HTTP responses.

Every error is rendered in the same envelope as successful responses:
``{"success": false, "traceId": ..., "message": ..., "code": ..., "errors": [...]}``.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException, ErrorKind
from app.core.logging import get_trace_id

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.EXTERNAL_GATEWAY: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Codes whose status differs from their kind's
STATUS_BY_CODE: dict[str, int] = {
    "INVALID_WEBHOOK_SIGNATURE": status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: AppException) -> int:
    return STATUS_BY_CODE.get(exc.code, STATUS_BY_KIND[exc.kind])


def _trace_id(request: Request) -> str | None:
    return getattr(request.state, "trace_id", None) or get_trace_id()


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str,
    errors: list[Any] | None = None,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict[str, Any] = {
        "success": False,
        "traceId": _trace_id(request),
        "message": message,
        "code": code,
    }
    if errors:
        content["errors"] = errors
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-rendering exception handlers on ``app``."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")

        details = dict(exc.details)
        errors = details.pop("errors", None)
        headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.UNAUTHENTICATED else None
        return error_response(
            request,
            status_code,
            exc.message,
            exc.code,
            errors=errors,
            details=details,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())),
                "message": err.get("msg"),
                "type": err.get("type"),
            }
            for err in exc.errors()
        ]
        return error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Request validation failed",
            "VALIDATION_ERROR",
            errors=errors,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(
            request,
            exc.status_code,
            str(exc.detail),
            "HTTP_ERROR",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
            "INTERNAL_ERROR",
        )
