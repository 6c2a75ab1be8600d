"""
Application error taxonomy.

Services raise these; ``register_error_handlers`` renders them as ``{"error": ...}``
JSON bodies with the matching HTTP status. Nothing here retries.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from site_receipts.core.logging import get_logger, log_event

logger = get_logger(__name__)


class AppError(Exception):
    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(AppError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR


class ValidationError(AppError):
    status_code = HTTP_400_BAD_REQUEST


class GatewayError(AppError):
    status_code = HTTP_502_BAD_GATEWAY


class NotFoundError(AppError):
    status_code = HTTP_404_NOT_FOUND


class StorageError(AppError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR


def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log_event(
        logger,
        "http.request.app_error",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
