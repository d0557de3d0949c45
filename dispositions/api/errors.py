"""
Maps disposition errors to JSON error responses.

Body shape: ``{"error": {"type", "message", "field"?, "details"?}}``.
Database errors only ever expose their safe user message.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from dispositions.core.exceptions import (
    AuthorizationError,
    DatabaseError,
    DispositionError,
    FileUploadError,
    NotificationError,
    ReferenceNotFoundError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    ValidationError: 422,
    AuthorizationError: 403,
    ReferenceNotFoundError: 404,
    FileUploadError: 400,
    DatabaseError: 503,
    NotificationError: 500,
}


def status_for_error(exc: DispositionError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_body(exc: DispositionError) -> dict:
    body = {"type": exc.category, "message": exc.user_message}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    if isinstance(exc, ReferenceNotFoundError):
        body["details"] = {"entity_type": exc.entity_type, "entity_ids": exc.entity_ids}
    elif isinstance(exc, FileUploadError) and exc.file_name:
        body["details"] = {"file_name": exc.file_name}
    return {"error": body}


async def disposition_error_handler(request: Request, exc: DispositionError) -> JSONResponse:
    status_code = status_for_error(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        method=request.method,
        error_type=exc.category,
        status_code=status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=status_code, content=error_body(exc))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DispositionError, disposition_error_handler)
