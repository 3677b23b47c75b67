"""
Mapping of task hub errors to HTTP responses.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from taskhub.errors import (
    CircuitOpenError,
    InvalidRecordError,
    LeaseConflictError,
    NotFoundError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    error: str,
    detail: str,
    headers: dict[str, str] | None = None,
    retry_after: int | None = None,
) -> JSONResponse:
    content: dict = {"error": error, "detail": detail}
    if retry_after is not None:
        content["retry_after"] = retry_after
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(status.HTTP_404_NOT_FOUND, f"{exc.kind} not found", str(exc))


async def handle_lease_conflict(request: Request, exc: LeaseConflictError) -> JSONResponse:
    return _error_response(status.HTTP_403_FORBIDDEN, str(exc), f"task {exc.task_id}")


async def handle_store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error(
        "Store unavailable",
        extra={"operation": exc.operation, "key": exc.key, "path": request.url.path},
    )
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Store unavailable", str(exc))


async def handle_invalid_record(request: Request, exc: InvalidRecordError) -> JSONResponse:
    logger.error("Invalid stored record", extra={"key": exc.key, "reason": exc.reason})
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Invalid stored record", str(exc))


async def handle_circuit_open(request: Request, exc: CircuitOpenError) -> JSONResponse:
    retry_after = exc.retry_after_seconds
    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Circuit open",
        str(exc),
        headers={"Retry-After": str(retry_after)},
        retry_after=retry_after,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the task hub error handlers on an application."""
    app.add_exception_handler(NotFoundError, handle_not_found)
    app.add_exception_handler(LeaseConflictError, handle_lease_conflict)
    app.add_exception_handler(StoreUnavailableError, handle_store_unavailable)
    app.add_exception_handler(InvalidRecordError, handle_invalid_record)
    app.add_exception_handler(CircuitOpenError, handle_circuit_open)
