"""
Domain error taxonomy and the FastAPI handlers that render it.

Every expected, caller-recoverable outcome has its own exception type with a
stable machine-readable code. The HTTP layer maps them to responses using the
same envelope as the security middleware:

    {"error": {"code": "...", "message": "...", "status": 409}}

Unexpected failures (storage down, serialization conflicts) are not wrapped
here and surface as 500s.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from starlette.responses import JSONResponse

from taskweave_shared.schemas.common import ErrorBody, ErrorResponse

log = structlog.get_logger()


class TaskweaveError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class SelfDependencyError(TaskweaveError):
    status_code = 400
    code = "SELF_DEPENDENCY"
    default_message = "A task cannot depend on itself"


class NotFoundError(TaskweaveError):
    """Missing entity, or one the actor may not see. The two are indistinguishable on purpose."""
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class PermissionDeniedError(TaskweaveError):
    status_code = 403
    code = "PERMISSION_DENIED"
    default_message = "Insufficient permissions"


class DuplicateDependencyError(TaskweaveError):
    status_code = 409
    code = "DUPLICATE_DEPENDENCY"
    default_message = "Dependency already exists"


class CircularDependencyError(TaskweaveError):
    status_code = 409
    code = "CIRCULAR_DEPENDENCY"
    default_message = "This dependency would create a circular dependency"


class TaskBlockedError(TaskweaveError):
    status_code = 422
    code = "TASK_BLOCKED"
    default_message = "Cannot complete task. Blocked by incomplete dependencies"


class ConflictError(TaskweaveError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


def error_response(exc: TaskweaveError) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorBody(
            code=exc.code,
            message=exc.message,
            status=exc.status_code,
            details=exc.details or None,
        )
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


async def _handle_taskweave_error(request: Request, exc: TaskweaveError) -> JSONResponse:
    log.info(
        "request.rejected",
        path=request.url.path,
        method=request.method,
        code=exc.code,
        status=exc.status_code,
    )
    return error_response(exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskweaveError, _handle_taskweave_error)
