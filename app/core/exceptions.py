"""Domain errors raised by the scheduling services and their HTTP mapping."""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

FEATURE_LOCKED = "FEATURE_LOCKED"
PLAN_LIMIT_EXCEEDED = "PLAN_LIMIT_EXCEEDED"
QUEUE_FULL = "QUEUE_FULL"
VALIDATION_FAILED = "VALIDATION_FAILED"
CONFLICT = "CONFLICT"
NOT_FOUND = "NOT_FOUND"
FORBIDDEN = "FORBIDDEN"


class PipelineError(Exception):
    """Base for errors that are reported synchronously to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = VALIDATION_FAILED

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message, **self.extra}


class ValidationError(PipelineError):
    """Bad date, unknown profile, foreign media or campaign."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ConflictError(PipelineError):
    status_code = status.HTTP_409_CONFLICT
    code = CONFLICT


class CapacityError(PipelineError):
    """Slot allocator could not provide enough slots."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = QUEUE_FULL


class PlanLimitExceededError(PipelineError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = PLAN_LIMIT_EXCEEDED

    def __init__(self, message: str, limit_name: Optional[str] = None):
        super().__init__(message, limitName=limit_name)


class FeatureLockedError(PipelineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = FEATURE_LOCKED

    def __init__(self, message: str, required_plan: str, current_plan: str):
        super().__init__(message, requiredPlan=required_plan, currentPlan=current_plan)


class PermissionDeniedError(PipelineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = FORBIDDEN


class NotFoundError(PipelineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = NOT_FOUND


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, pipeline_error_handler)
