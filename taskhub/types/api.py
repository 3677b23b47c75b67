"""
API request and response type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from taskhub.constants import MAX_LEASE_DURATION_SECONDS, TASK_ID_PATTERN
from taskhub.types.task import Lease, Task, TaskResult


class EnqueueTaskRequest(BaseModel):
    """Request body for enqueuing a task."""

    payload: dict[str, Any] = Field(..., description="Task payload data")
    task_id: str | None = Field(
        default=None,
        pattern=TASK_ID_PATTERN,
        description="Explicit task id; generated when omitted",
    )


class ClaimTaskRequest(BaseModel):
    """Request body for claiming the next available task."""

    worker_id: str | None = Field(default=None, min_length=1)
    lease_duration_sec: int | None = Field(
        default=None, ge=1, le=MAX_LEASE_DURATION_SECONDS, description="Lease length in seconds"
    )


class ReleaseTaskRequest(BaseModel):
    """Request body for releasing a lease."""

    worker_id: str | None = Field(
        default=None, description="Must match the holder when given; omit for administrative release"
    )
    reason: str | None = None


class RenewTaskRequest(BaseModel):
    """Request body for renewing a lease."""

    worker_id: str = Field(..., min_length=1, description="Worker ID is required")
    extend_sec: int | None = Field(default=None, ge=1, le=MAX_LEASE_DURATION_SECONDS)


class UpdateStatusRequest(BaseModel):
    """Request body for updating a task's status."""

    status: str = Field(..., min_length=1, description="Status is required")


class EnqueueTaskResponse(BaseModel):
    """Response for an enqueue request."""

    success: bool = True
    task_id: str
    task: Task
    message: str


class TaskDetailResponse(BaseModel):
    """A queued task with its live lease, if any."""

    task: Task
    lease: Lease | None = None


class PendingListResponse(BaseModel):
    """Pending task ids."""

    pending: list[str]
    count: int


class ReleaseResponse(BaseModel):
    success: bool = True
    message: str | None = None


class RenewResponse(BaseModel):
    success: bool = True
    lease: Lease


class StatusResponse(BaseModel):
    success: bool = True
    status: str


class CompleteResponse(BaseModel):
    success: bool = True
    result: TaskResult


class CircuitStatsResponse(BaseModel):
    """Snapshot of one circuit breaker."""

    name: str
    state: str
    failures: int
    successes: int
    last_failure_time: int | None
    total_requests: int
    total_failures: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    store: str
    backend: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None
    retry_after: int | None = None
