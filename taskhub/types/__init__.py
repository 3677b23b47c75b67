"""
Type definitions for the task hub.
Contains store record and API input/output types, grouped by module.
"""

from taskhub.types.api import (
    CircuitStatsResponse,
    ClaimTaskRequest,
    CompleteResponse,
    EnqueueTaskRequest,
    EnqueueTaskResponse,
    ErrorResponse,
    HealthResponse,
    PendingListResponse,
    ReleaseResponse,
    ReleaseTaskRequest,
    RenewResponse,
    RenewTaskRequest,
    StatusResponse,
    TaskDetailResponse,
    UpdateStatusRequest,
)
from taskhub.types.task import (
    ClaimResult,
    Lease,
    Task,
    TaskContext,
    TaskResult,
)

__all__ = [
    # API types
    "EnqueueTaskRequest",
    "ClaimTaskRequest",
    "ReleaseTaskRequest",
    "RenewTaskRequest",
    "UpdateStatusRequest",
    "EnqueueTaskResponse",
    "TaskDetailResponse",
    "PendingListResponse",
    "ReleaseResponse",
    "RenewResponse",
    "StatusResponse",
    "CompleteResponse",
    "CircuitStatsResponse",
    "HealthResponse",
    "ErrorResponse",
    # Record types
    "Task",
    "Lease",
    "TaskResult",
    "ClaimResult",
    "TaskContext",
]
