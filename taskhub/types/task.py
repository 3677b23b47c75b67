"""
Task, lease and result record definitions.
These are the JSON documents the queue keeps in the store.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from taskhub.constants import DEFAULT_TASK_TYPE, TaskStatus

if TYPE_CHECKING:
    from taskhub.resilience.circuit_breaker import CircuitBreakerRegistry


class Task(BaseModel):
    """
    A queued unit of work.
    Its queue entry is deleted exactly when its result is written.
    """

    id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: str = TaskStatus.PENDING.value
    created_at: datetime
    updated_at: datetime

    @property
    def task_type(self) -> str:
        """Handler name the worker dispatches on."""
        return self.payload.get("task_type", DEFAULT_TASK_TYPE)


class Lease(BaseModel):
    """
    A time-bounded, single-holder claim on a task.
    The claim nonce identifies the write that created it.
    """

    worker_id: str
    claim_nonce: str
    claimed_at: datetime
    expires_at: datetime
    renewed_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Check if the lease has expired at the given instant."""
        return now >= self.expires_at

    def time_remaining_seconds(self, now: datetime) -> float:
        """Get remaining time on the lease in seconds."""
        return max(0.0, (self.expires_at - now).total_seconds())


class TaskResult(BaseModel):
    """
    Outcome of a task, written once by complete().
    """

    success: bool
    output: Any | None = None
    error: str | None = None


class ClaimResult(BaseModel):
    """Outcome of a claim attempt."""

    success: bool
    task_id: str | None = None
    task: Task | None = None
    lease: Lease | None = None
    message: str | None = None
    pending: int | None = None


@dataclass
class TaskContext:
    """
    Context passed to task handlers during execution.
    """

    task: Task
    lease: Lease
    worker_id: str
    breakers: "CircuitBreakerRegistry | None" = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def task_id(self) -> str:
        return self.task.id

    @property
    def data(self) -> dict[str, Any]:
        """Handler-specific arguments from the payload."""
        return self.task.payload.get("data", {})
