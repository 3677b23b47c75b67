"""
Exception types raised by the queue, the store backends and the resilience
primitives.

Callers can tell retryable conditions apart: a LeaseConflictError may be
retried immediately against another task, a CircuitOpenError not before its
advertised cooldown has elapsed.
"""


class TaskHubError(Exception):
    """Base class for all task hub errors."""


class NotFoundError(TaskHubError):
    """A task, result or breaker does not exist (or has expired)."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class LeaseConflictError(TaskHubError):
    """The caller does not hold the lease it tried to release or renew."""

    def __init__(self, task_id: str, worker_id: str | None, message: str = "Not lease holder"):
        super().__init__(message)
        self.task_id = task_id
        self.worker_id = worker_id


class RaceLostError(TaskHubError):
    """
    Another worker's lease write won a concurrent claim.

    Only raised between the lease acquirer and TaskQueue.claim, which
    swallows it and moves on to the next pending task.
    """

    def __init__(self, key: str):
        super().__init__(f"Lost claim race for {key}")
        self.key = key


class StoreUnavailableError(TaskHubError):
    """The backing key-value store failed or could not be reached."""

    def __init__(self, operation: str, key: str | None = None, cause: Exception | None = None):
        target = f" {key}" if key else ""
        super().__init__(f"Store {operation}{target} failed: {cause}")
        self.operation = operation
        self.key = key


class InvalidRecordError(TaskHubError):
    """A stored value could not be decoded into the expected shape."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Invalid record at {key}: {reason}")
        self.key = key
        self.reason = reason


class CircuitOpenError(TaskHubError):
    """Raised instead of invoking a call while its circuit is OPEN."""

    def __init__(self, service_name: str, remaining_ms: int):
        retry_seconds = -(-remaining_ms // 1000)
        super().__init__(
            f"Circuit breaker OPEN for {service_name}, retry after {retry_seconds}s"
        )
        self.service_name = service_name
        self.remaining_ms = remaining_ms

    @property
    def retry_after_seconds(self) -> int:
        """Cooldown rounded up to whole seconds."""
        return max(1, -(-self.remaining_ms // 1000))
