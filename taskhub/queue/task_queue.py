"""
Lease-based task queue over a key-value store.
Implements the claim/release/renew/complete protocol for competing workers.
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from taskhub.clock import Clock, SystemClock, to_ms
from taskhub.config import Settings, get_settings
from taskhub.constants import (
    LEASE_KEY_PREFIX,
    NO_TASKS_MESSAGE,
    PENDING_KEY,
    RESULT_KEY_PREFIX,
    TASK_KEY_PREFIX,
    TaskStatus,
)
from taskhub.errors import (
    InvalidRecordError,
    LeaseConflictError,
    NotFoundError,
    RaceLostError,
)
from taskhub.observability.metrics import MetricsCollector
from taskhub.queue.claims import LeaseAcquirer, build_acquirer
from taskhub.store.base import KeyValueStore
from taskhub.types.task import ClaimResult, Lease, Task, TaskResult

logger = logging.getLogger(__name__)


def lease_key(task_id: str) -> str:
    return f"{LEASE_KEY_PREFIX}{task_id}"


def task_key(task_id: str) -> str:
    return f"{TASK_KEY_PREFIX}{task_id}"


def result_key(task_id: str) -> str:
    return f"{RESULT_KEY_PREFIX}{task_id}"


class TaskQueue:
    """
    Task queue built from a pending-id list, per-task lease records and a
    result store.

    Guarantees:
    - At most one worker holds a live lease per task, established by the
      lease acquirer rather than by the store
    - A crashed worker's lease expires by TTL, making the task claimable again
    - A task's queue entry and its result never coexist after complete()

    The pending list is rewritten with a non-atomic read-modify-write on
    enqueue and complete. Membership is advisory for scheduling only;
    mutual exclusion never depends on it.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock | None = None,
        acquirer: LeaseAcquirer | None = None,
        settings: Settings | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the queue.

        Args:
            store: The backing key-value store.
            clock: Time source for lease timestamps.
            acquirer: Lease acquisition strategy. Defaults to the one named in settings.
            settings: Queue limits and TTLs.
            metrics: Optional metrics collector.
        """
        self._store = store
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()
        self._acquirer = acquirer or build_acquirer(
            self._settings.lease_acquire_strategy, store
        )
        self._metrics = metrics

    def clamp_duration(self, seconds: int | None) -> int:
        """Apply the default and the [1, max] bound to a lease duration."""
        if seconds is None:
            seconds = self._settings.default_lease_duration_seconds
        return max(1, min(seconds, self._settings.max_lease_duration_seconds))

    async def enqueue(
        self,
        payload: dict[str, Any],
        task_id: str | None = None,
    ) -> tuple[Task, bool]:
        """
        Store a task and append its id to the pending list.

        Enqueuing an id whose task entry already exists returns the existing
        task and only makes sure the id is pending.

        Args:
            payload: The task payload.
            task_id: Optional explicit id; a uuid4 hex id is generated otherwise.

        Returns:
            Tuple of (Task, created) where created is True if a new task was stored.
        """
        task_id = task_id or uuid4().hex

        task = await self._read_task(task_id)
        created = task is None
        if task is None:
            now = self._clock.now()
            task = Task(
                id=task_id,
                payload=payload,
                status=TaskStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            await self._write_task(task)

        pending = await self.list_pending()
        if task_id not in pending:
            pending.append(task_id)
            await self._store.put_json(
                PENDING_KEY, pending, ttl_seconds=self._settings.task_ttl_seconds
            )

        if created:
            logger.info("Task enqueued", extra={"task_id": task_id, "pending": len(pending)})
            if self._metrics:
                self._metrics.record_task_enqueued(len(pending))
        else:
            logger.info("Returned existing task (idempotent)", extra={"task_id": task_id})

        return task, created

    async def list_pending(self) -> list[str]:
        """
        Get the pending task ids in scan order.

        Raises:
            InvalidRecordError: If the stored list is not a list.
        """
        pending = await self._store.get_json(PENDING_KEY)
        if pending is None:
            return []
        if not isinstance(pending, list):
            raise InvalidRecordError(PENDING_KEY, "pending list is not a JSON array")
        return [str(task_id) for task_id in pending]

    async def get_task(self, task_id: str) -> Task:
        """
        Get a queued task by id.

        Raises:
            NotFoundError: If the task does not exist or was completed.
        """
        task = await self._read_task(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def get_lease(self, task_id: str) -> Lease | None:
        """
        Get the live lease on a task.

        A lease past its expires_at is treated as absent even if the store
        has not evicted it yet.

        Returns:
            The Lease or None if no live lease exists.
        """
        key = lease_key(task_id)
        raw = await self._store.get_json(key)
        if raw is None:
            return None

        try:
            lease = Lease.model_validate(raw)
        except ValidationError as e:
            logger.error(
                "Invalid lease data structure",
                extra={"task_id": task_id, "error": str(e)},
            )
            raise InvalidRecordError(key, "lease does not match schema") from e

        if lease.is_expired(self._clock.now()):
            return None
        return lease

    async def claim(
        self,
        worker_id: str | None = None,
        lease_duration_seconds: int | None = None,
    ) -> ClaimResult:
        """
        Claim the first pending task that nobody holds a lease on.

        Live lease keys are fetched with one prefix listing, so already
        leased tasks are skipped without a read each. For the first free
        task a lease is written through the acquirer; a lost race moves the
        scan on to the next task. A task whose body vanished meanwhile has
        its fresh lease released and is skipped.

        Args:
            worker_id: The claiming worker. Defaults to ``worker_<epoch ms>``.
            lease_duration_seconds: Lease length, clamped to the configured maximum.

        Returns:
            ClaimResult with the task and lease, or success=False when
            nothing is claimable.
        """
        worker_id = worker_id or f"worker_{to_ms(self._clock)}"
        duration = self.clamp_duration(lease_duration_seconds)

        pending = await self.list_pending()
        leased_task_ids = {
            key[len(LEASE_KEY_PREFIX):]
            for key in await self._store.list_keys(LEASE_KEY_PREFIX)
        }

        for task_id in pending:
            if task_id in leased_task_ids:
                continue

            key = lease_key(task_id)
            lease = self._new_lease(worker_id, duration)

            try:
                await self._acquirer.acquire(key, lease, duration)
            except RaceLostError:
                logger.info(
                    "Lost race for task",
                    extra={"task_id": task_id, "worker_id": worker_id},
                )
                if self._metrics:
                    self._metrics.record_claim_race_lost()
                continue

            task = await self._read_task(task_id)
            if task is None:
                # Stale pending entry
                await self._store.delete(key)
                logger.info(
                    "Skipped pending task with no queue entry",
                    extra={"task_id": task_id, "worker_id": worker_id},
                )
                continue

            logger.info(
                "Task claimed",
                extra={"task_id": task_id, "worker_id": worker_id, "lease_duration": duration},
            )
            if self._metrics:
                self._metrics.record_lease_claimed(worker_id)
                self._metrics.update_pending_depth(len(pending))

            return ClaimResult(success=True, task_id=task_id, task=task, lease=lease)

        return ClaimResult(success=False, message=NO_TASKS_MESSAGE, pending=len(pending))

    async def release(
        self,
        task_id: str,
        worker_id: str | None = None,
        reason: str | None = None,
    ) -> bool:
        """
        Release a lease so the task becomes claimable again.

        Args:
            task_id: The task id.
            worker_id: When given, must match the lease holder. When omitted
                any caller may release (administrative cleanup).
            reason: Free-form reason for the logs.

        Returns:
            True if a lease was deleted, False if there was none.

        Raises:
            LeaseConflictError: If worker_id is given and is not the holder.
        """
        lease = await self.get_lease(task_id)
        if lease is None:
            return False

        if worker_id and lease.worker_id != worker_id:
            logger.warning(
                "Release refused, worker does not hold the lease",
                extra={"task_id": task_id, "worker_id": worker_id},
            )
            raise LeaseConflictError(task_id, worker_id)

        reason = reason or "manual"
        await self._store.delete(lease_key(task_id))

        logger.info("Lease released", extra={"task_id": task_id, "reason": reason})
        if self._metrics:
            self._metrics.record_lease_released(reason)

        return True

    async def renew(
        self,
        task_id: str,
        worker_id: str,
        extend_seconds: int | None = None,
    ) -> Lease:
        """
        Extend a lease (heartbeat).

        Args:
            task_id: The task id.
            worker_id: Must be the current holder.
            extend_seconds: New lease length from now, clamped to the maximum.

        Returns:
            The renewed Lease.

        Raises:
            LeaseConflictError: If there is no live lease or worker_id does not hold it.
        """
        duration = self.clamp_duration(extend_seconds)

        lease = await self.get_lease(task_id)
        if lease is None or lease.worker_id != worker_id:
            raise LeaseConflictError(task_id, worker_id, "Invalid lease or not holder")

        now = self._clock.now()
        renewed = lease.model_copy(
            update={
                "expires_at": self._expires_at(duration),
                "renewed_at": now,
            }
        )
        await self._store.put(lease_key(task_id), renewed.model_dump_json(), ttl_seconds=duration)

        logger.debug(
            "Extended lease",
            extra={"task_id": task_id, "worker_id": worker_id, "extend_seconds": duration},
        )
        if self._metrics:
            self._metrics.record_lease_renewed()

        return renewed

    async def update_status(self, task_id: str, status: str) -> Task:
        """
        Set a task's status. The lease is left untouched.

        Raises:
            NotFoundError: If the task does not exist.
        """
        task = await self.get_task(task_id)
        task.status = str(status)
        task.updated_at = self._clock.now()
        await self._write_task(task)

        logger.info("Task status updated", extra={"task_id": task_id, "status": status})
        return task

    async def complete(self, task_id: str, result: TaskResult) -> TaskResult:
        """
        Store a task's result and remove it from the queue.

        The result is write-once: completing an already completed task keeps
        the first result and only repeats the cleanup steps.

        Args:
            task_id: The task id.
            result: The task outcome.

        Returns:
            The stored result.
        """
        key = result_key(task_id)
        stored = await self._read_result(task_id)
        if stored is None:
            await self._store.put(
                key,
                result.model_dump_json(),
                ttl_seconds=self._settings.result_retention_seconds,
            )
            stored = result
        else:
            logger.warning("Result already stored, keeping first", extra={"task_id": task_id})

        pending = await self.list_pending()
        if task_id in pending:
            remaining = [pending_id for pending_id in pending if pending_id != task_id]
            await self._store.put_json(
                PENDING_KEY, remaining, ttl_seconds=self._settings.task_ttl_seconds
            )
            pending = remaining

        await self._store.delete(task_key(task_id))

        logger.info(
            "Task completed",
            extra={"task_id": task_id, "success": stored.success},
        )
        if self._metrics:
            self._metrics.record_task_completed(stored.success)
            self._metrics.update_pending_depth(len(pending))

        return stored

    async def get_result(self, task_id: str) -> TaskResult:
        """
        Get a stored result.

        Raises:
            NotFoundError: If no result exists or it has expired.
        """
        result = await self._read_result(task_id)
        if result is None:
            raise NotFoundError("Result", task_id)
        return result

    def _new_lease(self, worker_id: str, duration: int) -> Lease:
        now = self._clock.now()
        return Lease(
            worker_id=worker_id,
            claim_nonce=f"{worker_id}:{to_ms(self._clock)}:{uuid4().hex[:8]}",
            claimed_at=now,
            expires_at=self._expires_at(duration),
        )

    def _expires_at(self, duration: int) -> datetime:
        return self._clock.now() + timedelta(seconds=duration)

    async def _read_task(self, task_id: str) -> Task | None:
        key = task_key(task_id)
        raw = await self._store.get_json(key)
        if raw is None:
            return None
        try:
            return Task.model_validate(raw)
        except ValidationError as e:
            raise InvalidRecordError(key, "task does not match schema") from e

    async def _write_task(self, task: Task) -> None:
        await self._store.put(
            task_key(task.id),
            task.model_dump_json(),
            ttl_seconds=self._settings.task_ttl_seconds,
        )

    async def _read_result(self, task_id: str) -> TaskResult | None:
        key = result_key(task_id)
        raw = await self._store.get_json(key)
        if raw is None:
            return None
        try:
            return TaskResult.model_validate(raw)
        except ValidationError as e:
            raise InvalidRecordError(key, "result does not match schema") from e
