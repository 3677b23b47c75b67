"""
Worker process for executing queued tasks.

The worker claims one task at a time, keeps its lease alive with a
heartbeat while the handler runs, and completes the task with the
handler's result.
"""

import asyncio
import logging
import os
import signal
import time

from taskhub.config import get_settings
from taskhub.constants import SPAN_CLAIM_TASK, SPAN_COMPLETE_TASK, SPAN_EXECUTE_TASK, TaskStatus
from taskhub.errors import LeaseConflictError, NotFoundError
from taskhub.observability.logging import log_context, setup_logging
from taskhub.observability.tracing import get_tracer, setup_tracing, shutdown_tracing
from taskhub.services import HubServices, build_services
from taskhub.types.task import Lease, Task, TaskContext, TaskResult
from taskhub.worker.handlers import execute_task

logger = logging.getLogger(__name__)


class LeaseLostError(Exception):
    """The worker's lease was taken over or expired during execution."""


class Worker:
    """
    Task worker that polls the queue and executes tasks.

    Features:
    - Lease acquisition through the queue's claim protocol
    - Heartbeat renewal for long-running tasks
    - Abandons a task whose lease was lost instead of completing it
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        services: HubServices,
        worker_id: str | None = None,
        poll_interval: float | None = None,
        heartbeat_interval: float | None = None,
        lease_duration: int | None = None,
    ):
        """
        Initialize the worker.

        Args:
            services: Application services.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            poll_interval: Seconds between polls when the queue is empty.
            heartbeat_interval: Seconds between lease renewals.
            lease_duration: Lease length requested on claim and renewal.
        """
        settings = services.settings

        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.heartbeat_interval = heartbeat_interval or settings.worker_heartbeat_interval_seconds
        self.lease_duration = lease_duration or settings.worker_lease_duration_seconds

        self._services = services
        self._queue = services.task_queue
        self._metrics = services.metrics
        self._running = False

    async def start(self) -> None:
        """Run the poll loop until stop() is called."""
        logger.info(
            "Worker starting",
            extra={"worker_id": self.worker_id, "lease_duration": self.lease_duration},
        )

        self._running = True

        while self._running:
            try:
                processed = await self.run_once()

                # If nothing was claimed, wait before polling again
                if not processed:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )
                await asyncio.sleep(self.poll_interval)

        logger.info("Worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker after the current task."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    async def run_once(self) -> bool:
        """
        Claim and process at most one task.

        Returns:
            True if a task was claimed.
        """
        with get_tracer().start_as_current_span(SPAN_CLAIM_TASK) as span:
            span.set_attribute("worker_id", self.worker_id)
            claim = await self._queue.claim(
                worker_id=self.worker_id,
                lease_duration_seconds=self.lease_duration,
            )

        if not claim.success or claim.task is None or claim.lease is None:
            return False

        with log_context(task_id=claim.task.id, worker_id=self.worker_id):
            await self._process(claim.task, claim.lease)

        return True

    async def _process(self, task: Task, lease: Lease) -> None:
        """
        Execute a claimed task and write its result.

        Handles the full lifecycle:
        1. Mark as RUNNING
        2. Execute the handler while renewing the lease
        3. Complete with the handler's result, unless the lease was lost
        """
        start_time = time.perf_counter()

        try:
            await self._queue.update_status(task.id, TaskStatus.RUNNING.value)
        except NotFoundError:
            logger.warning("Task vanished after claim", extra={"task_id": task.id})
            await self._queue.release(task.id, worker_id=self.worker_id, reason="vanished")
            return

        context = TaskContext(
            task=task,
            lease=lease,
            worker_id=self.worker_id,
            breakers=self._services.breakers,
            metadata={"http_timeout_seconds": self._services.settings.worker_http_timeout_seconds},
        )

        logger.info(
            "Executing task",
            extra={"task_id": task.id, "task_type": task.task_type},
        )

        try:
            with get_tracer().start_as_current_span(SPAN_EXECUTE_TASK) as span:
                span.set_attribute("task_id", task.id)
                span.set_attribute("task_type", task.task_type)
                result = await self._run_with_heartbeat(context)
        except LeaseLostError:
            logger.warning(
                "Lease lost during execution, abandoning task",
                extra={"task_id": task.id, "worker_id": self.worker_id},
            )
            return

        duration = time.perf_counter() - start_time
        self._metrics.record_task_duration(task.task_type, result.success, duration)

        with get_tracer().start_as_current_span(SPAN_COMPLETE_TASK) as span:
            span.set_attribute("task_id", task.id)
            span.set_attribute("success", result.success)
            stored = await self._queue.complete(task.id, result)

        if stored.success:
            logger.info(
                "Task completed successfully",
                extra={"task_id": task.id, "duration": f"{duration:.2f}s"},
            )
        else:
            logger.warning(
                "Task failed",
                extra={"task_id": task.id, "error": stored.error},
            )

    async def _run_with_heartbeat(self, context: TaskContext) -> TaskResult:
        """
        Run the handler while a heartbeat renews the lease.

        Raises:
            LeaseLostError: If a renewal is refused; the handler is cancelled.
        """
        execution = asyncio.create_task(execute_task(context))
        heartbeat = asyncio.create_task(self._heartbeat(context.task_id))

        try:
            done, _ = await asyncio.wait(
                {execution, heartbeat},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if execution in done:
                return execution.result()

            # The heartbeat only finishes early when renewal failed
            execution.cancel()
            await asyncio.gather(execution, return_exceptions=True)
            heartbeat.result()
            raise LeaseLostError(context.task_id)
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)

    async def _heartbeat(self, task_id: str) -> None:
        """
        Renew the lease every heartbeat interval.

        Returns normally only when the lease can no longer be renewed.
        """
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self._queue.renew(task_id, self.worker_id, extend_seconds=self.lease_duration)
            except LeaseConflictError:
                return
            except Exception as e:
                # Transient store failures are retried on the next beat
                logger.exception(f"Error in heartbeat: {e}", extra={"task_id": task_id})
                continue
            logger.debug("Extended lease", extra={"task_id": task_id})


async def run_async() -> None:
    """Run the worker asynchronously."""
    setup_logging()
    setup_tracing()

    services = build_services(get_settings())
    worker = Worker(services)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop()),
        )

    try:
        await worker.start()
    finally:
        await services.close()
        shutdown_tracing()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
