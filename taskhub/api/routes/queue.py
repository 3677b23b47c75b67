"""
Task queue and result routes.
"""

import logging

from fastapi import APIRouter, status

from taskhub.api.dependencies import Queue, TaskId
from taskhub.constants import API_PREFIX
from taskhub.types.api import (
    ClaimTaskRequest,
    CompleteResponse,
    EnqueueTaskRequest,
    EnqueueTaskResponse,
    PendingListResponse,
    ReleaseResponse,
    ReleaseTaskRequest,
    RenewResponse,
    RenewTaskRequest,
    StatusResponse,
    TaskDetailResponse,
    UpdateStatusRequest,
)
from taskhub.types.task import ClaimResult, TaskResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_PREFIX}/queue", tags=["Queue"])
results_router = APIRouter(prefix=f"{API_PREFIX}/result", tags=["Results"])


@router.post(
    "",
    response_model=EnqueueTaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enqueue a task",
    description="Store a task and append it to the pending list. Idempotent per task id.",
)
async def enqueue_task(request: EnqueueTaskRequest, queue: Queue) -> EnqueueTaskResponse:
    """
    Enqueue a task.

    Args:
        request: Task payload and optional explicit id.
        queue: The task queue.

    Returns:
        EnqueueTaskResponse with the stored task.
    """
    task, created = await queue.enqueue(request.payload, task_id=request.task_id)
    return EnqueueTaskResponse(
        task_id=task.id,
        task=task,
        message="Task enqueued" if created else "Task already exists (idempotent)",
    )


@router.get(
    "",
    response_model=PendingListResponse,
    summary="List pending tasks",
)
async def list_pending(queue: Queue) -> PendingListResponse:
    pending = await queue.list_pending()
    return PendingListResponse(pending=pending, count=len(pending))


@router.post(
    "/claim",
    response_model=ClaimResult,
    summary="Claim the next task",
    description="Lease the first pending task nobody holds. success=false when none is claimable.",
)
async def claim_task(queue: Queue, request: ClaimTaskRequest | None = None) -> ClaimResult:
    """
    Claim a task for a worker.

    Args:
        queue: The task queue.
        request: Optional worker id and lease duration.

    Returns:
        ClaimResult with the task and its lease.
    """
    request = request or ClaimTaskRequest()
    return await queue.claim(
        worker_id=request.worker_id,
        lease_duration_seconds=request.lease_duration_sec,
    )


@router.get(
    "/{task_id}",
    response_model=TaskDetailResponse,
    summary="Get a queued task",
)
async def get_task(task_id: TaskId, queue: Queue) -> TaskDetailResponse:
    task = await queue.get_task(task_id)
    lease = await queue.get_lease(task_id)
    return TaskDetailResponse(task=task, lease=lease)


@router.post(
    "/{task_id}/release",
    response_model=ReleaseResponse,
    summary="Release a lease",
    description="Release the lease on a task. Without worker_id any caller may release.",
)
async def release_task(
    task_id: TaskId,
    queue: Queue,
    request: ReleaseTaskRequest | None = None,
) -> ReleaseResponse:
    """
    Release a task's lease.

    Args:
        task_id: The task id.
        queue: The task queue.
        request: Optional holder id and reason.

    Returns:
        ReleaseResponse. Releasing a task with no lease succeeds.

    Raises:
        LeaseConflictError: If worker_id is given and does not hold the lease.
    """
    request = request or ReleaseTaskRequest()
    released = await queue.release(task_id, worker_id=request.worker_id, reason=request.reason)
    return ReleaseResponse(message=None if released else "No active lease")


@router.post(
    "/{task_id}/renew",
    response_model=RenewResponse,
    summary="Renew a lease",
)
async def renew_task(task_id: TaskId, request: RenewTaskRequest, queue: Queue) -> RenewResponse:
    lease = await queue.renew(task_id, request.worker_id, extend_seconds=request.extend_sec)
    return RenewResponse(lease=lease)


@router.post(
    "/{task_id}/status",
    response_model=StatusResponse,
    summary="Update task status",
)
async def update_status(
    task_id: TaskId,
    request: UpdateStatusRequest,
    queue: Queue,
) -> StatusResponse:
    task = await queue.update_status(task_id, request.status)
    return StatusResponse(status=task.status)


@results_router.post(
    "/{task_id}",
    response_model=CompleteResponse,
    summary="Complete a task",
    description="Store the task's result and remove it from the queue. The first result wins.",
)
async def complete_task(task_id: TaskId, result: TaskResult, queue: Queue) -> CompleteResponse:
    stored = await queue.complete(task_id, result)
    return CompleteResponse(result=stored)


@results_router.get(
    "/{task_id}",
    response_model=TaskResult,
    summary="Get a task result",
)
async def get_result(task_id: TaskId, queue: Queue) -> TaskResult:
    return await queue.get_result(task_id)
