"""
Task handler registry and built-in handlers.

Handlers must be idempotent: a task may run again when a worker crashes
and its lease expires before the result is written.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

import httpx

from taskhub.errors import CircuitOpenError
from taskhub.types.task import TaskContext, TaskResult

logger = logging.getLogger(__name__)

# Type alias for task handler functions
TaskHandler = Callable[[TaskContext], Awaitable[TaskResult]]

# Handler registry
_handlers: dict[str, TaskHandler] = {}


def register_handler(task_type: str) -> Callable[[TaskHandler], TaskHandler]:
    """
    Decorator to register a task handler.

    Args:
        task_type: The task type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_digest")
        async def handle_send_digest(context: TaskContext) -> TaskResult:
            ...
    """
    def decorator(handler: TaskHandler) -> TaskHandler:
        _handlers[task_type] = handler
        logger.debug(f"Registered handler for task type: {task_type}")
        return handler
    return decorator


def get_handler(task_type: str) -> TaskHandler | None:
    return _handlers.get(task_type)


def list_handlers() -> list[str]:
    """List all registered task types."""
    return list(_handlers.keys())


# ============================================================================
# Built-in task handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(context: TaskContext) -> TaskResult:
    """Return the payload as output."""
    logger.info("Echo task executing", extra={"task_id": context.task_id})

    return TaskResult(
        success=True,
        output={"echo": context.task.payload},
    )


@register_handler("sleep")
async def handle_sleep(context: TaskContext) -> TaskResult:
    """
    Sleep for a while, long enough to exercise lease renewal.

    Payload data:
    - duration_seconds: How long to sleep
    """
    duration = context.data.get("duration_seconds", 1)

    logger.info(
        "Sleep task starting",
        extra={"task_id": context.task_id, "duration": duration},
    )

    await asyncio.sleep(duration)

    return TaskResult(
        success=True,
        output={"slept_for": duration},
    )


@register_handler("failing_task")
async def handle_failing_task(context: TaskContext) -> TaskResult:
    """Always fails."""
    return TaskResult(
        success=False,
        error=f"Intentional failure for task {context.task_id}",
    )


@register_handler("http_request")
async def handle_http_request(context: TaskContext) -> TaskResult:
    """
    Make an outbound HTTP request through the target host's circuit breaker.

    Server errors (5xx) and transport errors count as breaker failures;
    client errors do not.

    Payload data:
    - url: The URL to request
    - method: HTTP method (GET, POST, etc.)
    - headers: Optional headers
    - body: Optional JSON request body
    - timeout_seconds: Optional request timeout
    """
    data = context.data
    url = data.get("url")
    method = data.get("method", "GET").upper()
    headers = data.get("headers", {})
    body = data.get("body")
    timeout = data.get("timeout_seconds", context.metadata.get("http_timeout_seconds", 30.0))

    if not url:
        return TaskResult(
            success=False,
            error="Missing 'url' in payload",
        )

    logger.info(
        "HTTP request task",
        extra={"task_id": context.task_id, "method": method, "url": url},
    )

    async def send() -> httpx.Response:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.request(
                method=method,
                url=url,
                headers=headers,
                json=body if method in ["POST", "PUT", "PATCH"] else None,
            )
        if response.is_server_error:
            response.raise_for_status()
        return response

    try:
        if context.breakers is None:
            response = await send()
        else:
            breaker_name = f"http:{urlsplit(url).netloc}"
            response = await context.breakers.execute(breaker_name, send)
    except CircuitOpenError as e:
        return TaskResult(
            success=False,
            error=str(e),
            output={"retry_after": e.retry_after_seconds},
        )
    except httpx.HTTPError as e:
        return TaskResult(
            success=False,
            error=f"HTTP request failed: {e}",
        )

    return TaskResult(
        success=response.is_success,
        output={
            "status_code": response.status_code,
            "headers": dict(response.headers),
            "body": response.text[:1000],  # Truncate response
        },
        error=None if response.is_success else f"HTTP {response.status_code}",
    )


async def execute_task(context: TaskContext) -> TaskResult:
    """
    Execute a task using the handler for its task type.

    Handler exceptions become failed results.

    Args:
        context: The task context.

    Returns:
        TaskResult from the handler.
    """
    task_type = context.task.task_type
    handler = get_handler(task_type)

    if handler is None:
        logger.error(
            f"No handler for task type: {task_type}",
            extra={"task_id": context.task_id},
        )
        return TaskResult(
            success=False,
            error=f"No handler registered for task type: {task_type}",
        )

    try:
        return await handler(context)
    except Exception as e:
        logger.exception(
            "Handler raised exception",
            extra={"task_id": context.task_id, "error": str(e)},
        )
        return TaskResult(
            success=False,
            error=f"Handler exception: {e}",
        )
