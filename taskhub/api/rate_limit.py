"""
Rate limiting middleware for the queue API.
"""

import logging
import time
from collections.abc import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse

from taskhub.constants import (
    API_KEY_HEADER,
    API_PREFIX,
    QUEUE_RATE_LIMIT_CHANNEL,
    RATE_LIMIT_EXEMPT_PATHS,
)

logger = logging.getLogger(__name__)


def client_identifier(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Uses the first 8 characters of the API key when one is sent, otherwise
    the client host.
    """
    api_key = request.headers.get(API_KEY_HEADER)
    if api_key:
        return f"key:{api_key[:8]}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


def create_rate_limit_middleware(channel: str = QUEUE_RATE_LIMIT_CHANNEL) -> Callable:
    """
    Create rate limiting middleware for FastAPI.

    Args:
        channel: Rate limit channel applied to API routes.

    Returns:
        The middleware function.
    """

    async def rate_limit_middleware(request: Request, call_next: Callable):
        """Middleware to apply rate limiting and record request metrics."""
        path = request.url.path
        services = request.app.state.services
        start = time.perf_counter()

        # Skip rate limiting for health checks, metrics and docs
        if path in RATE_LIMIT_EXEMPT_PATHS or not path.startswith(API_PREFIX):
            return await call_next(request)

        decision = await services.rate_limiter.check(channel, client_identifier(request))
        if not decision.allowed:
            response = JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Too many requests",
                    "detail": f"Rate limit exceeded. Retry after {decision.retry_after} seconds",
                    "retry_after": decision.retry_after,
                },
                headers=decision.headers(),
            )
        else:
            response = await call_next(request)
            response.headers.update(decision.headers())

        route = request.scope.get("route")
        services.metrics.record_api_request(
            method=request.method,
            endpoint=getattr(route, "path", path),
            status=response.status_code,
            duration_seconds=time.perf_counter() - start,
        )
        return response

    return rate_limit_middleware
