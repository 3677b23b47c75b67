"""
Health check routes.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, Response

from taskhub import __version__
from taskhub.api.dependencies import Services
from taskhub.types.api import HealthResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and the key-value store.",
)
async def health_check(services: Services) -> HealthResponse:
    """
    Perform a health check.

    Checks store connectivity and returns service status.

    Args:
        services: Application services.

    Returns:
        HealthResponse with service status.
    """
    store_status = "healthy" if await services.store.ping() else "unhealthy"

    return HealthResponse(
        status="healthy" if store_status == "healthy" else "degraded",
        version=__version__,
        store=store_status,
        backend=services.store.name,
        timestamp=datetime.now(UTC),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(services: Services) -> JSONResponse:
    """
    Kubernetes readiness probe endpoint.

    Answers 503 while the store is unreachable so the pod leaves rotation.
    """
    ready = await services.store.ping()
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"ready": ready},
    )


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics(services: Services) -> Response:
    """
    Expose Prometheus metrics.

    Returns:
        Prometheus-formatted metrics.
    """
    return Response(
        content=services.metrics.get_metrics(),
        media_type=services.metrics.get_content_type(),
    )
