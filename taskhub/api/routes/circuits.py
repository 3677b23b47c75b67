"""
Circuit breaker inspection routes.
"""

import logging

from fastapi import APIRouter

from taskhub.api.dependencies import Breakers
from taskhub.constants import API_PREFIX
from taskhub.resilience.circuit_breaker import CircuitBreakerStats
from taskhub.types.api import CircuitStatsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_PREFIX}/circuits", tags=["Circuits"])


def _stats_to_response(name: str, stats: CircuitBreakerStats) -> CircuitStatsResponse:
    return CircuitStatsResponse(name=name, **stats.to_dict())


@router.get(
    "",
    response_model=list[CircuitStatsResponse],
    summary="List circuit breakers",
    description="Snapshot of every circuit breaker this process has created.",
)
async def list_circuits(breakers: Breakers) -> list[CircuitStatsResponse]:
    return [_stats_to_response(name, stats) for name, stats in breakers.stats().items()]


@router.post(
    "/{name}/reset",
    response_model=CircuitStatsResponse,
    summary="Reset a circuit breaker",
)
async def reset_circuit(name: str, breakers: Breakers) -> CircuitStatsResponse:
    """
    Force a circuit breaker back to CLOSED.

    Raises:
        NotFoundError: If no breaker with that name exists.
    """
    stats = breakers.reset(name)
    logger.info("Circuit reset via API", extra={"circuit": name})
    return _stats_to_response(name, stats)
