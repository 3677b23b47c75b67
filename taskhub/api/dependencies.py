"""
FastAPI dependencies resolving the per-app service graph.
"""

from typing import Annotated

from fastapi import Depends, Path, Request

from taskhub.constants import TASK_ID_PATTERN
from taskhub.queue.task_queue import TaskQueue
from taskhub.resilience.circuit_breaker import CircuitBreakerRegistry
from taskhub.services import HubServices


def get_services(request: Request) -> HubServices:
    """Services attached to the application during lifespan startup."""
    return request.app.state.services


def get_task_queue(services: Annotated[HubServices, Depends(get_services)]) -> TaskQueue:
    return services.task_queue


def get_breakers(services: Annotated[HubServices, Depends(get_services)]) -> CircuitBreakerRegistry:
    return services.breakers


Services = Annotated[HubServices, Depends(get_services)]
Queue = Annotated[TaskQueue, Depends(get_task_queue)]
Breakers = Annotated[CircuitBreakerRegistry, Depends(get_breakers)]
TaskId = Annotated[str, Path(pattern=TASK_ID_PATTERN, description="Task id")]
