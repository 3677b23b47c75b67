"""
API routes module.
"""

from taskhub.api.routes.circuits import router as circuits_router
from taskhub.api.routes.health import router as health_router
from taskhub.api.routes.queue import results_router
from taskhub.api.routes.queue import router as queue_router

__all__ = ["queue_router", "results_router", "circuits_router", "health_router"]
