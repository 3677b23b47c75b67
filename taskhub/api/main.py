"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from taskhub import __version__
from taskhub.api.errors import register_exception_handlers
from taskhub.api.rate_limit import create_rate_limit_middleware
from taskhub.api.routes import circuits_router, health_router, queue_router, results_router
from taskhub.config import get_settings
from taskhub.observability.logging import setup_logging
from taskhub.observability.tracing import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_tracing,
    shutdown_tracing,
)
from taskhub.services import HubServices, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the service graph unless one was injected, and closes the
    services it built on shutdown.
    """
    # Startup
    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        setup_logging()
        setup_tracing()
        services = build_services()
        if services.store.name == "sql":
            instrument_sqlalchemy(services.store.engine.sync_engine)
        app.state.services = services

    logger.info(
        "Application started",
        extra={"backend": app.state.services.store.name},
    )

    yield

    # Shutdown
    if owns_services:
        await app.state.services.close()
        app.state.services = None
        shutdown_tracing()
    logger.info("Application shutdown")


def create_app(services: HubServices | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Prebuilt services. When omitted they are built at startup.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="Task Hub API",
        description="Lease-based task queue with rate limiting and circuit breakers",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add rate limiting middleware
    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=create_rate_limit_middleware(),
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(queue_router)
    app.include_router(results_router)
    app.include_router(circuits_router)

    # Instrument with OpenTelemetry
    instrument_fastapi(app)

    return app


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
