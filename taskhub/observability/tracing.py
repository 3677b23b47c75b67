"""
OpenTelemetry tracing.

Queue code asks get_tracer() for a tracer unconditionally. Until
setup_tracing() installs an SDK provider the global no-op provider answers,
so unit tests create no spans and need no exporter.
"""

import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Tracer

from taskhub import __version__
from taskhub.config import Settings, get_settings

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "taskhub"

_provider: TracerProvider | None = None


def setup_tracing(settings: Settings | None = None, console: bool = False) -> TracerProvider:
    """
    Install an SDK tracer provider for this process.

    Args:
        settings: Source of the service name and the OTLP endpoint. Spans
            leave the process only when an endpoint is configured.
        console: Also print finished spans, for local debugging.

    Returns:
        The installed provider.
    """
    global _provider

    settings = settings or get_settings()
    provider = TracerProvider(
        resource=Resource.create(
            {SERVICE_NAME: settings.otel_service_name, SERVICE_VERSION: __version__}
        )
    )

    endpoint = settings.otel_exporter_otlp_endpoint
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
        logger.info("Exporting spans over OTLP", extra={"endpoint": endpoint})
    if console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def shutdown_tracing() -> None:
    """Flush pending spans and stop the exporters, if tracing was set up."""
    global _provider

    if _provider is not None:
        _provider.shutdown()
        _provider = None


def get_tracer() -> Tracer:
    return trace.get_tracer(INSTRUMENTATION_NAME, __version__)


def instrument_fastapi(app: Any) -> None:
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(sync_engine: Any) -> None:
    """
    Trace statements issued through an engine.

    Args:
        sync_engine: ``AsyncEngine.sync_engine`` for the SQL store.
    """
    SQLAlchemyInstrumentor().instrument(engine=sync_engine)
