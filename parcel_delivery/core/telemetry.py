"""
OpenTelemetry tracing for the delivery services

Spans are created for every HTTP request and MongoDB command. Export goes to
an OTLP/HTTP collector when tracing is enabled and an endpoint is configured.
"""

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from parcel_delivery.core.config import Config, config
from parcel_delivery.core.logger import logger

_pymongo_instrumented = False


def init_telemetry(settings: Optional[Config] = None) -> Optional[TracerProvider]:
    """
    Install a tracer provider tagged with the service identity

    Returns:
        The provider, or None when tracing is disabled
    """
    settings = settings or config
    if not settings.enable_tracing:
        logger.info("Tracing disabled by configuration")
        return None

    try:
        resource = Resource.create({
            "service.name": settings.service_name,
            "service.version": settings.service_version,
            "service.environment": settings.environment,
        })
        provider = TracerProvider(resource=resource)

        if settings.otel_exporter_otlp_endpoint:
            exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
            provider.add_span_processor(BatchSpanProcessor(exporter))

        trace.set_tracer_provider(provider)
        logger.info(
            "Tracing initialized",
            metadata={"endpoint": settings.otel_exporter_otlp_endpoint},
        )
        return provider
    except Exception as e:
        logger.error("Failed to initialize tracing", error=e)
        return None


def instrument_app(app) -> None:
    """
    Instrument FastAPI application with OpenTelemetry for automatic span creation

    Args:
        app: FastAPI application instance
    """
    global _pymongo_instrumented

    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumented with OpenTelemetry")

        # Process-wide, once
        if not _pymongo_instrumented:
            PymongoInstrumentor().instrument()
            _pymongo_instrumented = True
            logger.info("PyMongo instrumented with OpenTelemetry")
    except Exception as e:
        logger.error("Failed to instrument application", error=e)
