"""
OpenTelemetry tracing configuration for the WhatsApp Notification Service
"""
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
import structlog
import logging

from app.core.config import get_settings

# Disable verbose logging from OpenTelemetry
logging.getLogger("opentelemetry").setLevel(logging.WARNING)

logger = structlog.get_logger(__name__)
settings = get_settings()


def init_tracing(app):
    """Initialize OpenTelemetry tracing with an OTLP/HTTP exporter"""
    try:
        resource = Resource(attributes={
            SERVICE_NAME: settings.service_name
        })

        provider = TracerProvider(resource=resource)

        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)

        provider.add_span_processor(
            BatchSpanProcessor(
                otlp_exporter,
                max_queue_size=2048,
                max_export_batch_size=512,
                schedule_delay_millis=5000
            )
        )

        trace.set_tracer_provider(provider)

        # Instrument FastAPI - exclude health and metrics endpoints
        FastAPIInstrumentor.instrument_app(
            app,
            excluded_urls="/health,/metrics"
        )

        try:
            from app.database.database import engine
            SQLAlchemyInstrumentor().instrument(
                engine=engine.sync_engine,
                enable_commenter=True
            )
        except Exception as db_error:
            logger.warning("Failed to instrument SQLAlchemy", error=str(db_error))

        # Outbound webhook calls
        try:
            HTTPXClientInstrumentor().instrument()
        except Exception as httpx_error:
            logger.warning("Failed to instrument httpx", error=str(httpx_error))

        logger.info(
            "OpenTelemetry tracing initialized successfully",
            service_name=settings.service_name,
            otlp_endpoint=settings.otlp_endpoint
        )

        return True

    except Exception as e:
        logger.error("Failed to initialize tracing", error=str(e), exc_info=True)
        # Don't fail startup if tracing fails
        return False


def get_tracer(name: str = __name__):
    """Get a tracer instance"""
    return trace.get_tracer(name)
