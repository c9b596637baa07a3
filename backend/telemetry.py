# telemetry.py - OpenTelemetry tracing for ClientDesk
"""
Traces requests and database statements when OTEL_EXPORTER_OTLP_ENDPOINT is
set. Without an endpoint, or without the optional ``telemetry`` extra
installed, setup is skipped and the service runs untraced.
"""
import os
import logging

logger = logging.getLogger("clientdesk.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "clientdesk-api")
SERVICE_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")


def setup_telemetry(app=None, engine=None):
    """Register an OTLP tracer provider and instrument the app and DB engine.

    Returns the provider, or None when tracing stays off.
    """
    if not OTLP_ENDPOINT:
        logger.info("OpenTelemetry disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME as RES_SVC_NAME
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    except ImportError:
        logger.warning("OTEL_EXPORTER_OTLP_ENDPOINT set but the telemetry extra is not installed")
        return None

    resource = Resource.create({
        RES_SVC_NAME: SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "deployment.environment": ENVIRONMENT,
    })
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)))
    trace.set_tracer_provider(provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health", tracer_provider=provider)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)

    logger.info(f"OpenTelemetry initialised, exporting to {OTLP_ENDPOINT}")
    return provider
