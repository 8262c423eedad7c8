import logging
import os

from opentelemetry import trace

logger = logging.getLogger(__name__)

_TRACER_NAME = "wrs_sync"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a tracer; a no-op tracer when no provider is configured."""
    return trace.get_tracer(name or _TRACER_NAME)


def _instrument(label: str, apply) -> None:
    try:
        apply()
        logger.info("otel_instrumented target=%s", label)
    except Exception:
        logger.warning("otel_instrumentation_unavailable target=%s", label, exc_info=True)


def _instrument_fastapi(app):
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app)


def _instrument_sqlalchemy():
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    from app.db import get_engine

    SQLAlchemyInstrumentor().instrument(engine=get_engine())


def _instrument_celery():
    from opentelemetry.instrumentation.celery import CeleryInstrumentor

    CeleryInstrumentor().instrument()


def _instrument_httpx():
    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    HTTPXClientInstrumentor().instrument()


def _instrument_redis():
    from opentelemetry.instrumentation.redis import RedisInstrumentor

    RedisInstrumentor().instrument()


def setup_otel(app) -> None:
    """Enable OpenTelemetry tracing when OTEL_ENABLED is set.

    The Webflow and FreshBooks clients are httpx based, so outbound API
    calls show up as child spans of the request or task that issued them.
    Instrumentation packages are optional; a missing one is logged.
    """
    enabled = os.getenv("OTEL_ENABLED", "false").lower() in {"1", "true", "yes", "on"}
    if not enabled:
        return

    try:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except Exception:
        logger.exception("otel_sdk_unavailable")
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", _TRACER_NAME)
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    trace.set_tracer_provider(provider)
    exporter = OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces") if endpoint else OTLPSpanExporter()
    provider.add_span_processor(BatchSpanProcessor(exporter))

    _instrument("fastapi", lambda: _instrument_fastapi(app))
    _instrument("sqlalchemy", _instrument_sqlalchemy)
    _instrument("celery", _instrument_celery)
    _instrument("httpx", _instrument_httpx)
    _instrument("redis", _instrument_redis)

    logger.info("otel_enabled service=%s", service_name)
