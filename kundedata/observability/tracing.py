# ==== OPENTELEMETRY TRACING CONFIGURATION ==== #

"""
OpenTelemetry tracing configuration for Kundedata.

Spans are exported over OTLP only when ``OTEL_EXPORTER_OTLP_ENDPOINT`` is
set. Outbound calls (Resend, Supabase Storage, automation webhooks) and
database queries are instrumented automatically; FastAPI is instrumented in
``kundedata.main``.
"""

from typing import Dict, Optional

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from kundedata.settings import Settings, settings as default_settings


def init_tracing(service_name: str, config: Optional[Settings] = None) -> bool:
    """
    Install the OTLP exporter and library instrumentation.

    Args:
        service_name: Fallback ``service.name`` when OTEL_SERVICE_NAME is unset
        config: Settings to read the OTEL variables from (defaults to the global ones)

    Returns:
        bool: True when an exporter was installed
    """
    config = config or default_settings
    if not config.OTEL_EXPORTER_OTLP_ENDPOINT:
        return False

    attributes = parse_key_values(config.OTEL_RESOURCE_ATTRIBUTES)
    attributes["service.name"] = config.OTEL_SERVICE_NAME or service_name
    attributes.setdefault("deployment.environment", config.APP_ENV)

    provider = TracerProvider(resource=Resource.create(attributes))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(
        endpoint=config.OTEL_EXPORTER_OTLP_ENDPOINT,
        headers=parse_key_values(config.OTEL_EXPORTER_OTLP_HEADERS),
    )))
    trace.set_tracer_provider(provider)

    try:
        SQLAlchemyInstrumentor().instrument()
        HTTPXClientInstrumentor().instrument()
    except Exception as e:
        logger.warning(f"Tracing exporter installed without auto-instrumentation: {e}")

    logger.bind(endpoint=config.OTEL_EXPORTER_OTLP_ENDPOINT).info("Tracing enabled")
    return True


def parse_key_values(raw: Optional[str]) -> Dict[str, str]:
    """``a=1, b=2`` -> ``{"a": "1", "b": "2"}``; parts without ``=`` are dropped."""
    pairs: Dict[str, str] = {}
    for part in filter(None, map(str.strip, (raw or "").split(","))):
        key, sep, value = part.partition("=")
        if sep:
            pairs[key.strip()] = value.strip()
    return pairs


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
