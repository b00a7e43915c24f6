"""Tracing/observability setup utilities.

Spans are created around every pricing cycle of a line item. When
ENABLE_OTEL=true they are exported over OTLP/gRPC; otherwise the global
no-op tracer provider stays in place and span creation costs nothing.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind

logger = logging.getLogger(__name__)

_OBSERVABILITY_CONFIGURED = False


def configure_tracing(service_name: str) -> None:
    """Install an OTLP-exporting tracer provider when observability is enabled."""

    global _OBSERVABILITY_CONFIGURED
    if _OBSERVABILITY_CONFIGURED:
        return

    if not os.getenv("OTEL_SERVICE_NAME"):
        os.environ["OTEL_SERVICE_NAME"] = service_name

    if os.getenv("ENABLE_OTEL", "").lower() != "true":
        logger.debug("Tracing disabled (ENABLE_OTEL not set to true)")
        _OBSERVABILITY_CONFIGURED = True
        return

    endpoint = os.getenv("OTLP_ENDPOINT") or os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"
    )
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=endpoint, insecure=endpoint.startswith("http://"))
        )
    )
    trace.set_tracer_provider(provider)
    _OBSERVABILITY_CONFIGURED = True


def stage_span(stage_name: str, *, item_id: str, **attrs: Any):
    """Create a traced span for one synchronizer stage with shared attributes."""
    tracer = trace.get_tracer("quote_sync.stages")
    attributes: Dict[str, Any] = {
        "sync.stage": stage_name,
        "line_item.id": item_id,
        **{key: value for key, value in attrs.items() if value is not None},
    }
    return tracer.start_as_current_span(
        name=f"stage.{stage_name.lower().replace(' ', '_')}",
        kind=SpanKind.INTERNAL,
        attributes=attributes,
    )
