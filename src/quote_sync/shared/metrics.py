"""OpenTelemetry metrics for quote-sync.

This module provides metrics counters for monitoring synchronizer behavior:
- pricing_requests_total: Count of pricing engine requests by shape
- snapshot_emissions_total: Count of snapshots delivered to the parent
- errors_total: Count of errors by type

Metrics are exported to OTLP endpoint when ENABLE_OTEL=true.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

logger = logging.getLogger(__name__)

_METRICS_CONFIGURED = False
_meter: Optional[metrics.Meter] = None
_requests_counter = None
_emissions_counter = None
_errors_counter = None


def configure_metrics() -> None:
    """Configure OpenTelemetry metrics with OTLP exporter."""
    global _METRICS_CONFIGURED, _meter, _requests_counter, _emissions_counter, _errors_counter

    if _METRICS_CONFIGURED:
        return

    enable_otel = os.getenv("ENABLE_OTEL", "").lower() == "true"
    if not enable_otel:
        logger.debug("Metrics disabled (ENABLE_OTEL not set to true)")
        _METRICS_CONFIGURED = True
        return

    try:
        otlp_endpoint = os.getenv("OTLP_ENDPOINT") or os.getenv(
            "OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"
        )

        otlp_endpoint = otlp_endpoint.rstrip("/")
        if not otlp_endpoint.startswith("http://") and not otlp_endpoint.startswith("https://"):
            otlp_endpoint = f"http://{otlp_endpoint}"

        logger.info(f"Configuring metrics export to OTLP endpoint: {otlp_endpoint}")

        exporter = OTLPMetricExporter(endpoint=otlp_endpoint, insecure=True)
        reader = PeriodicExportingMetricReader(exporter, export_interval_millis=5000)
        provider = MeterProvider(metric_readers=[reader])
        metrics.set_meter_provider(provider)

        _meter = metrics.get_meter("quote_sync")

        _requests_counter = _meter.create_counter(
            name="pricing_requests_total",
            description="Total number of pricing engine requests issued",
            unit="1",
        )

        _emissions_counter = _meter.create_counter(
            name="snapshot_emissions_total",
            description="Total number of line-item snapshots delivered to the parent",
            unit="1",
        )

        _errors_counter = _meter.create_counter(
            name="errors_total",
            description="Total number of errors by type",
            unit="1",
        )

        logger.info("OpenTelemetry metrics configured successfully")
        _METRICS_CONFIGURED = True

    except Exception as e:
        logger.warning(f"Failed to configure metrics: {e}")
        _METRICS_CONFIGURED = True


def increment_pricing_requests(shape: str, product_id: str) -> None:
    """
    Increment pricing requests counter.

    Args:
        shape: Request shape ('describe' or 'recompute')
        product_id: Product being priced
    """
    if _requests_counter:
        _requests_counter.add(1, {"shape": shape, "product_id": product_id})


def increment_snapshot_emissions(item_id: str) -> None:
    if _emissions_counter:
        _emissions_counter.add(1, {"item_id": item_id})


def increment_errors(error_type: str, item_id: Optional[str] = None) -> None:
    """
    Increment errors counter.

    Args:
        error_type: Type/category of error (e.g., 'unauthorized', 'remote', 'batch')
        item_id: Optional line-item identifier for attribution
    """
    if _errors_counter:
        attributes = {"error_type": error_type}
        if item_id:
            attributes["item_id"] = item_id
        _errors_counter.add(1, attributes)
