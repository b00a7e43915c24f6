"""Logging setup for quote-sync with line-item and trace correlation.

Every record handled by the configured handlers carries ``item_id``,
``trace_id`` and ``span_id`` attributes. The line-item id comes from the
record's own ``extra`` when given, otherwise from the item bound to the
current task with :func:`bind_line_item`.
"""

import logging
import os
import sys
from contextvars import ContextVar, Token
from typing import Optional

from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.trace import get_current_span

LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [item=%(item_id)s] %(message)s "
    "[trace_id=%(trace_id)s span_id=%(span_id)s]"
)

_NO_VALUE = "-"

_current_item: ContextVar[str] = ContextVar("quote_sync_line_item", default=_NO_VALUE)

_LOGGING_CONFIGURED = False


def bind_line_item(item_id: str) -> Token:
    """Tag log records emitted from the current task with ``item_id``."""
    return _current_item.set(str(item_id) if item_id else _NO_VALUE)


def current_line_item() -> str:
    return _current_item.get()


class LineItemContextFilter(logging.Filter):
    """Attach the line-item id and the active trace/span ids to records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "item_id", None):
            record.item_id = _current_item.get()

        span_context = get_current_span().get_span_context()
        if span_context and span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = _NO_VALUE
            record.span_id = _NO_VALUE
        return True


def _build_otel_handler(service_name: str, level: int) -> Optional[logging.Handler]:
    """Create an OTLP log handler when ENABLE_OTEL is true."""
    if os.getenv("ENABLE_OTEL", "").lower() != "true":
        return None

    endpoint = os.getenv("OTLP_ENDPOINT") or os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"
    )
    try:
        provider = LoggerProvider(resource=Resource.create({"service.name": service_name}))
        provider.add_log_record_processor(
            BatchLogRecordProcessor(
                OTLPLogExporter(endpoint=endpoint, insecure=endpoint.startswith("http://"))
            )
        )
        set_logger_provider(provider)
    except Exception as exc:  # pragma: no cover - exporter misconfiguration
        sys.stderr.write(f"Failed to initialize OpenTelemetry log export: {exc}\n")
        return None

    return LoggingHandler(level=level, logger_provider=provider)


def setup_logging(
    name: str = "quote_sync",
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    service_name: Optional[str] = None,
) -> logging.Logger:
    """
    Configure root logging once per process.

    Console output goes to stderr so it does not interleave with the
    console driver's prompts. Later calls only adjust the named logger.
    """
    global _LOGGING_CONFIGURED

    logger = logging.getLogger(name)
    logger.setLevel(level)
    if _LOGGING_CONFIGURED:
        return logger

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    context_filter = LineItemContextFilter()
    formatter = logging.Formatter(LOG_FORMAT)

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    otel_handler = _build_otel_handler(service_name or name, level)
    if otel_handler:
        handlers.append(otel_handler)

    for handler in handlers:
        handler.setLevel(level)
        if handler is not otel_handler:
            handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    _LOGGING_CONFIGURED = True
    return logger
