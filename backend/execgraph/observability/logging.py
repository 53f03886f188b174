"""Logging configuration with request context."""

from __future__ import annotations

import logging
from logging.handlers import SysLogHandler

from opentelemetry import trace

from execgraph.config import get_settings
from execgraph.observability.request_context import get_org_id, get_request_id

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s org_id=%(org_id)s "
    "trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"
)


class RequestIdFilter(logging.Filter):
    """Attach request_id, org_id and the current trace/span ids to log records.

    Records that already carry an ``org_id`` in ``extra`` keep it.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        span_context = span.get_span_context()
        if span_context and span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = "-"
            record.span_id = "-"
        record.request_id = get_request_id() or "-"
        if not getattr(record, "org_id", None):
            record.org_id = get_org_id() or "-"
        return True


def configure_logging() -> None:
    """Configure base logging to include request context."""
    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=LOG_FORMAT,
    )
    root_logger = logging.getLogger()

    # Logger-level filters skip records propagated from child loggers,
    # so the context fields are attached per handler.
    request_filter = RequestIdFilter()
    for handler in root_logger.handlers:
        handler.addFilter(request_filter)

    if settings.syslog_host:
        syslog_handler = SysLogHandler(address=(settings.syslog_host, settings.syslog_port))
        syslog_handler.setLevel(logging.INFO)
        syslog_handler.setFormatter(logging.Formatter("%(name)s %(levelname)s request_id=%(request_id)s %(message)s"))
        syslog_handler.addFilter(request_filter)
        root_logger.addHandler(syslog_handler)
