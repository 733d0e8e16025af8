"""Logging setup with per-request trace ids."""

import logging
import sys
from contextvars import ContextVar

from app.config import settings

trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [trace=%(trace_id)s] %(message)s"


def get_trace_id() -> str | None:
    """Trace id of the request being handled, if any."""
    return trace_id_var.get()


class TraceIdFilter(logging.Filter):
    """Attach the current trace id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_var.get() or "-"
        return True


def setup_logging() -> None:
    root = logging.getLogger()
    if any(isinstance(f, TraceIdFilter) for h in root.handlers for f in h.filters):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(TraceIdFilter())

    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
