"""
Correlation IDs for the DelPro Exporter

Every log line emitted while serving one historical request, or while running
one live update cycle, carries the same correlation ID. Historical requests
reuse the caller's X-Correlation-ID header when present and echo it back.
"""

import contextvars
import logging
import uuid
from typing import Optional

CORRELATION_HEADER = "X-Correlation-ID"
NO_CORRELATION_ID = "N/A"

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'delpro_correlation_id',
    default=None
)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Correlation ID of the current request or cycle, None outside of one."""
    return _correlation_id.get()


class CorrelationContext:
    """
    Binds a correlation ID to the enclosed block.

    Usage:
        with CorrelationContext(request.headers.get(CORRELATION_HEADER)) as correlation_id:
            ...

    Entry and exit must happen in the same thread and context.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        _correlation_id.reset(self._token)
        self._token = None


class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True
