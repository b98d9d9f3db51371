"""
Logging Configuration for the DelPro Exporter

Human-readable console logging by default, structured JSON lines when
JSON_LOGGING=true (or --json-logs) for log shippers.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from delpro_exporter.utils.correlation import NO_CORRELATION_ID, CorrelationIdFilter

CONSOLE_FORMAT = '[%(asctime)s] %(levelname)s - %(message)s'
CONSOLE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Optional attributes passed through `extra=` and copied into JSON output
EXTRA_FIELDS = {
    'oid': 'oid',
    'records': 'records',
    'duration': 'duration_seconds',
    'status_code': 'status_code',
}


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', NO_CORRELATION_ID),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for attribute, key in EXTRA_FIELDS.items():
            if hasattr(record, attribute):
                log_data[key] = getattr(record, attribute)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def json_logging_enabled() -> bool:
    return os.getenv('JSON_LOGGING', 'false').lower() == 'true'


def setup_logging(verbose: bool = False, json_logs: Optional[bool] = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        verbose: Log at DEBUG instead of INFO
        json_logs: Force JSON output on or off (defaults to JSON_LOGGING)

    Returns:
        The configured root logger
    """
    if json_logs is None:
        json_logs = json_logging_enabled()

    handler = logging.StreamHandler()
    if json_logs:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT))
    handler.addFilter(CorrelationIdFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    return root
