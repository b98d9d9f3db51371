"""Exception types raised across the exporter."""


class DelProExporterError(Exception):
    """Base class for exporter errors."""


class ConfigurationError(DelProExporterError):
    """Raised when the exporter cannot be configured."""


class DatabaseConnectionError(DelProExporterError):
    """Raised when the DelPro database cannot be reached at startup."""


class RecordSourceError(DelProExporterError):
    """Raised when a query against the record source fails or times out."""


class QueryCancelledError(RecordSourceError):
    """Raised when a running query was cancelled by its caller."""


class InvalidQueryParameterError(DelProExporterError):
    """Raised for malformed or inconsistent historical query parameters."""
