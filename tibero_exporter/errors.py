"""Exception taxonomy for the metric-collection core."""

from typing import Optional


class ExporterError(Exception):
    """Base class for all collection errors."""
    pass


class ConnectionUnavailable(ExporterError):
    """Raised when the pool is absent or unhealthy and no query was attempted."""
    pass


class QueryExecutionFailed(ExporterError):
    """Raised when a query ran and failed, possibly after one reconnect-retry."""

    def __init__(self, query: str, cause: Exception, retried: bool = False):
        self.query = query
        self.cause = cause
        self.retried = retried
        suffix = " (after reconnect retry)" if retried else ""
        super().__init__(f"Query execution failed{suffix}: {cause}")


class ValueCoercionFailed(ExporterError):
    """Raised when a single cell cannot be converted to a float."""

    def __init__(self, value: object, reason: Optional[str] = None):
        self.value = value
        message = f"Cannot coerce {value!r} to float"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class SpecCollectionFailed(ExporterError):
    """Raised when one metric spec's query or mapping failed."""

    def __init__(self, spec_name: str, cause: Exception):
        self.spec_name = spec_name
        self.cause = cause
        super().__init__(f"Collection of metric '{spec_name}' failed: {cause}")
