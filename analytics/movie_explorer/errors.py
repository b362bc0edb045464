"""
Error types raised by the Movie Explorer pipeline.

Every error derives from MovieExplorerError so callers can catch the whole
family at once. Where a builtin exception has the same meaning the error
also inherits from it (ConfigError is a ValueError, DatabaseConnectionError
is a ConnectionError, NotFoundError is a LookupError).
"""

from typing import Optional


class MovieExplorerError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(MovieExplorerError, ValueError):
    """Missing or invalid configuration. Raised before any connection attempt."""


class DatabaseConnectionError(MovieExplorerError, ConnectionError):
    """The data source is unreachable, rejected the credentials or dropped the connection."""


class NotFoundError(MovieExplorerError, LookupError):
    """The requested table or view does not exist."""


class SchemaError(MovieExplorerError):
    """The table does not expose the expected columns or column types."""


class QueryError(MovieExplorerError):
    """A malformed query request (unknown column, unknown reducer, bad literal)."""


class FitError(MovieExplorerError):
    """
    A model could not be fitted from the given data.

    Attributes:
        predictor: Design term that triggered the failure, if one can be named
        condition: Short machine-readable reason ('insufficient_samples',
                   'rank_deficient', 'zero_variance', 'ill_conditioned', ...)
    """

    def __init__(self, message: str, predictor: Optional[str] = None, condition: Optional[str] = None):
        super().__init__(message)
        self.predictor = predictor
        self.condition = condition
