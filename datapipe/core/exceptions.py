"""
datapipe Core Exceptions

Exception hierarchy shared by the copy engine, the API and the CLI.
Every error carries a human readable message plus optional details that
identify the failing stage (table, row-count boundary, statement size).
"""

from typing import Any, Dict, Optional


class DataPipeError(Exception):
    """Base exception for all datapipe errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary for API responses."""
        result = {
            'error': self.__class__.__name__,
            'message': self.message
        }
        if self.details:
            result['details'] = self.details
        return result


class ValidationError(DataPipeError):
    """Raised when an argument or row shape is invalid."""
    pass


class ConfigError(DataPipeError):
    """Raised when the copy configuration is incomplete or malformed."""
    pass


class DatabaseError(DataPipeError):
    """Raised for errors reported by the source or destination database."""
    pass


class StatementError(DatabaseError):
    """Raised when preparing or executing an INSERT/COPY statement fails."""
    pass


class TransactionError(DatabaseError):
    """Raised when a destination transaction cannot be opened or committed."""
    pass


class CopyError(DataPipeError):
    """Raised for copy pipeline failures that are not database errors."""
    pass


class ScanError(CopyError):
    """Raised when a row value cannot be read or coerced to its column type."""
    pass


class CancelledError(CopyError):
    """Raised at the next blocking call after a copy was cancelled."""
    pass
