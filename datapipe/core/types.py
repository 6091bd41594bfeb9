"""
datapipe Core Types

Data types and enums shared across the core modules.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class DatabaseType(Enum):
    """Destination database families the copy engine knows about."""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    MSSQL = "mssql"
    ORACLE = "oracle"
    SQLITE = "sqlite"
    UNKNOWN = "unknown"


class NativeCopyMode(Enum):
    """When to use the native COPY protocol instead of batched INSERTs."""
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


class InserterKind(Enum):
    """Insertion strategy picked for a copy operation."""
    BULK = "bulk"
    COPY_IN = "copy_in"


@dataclass
class Column:
    """A destination column; type_tag is only resolved for native copy."""
    name: str
    type_tag: Optional[str] = None


@dataclass
class OperationResult:
    """Standard result type for API operations."""
    success: bool
    message: str
    data: Optional[Any] = None
    record_count: Optional[int] = None
    error_details: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            'success': self.success,
            'message': self.message
        }
        if self.data is not None:
            result['data'] = self.data
        if self.record_count is not None:
            result['record_count'] = self.record_count
        if self.error_details:
            result['error_details'] = self.error_details
        return result
