"""
datapipe Core Utilities

Shared helpers for validation, result construction and error formatting.
"""

import threading
import traceback
from typing import List, Dict, Any, Optional
from urllib.parse import urlsplit, urlunsplit

from datapipe.core.types import NativeCopyMode, OperationResult
from datapipe.core.exceptions import ValidationError, DataPipeError, CancelledError


def validate_native_copy_mode(mode: str) -> NativeCopyMode:
    """Validate and convert native copy mode string to enum."""
    if isinstance(mode, NativeCopyMode):
        return mode
    try:
        return NativeCopyMode(str(mode).lower())
    except ValueError:
        valid_modes = [m.value for m in NativeCopyMode]
        raise ValidationError(f"Invalid native copy mode '{mode}'. Valid modes: {valid_modes}")


def validate_positive_int(value: Any, param_name: str) -> int:
    """Validate that a size parameter is a positive integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{param_name} must be a positive integer, got {value!r}")
    return value


def create_success_result(message: str, data: Any = None, record_count: int = None) -> OperationResult:
    """Create a successful operation result."""
    return OperationResult(
        success=True,
        message=message,
        data=data,
        record_count=record_count
    )


def create_error_result(message: str, error_details: str = None) -> OperationResult:
    """Create an error operation result."""
    return OperationResult(
        success=False,
        message=message,
        error_details=error_details
    )


def handle_exception(e: Exception, operation: str) -> OperationResult:
    """Handle exceptions and convert to operation result."""
    if isinstance(e, DataPipeError):
        return create_error_result(e.message, e.details)
    else:
        return create_error_result(
            f"Error during {operation}: {str(e)}",
            str(type(e).__name__)
        )


def validate_required_params(params: Dict[str, Any], required: List[str]) -> None:
    """Validate that required parameters are present and not empty."""
    missing = []
    for param in required:
        if param not in params or params[param] is None or params[param] == '':
            missing.append(param)

    if missing:
        raise ValidationError(f"Missing required parameters: {', '.join(missing)}")


def normalize_boolean_param(value: Any, param_name: str) -> bool:
    """Normalize various boolean representations to bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value.lower() in ('true', '1', 'yes', 'on'):
            return True
        elif value.lower() in ('false', '0', 'no', 'off', ''):
            return False

    raise ValidationError(f"Invalid boolean value for {param_name}: {value}")


def normalize_db_url(url: str) -> str:
    """Rewrite scheme aliases SQLAlchemy does not accept (postgres://)."""
    if not url:
        return url
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    if url.startswith('postgres+'):
        return 'postgresql+' + url[len('postgres+'):]
    return url


def mask_url_password(url: Optional[str]) -> Optional[str]:
    """Hide the password component of a database URL for display."""
    if not url:
        return url
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def format_error(e: BaseException, show_stack_trace: bool = False) -> str:
    """Render an error for the terminal, optionally with its stack trace."""
    if show_stack_trace:
        return ''.join(traceback.format_exception(type(e), e, e.__traceback__)).rstrip()

    message = str(e)
    if isinstance(e, DataPipeError) and e.details:
        message = f"{message} ({e.details})"
    return message


def check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    """Raise CancelledError if the caller asked the copy to stop."""
    if cancel_event is not None and cancel_event.is_set():
        raise CancelledError("Copy operation cancelled", f"cancelled before {stage}")
