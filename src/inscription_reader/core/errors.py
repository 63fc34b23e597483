"""
Unified error handling framework for Inscription Reader.

This module defines the standard error hierarchy used between the backend
client, the session controller and whatever observer renders errors to
the user.

Error Code Ranges:
- 1000-1999: Network / transport errors
- 2000-2999: Backend service errors
- 4000-4999: Data/File errors
- 5000-5999: Session errors
- 6000-6999: Configuration errors
- 7000-7999: Validation errors
- 9000-9999: Unknown/System errors
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
import traceback


class InscriptionError(Exception):
    """
    Base exception for all Inscription Reader errors.

    Provides structured error information with context tracking.
    """

    # Base error code for unknown errors
    DEFAULT_CODE = 9000

    def __init__(
        self,
        message: str,
        error_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """
        Initialize an Inscription Reader error.

        Args:
            message: Human-readable error description
            error_code: Numeric error code for categorization
            context: Additional context information (WHERE)
            cause: Original exception if this wraps another error
            suggestions: List of possible solutions or next steps
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.DEFAULT_CODE
        self.context = context or {}
        self.cause = cause
        self.suggestions = suggestions or []
        self.timestamp = datetime.now()

        # Capture stack trace
        self.stack_trace = traceback.format_exc() if cause else None

        if cause:
            self.context['original_error'] = str(cause)
            self.context['original_type'] = type(cause).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'code': self.error_code,
            'context': self.context,
            'suggestions': self.suggestions,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'stack_trace': self.stack_trace
        }

    def format_user_message(self) -> str:
        """Format error for user display (without technical details)."""
        msg = f"{self.message}"
        if self.suggestions:
            msg += "\n\nSuggestions:"
            for i, suggestion in enumerate(self.suggestions, 1):
                msg += f"\n  {i}. {suggestion}"
        return msg

    def format_log_message(self) -> str:
        """Format error for logging (with all details)."""
        parts = [
            f"[{self.error_code}] {self.__class__.__name__}: {self.message}"
        ]

        if self.context:
            parts.append(f"Context: {self.context}")

        if self.cause:
            parts.append(f"Caused by: {self.cause}")

        if self.stack_trace:
            parts.append(f"Stack trace:\n{self.stack_trace}")

        return " | ".join(parts)


def _with_category(kwargs: Dict[str, Any], category: str) -> Dict[str, Any]:
    if kwargs.get('context') is None:
        kwargs['context'] = {}
    kwargs['context']['category'] = category
    return kwargs


class NetworkError(InscriptionError):
    """Transport failures: unreachable host, dropped connection, timeout."""
    DEFAULT_CODE = 1001

    def __init__(self, message: str, **kwargs):
        kwargs = _with_category(kwargs, 'NETWORK')
        kwargs.setdefault('suggestions', [
            "Check that the recognition service is running",
            "Retry the operation",
        ])
        super().__init__(message, **kwargs)


class ServiceUnavailable(NetworkError):
    """The backend could not be reached or reported itself unavailable."""
    DEFAULT_CODE = 1005


class ServiceError(InscriptionError):
    """The backend accepted the request but failed to process it."""
    DEFAULT_CODE = 2001

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        kwargs = _with_category(kwargs, 'SERVICE')
        if status_code is not None:
            kwargs['context']['status_code'] = status_code
        kwargs.setdefault('suggestions', [
            "Adjust the scale or noise divisor and retry",
            "Try a clearer photograph of the inscription",
        ])
        super().__init__(message, **kwargs)


class DataError(InscriptionError):
    """Errors related to local files and malformed payloads."""
    DEFAULT_CODE = 4001

    def __init__(self, message: str, file_path: Optional[str] = None, **kwargs):
        kwargs = _with_category(kwargs, 'DATA')
        if file_path:
            kwargs['context']['file_path'] = file_path
        super().__init__(message, **kwargs)


class SessionExpired(InscriptionError):
    """The session id is unknown to the backend or already finalized."""
    DEFAULT_CODE = 5001

    def __init__(self, message: str, session_id: Optional[str] = None, **kwargs):
        kwargs = _with_category(kwargs, 'SESSION')
        if session_id:
            kwargs['context']['session_id'] = session_id
        kwargs.setdefault('suggestions', ["Start over with a new session"])
        super().__init__(message, **kwargs)


class ConfigurationError(InscriptionError):
    """Errors related to application configuration and settings."""
    DEFAULT_CODE = 6001

    def __init__(self, message: str, setting_name: Optional[str] = None, **kwargs):
        kwargs = _with_category(kwargs, 'CONFIGURATION')
        if setting_name:
            kwargs['context']['setting'] = setting_name
        super().__init__(message, **kwargs)


class ValidationError(InscriptionError):
    """Errors related to input validation; raised before any network call."""
    DEFAULT_CODE = 7001

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        kwargs = _with_category(kwargs, 'VALIDATION')
        if field_name:
            kwargs['context']['field'] = field_name
        super().__init__(message, **kwargs)


# Error code constants for common scenarios
class ErrorCodes:
    """Standard error codes for common error scenarios."""

    # Network errors (1000-1999)
    CONNECTION_REFUSED = 1001
    CONNECTION_TIMEOUT = 1002
    CONNECTION_LOST = 1003
    TRANSPORT_ERROR = 1004
    SERVICE_UNAVAILABLE = 1005

    # Service errors (2000-2999)
    PROCESSING_FAILED = 2001
    UNEXPECTED_STATUS = 2002

    # Data errors (4000-4999)
    FILE_NOT_FOUND = 4001
    FILE_READ_ERROR = 4002
    FILE_WRITE_ERROR = 4003
    INVALID_PAYLOAD = 4004
    INVALID_IMAGE = 4005

    # Session errors (5000-5999)
    SESSION_UNKNOWN = 5001
    SESSION_FINALIZED = 5002

    # Configuration errors (6000-6999)
    CONFIG_NOT_FOUND = 6001
    CONFIG_INVALID = 6002
    CONFIG_SAVE_ERROR = 6003

    # Validation errors (7000-7999)
    INVALID_PARAMETER = 7001
    OUT_OF_RANGE = 7002
    MISSING_REQUIRED = 7003
    INVALID_STATE = 7004
    OPERATION_IN_PROGRESS = 7005
    REJECTED_BY_SERVICE = 7006

    # System errors (9000-9999)
    UNKNOWN_ERROR = 9000
    INTERNAL_ERROR = 9001


def wrap_external_error(e: Exception, message: str, error_class=InscriptionError, **context) -> InscriptionError:
    """
    Wrap an external exception in an InscriptionError.

    Args:
        e: The original exception
        message: Context-specific error message
        error_class: The InscriptionError subclass to use
        **context: Additional context information

    Returns:
        An InscriptionError instance wrapping the original exception
    """
    return error_class(
        message=message,
        cause=e,
        context=context
    )


def is_retryable(error: Exception) -> bool:
    """Whether the user can simply retry the operation that raised ``error``."""
    return isinstance(error, (NetworkError, ServiceError))
