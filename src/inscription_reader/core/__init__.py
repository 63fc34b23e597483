"""
Core layer for Inscription Reader.

This package contains the error taxonomy shared by the backend client,
the session controller and the observers that render errors.
"""

from .errors import (
    InscriptionError,
    NetworkError,
    ServiceUnavailable,
    ServiceError,
    DataError,
    SessionExpired,
    ConfigurationError,
    ValidationError,
    ErrorCodes,
    wrap_external_error,
    is_retryable,
)
from .error_formatting import ErrorFormatter, ErrorLogger, configure_error_logger, get_error_logger

__all__ = [
    'InscriptionError',
    'NetworkError',
    'ServiceUnavailable',
    'ServiceError',
    'DataError',
    'SessionExpired',
    'ConfigurationError',
    'ValidationError',
    'ErrorCodes',
    'wrap_external_error',
    'is_retryable',
    'ErrorFormatter',
    'ErrorLogger',
    'configure_error_logger',
    'get_error_logger',
]
