"""
Error presentation and the error log for Inscription Reader.

Observers never inspect exception classes themselves: the controller hands
them the dict built by ErrorFormatter.format_for_gui, whose ``action`` says
which recovery the user has (retry, adjust parameters, start over, save
the finished document again, fix the input).
"""

import json
import logging
import traceback
from pathlib import Path
from typing import Any, Dict, Optional

from inscription_reader.core.errors import (
    ConfigurationError,
    DataError,
    ErrorCodes,
    InscriptionError,
    NetworkError,
    ServiceError,
    SessionExpired,
    ValidationError,
    is_retryable,
)


# Recovery offered to the user, keyed by what went wrong
ACTION_RETRY = 'retry'
ACTION_ADJUST_PARAMETERS = 'adjust_parameters'
ACTION_START_OVER = 'start_over'
ACTION_SAVE_AGAIN = 'save_again'
ACTION_FIX_INPUT = 'fix_input'

_TITLES = {
    SessionExpired: "Session Expired",
    NetworkError: "Recognition Service Unreachable",
    ServiceError: "Recognition Failed",
    ValidationError: "Validation Error",
    DataError: "File Error",
    ConfigurationError: "Settings Error",
}


class ErrorFormatter:
    """Turns errors into user text, log text and observer payloads."""

    def format_for_user(self, error: Exception) -> str:
        if isinstance(error, InscriptionError):
            return error.format_user_message()
        return f"An error occurred: {error}"

    def format_for_log(self, error: Exception, include_trace: bool = True) -> str:
        if isinstance(error, InscriptionError):
            return error.format_log_message()
        msg = f"{error.__class__.__name__}: {error}"
        if include_trace:
            msg += f"\nStack trace:\n{traceback.format_exc()}"
        return msg

    def format_for_gui(self, error: Exception) -> Dict[str, Any]:
        """
        Build the payload emitted on SessionController.error_occurred.

        Returns:
            Dictionary with title, message, code, suggestions, details,
            severity, retryable, action and the failed operation (if known)
        """
        if not isinstance(error, InscriptionError):
            return {
                'title': 'Error',
                'message': str(error),
                'code': ErrorCodes.UNKNOWN_ERROR,
                'suggestions': [],
                'details': {'type': error.__class__.__name__},
                'severity': 'error',
                'retryable': False,
                'action': None,
                'operation': None,
            }

        return {
            'title': self._title(error),
            'message': error.message,
            'code': error.error_code,
            'suggestions': list(error.suggestions),
            'details': error.context or None,
            'severity': self._severity(error),
            'retryable': is_retryable(error),
            'action': self.recovery_action(error),
            'operation': error.context.get('operation'),
        }

    @staticmethod
    def recovery_action(error: Exception) -> Optional[str]:
        """What the user can do next; None when nothing specific applies."""
        if isinstance(error, SessionExpired):
            # The backend forgot the session; local state was reset too
            return ACTION_START_OVER
        if isinstance(error, ServiceError):
            # Backend processed the image but failed; other parameters may work
            return ACTION_ADJUST_PARAMETERS
        if isinstance(error, NetworkError):
            return ACTION_RETRY
        if isinstance(error, DataError) and error.error_code == ErrorCodes.FILE_WRITE_ERROR:
            return ACTION_SAVE_AGAIN
        if isinstance(error, ValidationError):
            if error.error_code == ErrorCodes.OPERATION_IN_PROGRESS:
                return ACTION_RETRY
            return ACTION_FIX_INPUT
        return None

    @staticmethod
    def _title(error: InscriptionError) -> str:
        for error_class, title in _TITLES.items():
            if isinstance(error, error_class):
                return title
        return "Error"

    @staticmethod
    def _severity(error: InscriptionError) -> str:
        if isinstance(error, NetworkError):
            return 'critical'
        if isinstance(error, (ValidationError, SessionExpired)):
            return 'warning'
        return 'error'


class ErrorLogger:
    """
    Error log shared by the controller and the application.

    The user-facing message goes out at the requested level; the full
    technical record (codes, context, cause) goes out at DEBUG so it only
    lands in errors.log.
    """

    def __init__(
        self,
        logger_name: str = 'inscription_reader.errors',
        log_file: Optional[Path] = None,
        console_level: int = logging.WARNING,
        file_level: int = logging.DEBUG
    ):
        """
        Args:
            logger_name: Name for the logger instance
            log_file: Optional path to error log file
            console_level: Logging level for console output
            file_level: Logging level for file output
        """
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(logging.DEBUG)
        self.formatter = ErrorFormatter()

        # Replace handlers from a previous instance bound to the same name
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level)
        console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))
        self.logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(file_level)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
            self.logger.addHandler(file_handler)

    def log_error(self, error: Exception, level: int = logging.ERROR, include_trace: bool = True):
        """Log ``error``: user text at ``level``, technical record at DEBUG."""
        if not isinstance(error, InscriptionError):
            self.logger.log(level, self.formatter.format_for_log(error, include_trace))
            return

        self.logger.log(level, self.formatter.format_for_user(error))
        self.logger.debug(self.formatter.format_for_log(error, include_trace))
        if error.context:
            self.logger.debug(f"Error context: {json.dumps(error.context, indent=2, default=str)}")


_error_logger: Optional[ErrorLogger] = None

DEFAULT_LOG_DIR = Path.home() / '.inscription_reader' / 'logs'


def configure_error_logger(log_dir: Optional[Path] = None, console_level: int = logging.WARNING) -> ErrorLogger:
    """
    (Re)create the global error logger writing to ``log_dir/errors.log``.

    Passing ``None`` disables the file handler.
    """
    global _error_logger
    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / 'errors.log'
    _error_logger = ErrorLogger(log_file=log_file, console_level=console_level)
    return _error_logger


def get_error_logger() -> ErrorLogger:
    """Global error logger; created on first use with the default log directory."""
    if _error_logger is None:
        return configure_error_logger(DEFAULT_LOG_DIR)
    return _error_logger
