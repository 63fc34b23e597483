"""
Tests for the error handling framework.

Verifies the error taxonomy, formatting utilities and error logger.
"""

import unittest
import logging
import tempfile
import shutil
from pathlib import Path
from unittest.mock import patch, MagicMock

from inscription_reader.core.errors import (
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

from inscription_reader.core.error_formatting import (
    ACTION_ADJUST_PARAMETERS,
    ACTION_FIX_INPUT,
    ACTION_RETRY,
    ACTION_SAVE_AGAIN,
    ACTION_START_OVER,
    ErrorFormatter,
    ErrorLogger,
    configure_error_logger,
    get_error_logger,
)


class TestInscriptionError(unittest.TestCase):
    """Test the base InscriptionError class."""

    def test_basic_error_creation(self):
        error = InscriptionError(
            message="Test error",
            error_code=1001,
            context={'location': 'test'},
            suggestions=["Try again", "Check settings"]
        )

        self.assertEqual(error.message, "Test error")
        self.assertEqual(error.error_code, 1001)
        self.assertEqual(error.context['location'], 'test')
        self.assertEqual(len(error.suggestions), 2)
        self.assertIsNotNone(error.timestamp)

    def test_default_code(self):
        self.assertEqual(InscriptionError("x").error_code, 9000)

    def test_error_with_cause(self):
        """Test wrapping another exception."""
        original = ValueError("Original error")
        error = InscriptionError(message="Wrapped error", cause=original)

        self.assertIs(error.cause, original)
        self.assertEqual(error.context['original_error'], "Original error")
        self.assertEqual(error.context['original_type'], "ValueError")

    def test_to_dict(self):
        error = InscriptionError(message="Test error", error_code=1001, context={'test': True})

        error_dict = error.to_dict()
        self.assertEqual(error_dict['error_type'], 'InscriptionError')
        self.assertEqual(error_dict['message'], "Test error")
        self.assertEqual(error_dict['code'], 1001)
        self.assertEqual(error_dict['context']['test'], True)
        self.assertIn('timestamp', error_dict)

    def test_format_user_message(self):
        error = InscriptionError(
            message="Service down",
            suggestions=["Start the service", "Retry"]
        )

        user_msg = error.format_user_message()
        self.assertIn("Service down", user_msg)
        self.assertIn("1. Start the service", user_msg)
        self.assertIn("2. Retry", user_msg)

    def test_format_log_message(self):
        error = InscriptionError(message="Test error", error_code=1001, context={'location': 'test'})

        log_msg = error.format_log_message()
        self.assertIn("[1001]", log_msg)
        self.assertIn("InscriptionError", log_msg)
        self.assertIn("Context:", log_msg)


class TestErrorSubclasses(unittest.TestCase):
    """Test specific error subclasses."""

    def test_network_error(self):
        error = NetworkError("Request timed out", error_code=ErrorCodes.CONNECTION_TIMEOUT)

        self.assertEqual(error.context['category'], 'NETWORK')
        self.assertEqual(error.error_code, ErrorCodes.CONNECTION_TIMEOUT)
        self.assertTrue(error.suggestions)

    def test_service_unavailable_is_network_error(self):
        error = ServiceUnavailable("Cannot reach service")

        self.assertIsInstance(error, NetworkError)
        self.assertEqual(error.error_code, ErrorCodes.SERVICE_UNAVAILABLE)
        self.assertEqual(error.context['category'], 'NETWORK')

    def test_service_error_status_code(self):
        error = ServiceError("Processing failed", status_code=500)

        self.assertEqual(error.context['category'], 'SERVICE')
        self.assertEqual(error.context['status_code'], 500)

    def test_data_error(self):
        error = DataError("Bad payload", file_path="/tmp/a.png", error_code=ErrorCodes.INVALID_PAYLOAD)

        self.assertEqual(error.context['category'], 'DATA')
        self.assertEqual(error.context['file_path'], "/tmp/a.png")

    def test_session_expired(self):
        error = SessionExpired("Session unknown", session_id="abc")

        self.assertEqual(error.context['category'], 'SESSION')
        self.assertEqual(error.context['session_id'], "abc")
        self.assertIn("Start over with a new session", error.suggestions)

    def test_configuration_error(self):
        error = ConfigurationError("Bad value", setting_name="timeout_seconds")

        self.assertEqual(error.context['category'], 'CONFIGURATION')
        self.assertEqual(error.context['setting'], "timeout_seconds")

    def test_validation_error(self):
        error = ValidationError("Out of range", field_name="scale", error_code=ErrorCodes.OUT_OF_RANGE)

        self.assertEqual(error.context['category'], 'VALIDATION')
        self.assertEqual(error.context['field'], "scale")

    def test_explicit_suggestions_override_defaults(self):
        error = NetworkError("down", suggestions=["Only this"])
        self.assertEqual(error.suggestions, ["Only this"])

    def test_is_retryable(self):
        self.assertTrue(is_retryable(NetworkError("x")))
        self.assertTrue(is_retryable(ServiceUnavailable("x")))
        self.assertTrue(is_retryable(ServiceError("x")))
        self.assertFalse(is_retryable(ValidationError("x")))
        self.assertFalse(is_retryable(SessionExpired("x")))
        self.assertFalse(is_retryable(ValueError("x")))


class TestWrapExternalError(unittest.TestCase):

    def test_wrap_external_error(self):
        original = ValueError("Bad value")
        wrapped = wrap_external_error(original, "Value processing failed", ValidationError, field='scale')

        self.assertIsInstance(wrapped, ValidationError)
        self.assertEqual(wrapped.message, "Value processing failed")
        self.assertIs(wrapped.cause, original)
        self.assertEqual(wrapped.context['field'], 'scale')

    def test_wrap_defaults_to_base_class(self):
        wrapped = wrap_external_error(RuntimeError("boom"), "Unexpected")
        self.assertIs(type(wrapped), InscriptionError)


class TestErrorFormatter(unittest.TestCase):
    """Test error formatting utilities."""

    def setUp(self):
        self.formatter = ErrorFormatter()

    def test_format_for_user_inscription_error(self):
        error = NetworkError("Connection failed", suggestions=["Check network"])

        user_msg = self.formatter.format_for_user(error)
        self.assertIn("Connection failed", user_msg)
        self.assertIn("Check network", user_msg)

    def test_format_for_user_standard_error(self):
        user_msg = self.formatter.format_for_user(ValueError("Test error"))
        self.assertEqual(user_msg, "An error occurred: Test error")

    def test_service_error_offers_parameter_adjustment(self):
        error = ServiceError("Processing failed", status_code=500, context={'operation': 'translate'})

        gui_data = self.formatter.format_for_gui(error)
        self.assertEqual(gui_data['title'], 'Recognition Failed')
        self.assertEqual(gui_data['message'], 'Processing failed')
        self.assertEqual(gui_data['code'], ErrorCodes.PROCESSING_FAILED)
        self.assertIn("Adjust the scale or noise divisor and retry", gui_data['suggestions'])
        self.assertEqual(gui_data['severity'], 'error')
        self.assertTrue(gui_data['retryable'])
        self.assertEqual(gui_data['action'], ACTION_ADJUST_PARAMETERS)
        self.assertEqual(gui_data['operation'], 'translate')

    def test_session_expired_offers_start_over(self):
        gui_data = self.formatter.format_for_gui(SessionExpired("gone", session_id="sess-1"))

        self.assertEqual(gui_data['title'], 'Session Expired')
        self.assertFalse(gui_data['retryable'])
        self.assertEqual(gui_data['action'], ACTION_START_OVER)
        self.assertEqual(gui_data['severity'], 'warning')
        self.assertEqual(gui_data['suggestions'], ["Start over with a new session"])

    def test_unreachable_service_offers_retry(self):
        gui_data = self.formatter.format_for_gui(ServiceUnavailable("refused"))

        self.assertEqual(gui_data['title'], 'Recognition Service Unreachable')
        self.assertEqual(gui_data['severity'], 'critical')
        self.assertEqual(gui_data['action'], ACTION_RETRY)

    def test_failed_save_offers_save_again(self):
        error = DataError("Could not save", error_code=ErrorCodes.FILE_WRITE_ERROR)
        self.assertEqual(self.formatter.format_for_gui(error)['action'], ACTION_SAVE_AGAIN)

    def test_malformed_payload_has_no_action(self):
        error = DataError("Bad payload", error_code=ErrorCodes.INVALID_PAYLOAD)
        self.assertIsNone(self.formatter.format_for_gui(error)['action'])

    def test_validation_actions(self):
        busy = ValidationError("busy", error_code=ErrorCodes.OPERATION_IN_PROGRESS)
        missing = ValidationError("no file", error_code=ErrorCodes.MISSING_REQUIRED)

        self.assertEqual(self.formatter.recovery_action(busy), ACTION_RETRY)
        self.assertEqual(self.formatter.recovery_action(missing), ACTION_FIX_INPUT)
        self.assertEqual(self.formatter.format_for_gui(missing)['title'], 'Validation Error')

    def test_plain_exception(self):
        gui_data = self.formatter.format_for_gui(RuntimeError("boom"))

        self.assertEqual(gui_data['title'], 'Error')
        self.assertEqual(gui_data['code'], ErrorCodes.UNKNOWN_ERROR)
        self.assertEqual(gui_data['details'], {'type': 'RuntimeError'})
        self.assertIsNone(gui_data['action'])


class TestErrorLogger(unittest.TestCase):
    """Test error logging functionality."""

    @patch('logging.getLogger')
    def test_logger_initialization(self, mock_get_logger):
        mock_logger = MagicMock()
        mock_logger.handlers = []
        mock_get_logger.return_value = mock_logger

        ErrorLogger(logger_name='test.errors')

        mock_get_logger.assert_called_with('test.errors')
        mock_logger.setLevel.assert_called_with(logging.DEBUG)

    @patch('logging.getLogger')
    def test_log_error_inscription_error(self, mock_get_logger):
        mock_logger = MagicMock()
        mock_logger.handlers = []
        mock_get_logger.return_value = mock_logger

        logger = ErrorLogger()
        logger.log_error(NetworkError("Timed out"), level=logging.ERROR)

        calls = mock_logger.log.call_args_list
        self.assertTrue(any(call[0][0] == logging.ERROR for call in calls))
        mock_logger.debug.assert_called()

    @patch('logging.getLogger')
    def test_log_error_plain_exception(self, mock_get_logger):
        mock_logger = MagicMock()
        mock_logger.handlers = []
        mock_get_logger.return_value = mock_logger

        ErrorLogger().log_error(RuntimeError("boom"), level=logging.WARNING, include_trace=False)

        mock_logger.log.assert_called_once_with(logging.WARNING, "RuntimeError: boom")

    def test_configure_writes_error_log_file(self):
        log_dir = Path(tempfile.mkdtemp())
        try:
            logger = configure_error_logger(log_dir / 'logs')
            logger.log_error(ServiceError("Processing failed", status_code=500))
            for handler in logger.logger.handlers:
                handler.flush()

            log_file = log_dir / 'logs' / 'errors.log'
            self.assertTrue(log_file.exists())
            self.assertIn("Processing failed", log_file.read_text(encoding='utf-8'))
        finally:
            configure_error_logger(None)
            shutil.rmtree(log_dir, ignore_errors=True)

    def test_get_error_logger_returns_configured_instance(self):
        logger = configure_error_logger(None)
        self.assertIs(get_error_logger(), logger)


if __name__ == '__main__':
    unittest.main()
