# src/inscription_reader/services/backend_client.py
"""
HTTP client for the inscription recognition service.

Each operation is a single request/response. Transport failures and HTTP
error statuses are mapped onto the application error taxonomy so callers
never see raw httpx exceptions.

Endpoints:
    POST /start-continuous/                 -> {session_id}
    POST /preprocess/                       -> {preprocessed_image, session_id?}
    POST /continuous-translate/{session_id} -> {current_translation, merged_translation, num_images}
    POST /translate/{session_id}            -> document bytes
    POST /predict/                          -> document bytes
    POST /complete-session/{session_id}     -> document bytes
"""

import logging
import mimetypes
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from inscription_reader.core.errors import (
    DataError,
    ErrorCodes,
    NetworkError,
    ServiceError,
    ServiceUnavailable,
    SessionExpired,
    ValidationError,
)
from inscription_reader.models.parameters import ProcessingParameters
from inscription_reader.utils.image_processing import decode_base64_png

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 60.0

_VALIDATION_STATUSES = (400, 415, 422)
_EXPIRED_STATUSES = (404, 410)
_UNAVAILABLE_STATUSES = (502, 503, 504)

# Finalized ids remembered for local SessionExpired checks; oldest are forgotten first
MAX_FINALIZED_SESSIONS = 256


@dataclass(frozen=True)
class PreprocessResult:
    """Preprocessed PNG plus the session id the backend allocated, if any."""

    png_bytes: bytes
    session_id: Optional[str] = None


@dataclass(frozen=True)
class ContinuousTranslation:
    """Response of one continuous translate call."""

    current: Tuple[str, ...]
    merged: Tuple[str, ...]
    image_count: int


class BackendClient:
    """
    Client for the recognition service.

    Attributes:
        base_url: Service root, e.g. ``http://localhost:8000``
        timeout: Per-request timeout in seconds; expiry raises NetworkError
        logger: Logger instance

    Example:
        >>> with BackendClient("http://localhost:8000", timeout=30) as client:
        ...     session_id = client.start_session()
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize the client.

        Args:
            base_url: Service root URL
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used to inject a mock in tests)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = float(timeout)
        self.logger = logging.getLogger(__name__)
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )
        self._finalized: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def __enter__(self) -> 'BackendClient':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def is_finalized(self, session_id: str) -> bool:
        """Whether ``session_id`` was completed or reported unknown."""
        with self._lock:
            return session_id in self._finalized

    def start_session(self) -> str:
        """
        Open a continuous translation session.

        Returns:
            The opaque session id issued by the backend

        Raises:
            ServiceUnavailable, NetworkError: Transport failure
            ServiceError: Backend failure
        """
        response = self._post('/start-continuous/', operation='start_session')
        data = self._json(response, operation='start_session')
        session_id = self._require(data, 'session_id', operation='start_session')
        self.logger.info(f"Started session {session_id}")
        return str(session_id)

    def complete_session(self, session_id: str) -> bytes:
        """
        Finalize a session and fetch its merged document.

        The id is unusable afterwards; further calls raise SessionExpired.
        """
        self._ensure_usable(session_id)
        response = self._post(
            f'/complete-session/{quote(session_id, safe="")}',
            operation='complete_session',
            session_id=session_id,
        )
        self._mark_finalized(session_id)
        self.logger.info(f"Completed session {session_id} ({len(response.content)} bytes)")
        return response.content

    # ------------------------------------------------------------------
    # Per-image operations
    # ------------------------------------------------------------------

    def preprocess(self, file: Union[str, Path], parameters: ProcessingParameters,
                   session_id: Optional[str] = None) -> PreprocessResult:
        """
        Preprocess one photograph.

        Args:
            file: Photograph to upload
            parameters: Scale and noise divisor
            session_id: Session to attach to (implicit-session mode)

        Returns:
            PreprocessResult with decoded PNG bytes and optional session id

        Raises:
            ValidationError: Bad parameters, missing file, or rejected upload
            ServiceError: Backend processing failure
        """
        self._check_parameters(parameters)
        form = parameters.to_form()
        if session_id is not None:
            self._ensure_usable(session_id)
            form['session_id'] = session_id

        response = self._post(
            '/preprocess/',
            operation='preprocess',
            files=self._file_part(file),
            data=form,
            session_id=session_id,
        )
        data = self._json(response, operation='preprocess')
        png_bytes = decode_base64_png(self._require(data, 'preprocessed_image', operation='preprocess'))
        returned_id = data.get('session_id')
        return PreprocessResult(
            png_bytes=png_bytes,
            session_id=str(returned_id) if returned_id else None,
        )

    def translate_in_session(self, session_id: str, file: Union[str, Path],
                             parameters: ProcessingParameters) -> ContinuousTranslation:
        """
        Translate one photograph and append it to a continuous session.

        Raises:
            SessionExpired: Unknown or finalized session
            ServiceError: Backend processing failure
        """
        self._ensure_usable(session_id)
        self._check_parameters(parameters)
        response = self._post(
            f'/continuous-translate/{quote(session_id, safe="")}',
            operation='translate',
            files=self._file_part(file),
            data=parameters.to_form(),
            session_id=session_id,
        )
        data = self._json(response, operation='translate')
        current = self._lines(data, 'current_translation')
        merged = self._lines(data, 'merged_translation')
        count = self._require(data, 'num_images', operation='translate')
        if isinstance(count, bool) or not isinstance(count, int):
            raise DataError(
                f"num_images must be an integer, got {count!r}",
                error_code=ErrorCodes.INVALID_PAYLOAD,
            )
        return ContinuousTranslation(current=current, merged=merged, image_count=count)

    def translate(self, session_id: str) -> bytes:
        """Translate the image preprocessed last in an implicit session."""
        self._ensure_usable(session_id)
        response = self._post(
            f'/translate/{quote(session_id, safe="")}',
            operation='translate',
            session_id=session_id,
        )
        return response.content

    def predict(self, file: Union[str, Path]) -> bytes:
        """Single-shot translation of one photograph, no session."""
        response = self._post('/predict/', operation='predict', files=self._file_part(file))
        return response.content

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _post(self, path: str, operation: str, files=None, data=None,
              session_id: Optional[str] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        context = {'operation': operation, 'url': url}
        self.logger.debug(f"POST {url}")
        try:
            response = self._client.post(path, files=files, data=data)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"{operation} timed out after {self.timeout:g}s",
                error_code=ErrorCodes.CONNECTION_TIMEOUT,
                cause=e,
                context=context,
            )
        except httpx.ConnectError as e:
            raise ServiceUnavailable(
                f"Recognition service is unreachable at {self.base_url}",
                error_code=ErrorCodes.CONNECTION_REFUSED,
                cause=e,
                context=context,
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"{operation} failed: {e}",
                error_code=ErrorCodes.TRANSPORT_ERROR,
                cause=e,
                context=context,
            )

        self._raise_for_status(response, operation, session_id)
        return response

    def _raise_for_status(self, response: httpx.Response, operation: str,
                          session_id: Optional[str]) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = self._detail(response)
        context = {'operation': operation, 'status_code': status}
        self.logger.warning(f"{operation} returned HTTP {status}: {detail}")

        if status in _EXPIRED_STATUSES and session_id is not None:
            self._mark_finalized(session_id)
            raise SessionExpired(
                f"Session {session_id} is no longer available",
                session_id=session_id,
                error_code=ErrorCodes.SESSION_UNKNOWN,
                context=context,
            )
        if status in _VALIDATION_STATUSES:
            raise ValidationError(
                f"Request rejected: {detail}",
                error_code=ErrorCodes.REJECTED_BY_SERVICE,
                context=context,
                suggestions=["Check the selected file and the parameter values"],
            )
        if status in _UNAVAILABLE_STATUSES:
            raise ServiceUnavailable(
                f"Recognition service unavailable (HTTP {status})",
                error_code=ErrorCodes.SERVICE_UNAVAILABLE,
                context=context,
            )
        raise ServiceError(
            f"{operation} failed: {detail}",
            status_code=status,
            error_code=(ErrorCodes.PROCESSING_FAILED if status >= 500
                        else ErrorCodes.UNEXPECTED_STATUS),
            context=context,
        )

    @staticmethod
    def _detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            text = response.text.strip()
            return text[:200] if text else response.reason_phrase
        if isinstance(body, dict) and 'detail' in body:
            return str(body['detail'])
        return str(body)[:200]

    @staticmethod
    def _json(response: httpx.Response, operation: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise DataError(
                f"{operation} returned a non-JSON response",
                error_code=ErrorCodes.INVALID_PAYLOAD,
                cause=e,
            )
        if not isinstance(data, dict):
            raise DataError(
                f"{operation} returned an unexpected payload",
                error_code=ErrorCodes.INVALID_PAYLOAD,
            )
        return data

    @staticmethod
    def _require(data: Dict[str, Any], key: str, operation: str) -> Any:
        if key not in data or data[key] is None:
            raise DataError(
                f"{operation} response is missing '{key}'",
                error_code=ErrorCodes.INVALID_PAYLOAD,
            )
        return data[key]

    @classmethod
    def _lines(cls, data: Dict[str, Any], key: str) -> Tuple[str, ...]:
        value = cls._require(data, key, operation='translate')
        if not isinstance(value, list) or not all(isinstance(line, str) for line in value):
            raise DataError(
                f"'{key}' must be a list of strings",
                error_code=ErrorCodes.INVALID_PAYLOAD,
            )
        return tuple(value)

    @staticmethod
    def _check_parameters(parameters: ProcessingParameters) -> None:
        valid, errors = parameters.validate()
        if not valid:
            raise ValidationError(
                "; ".join(errors),
                field_name='parameters',
                error_code=ErrorCodes.OUT_OF_RANGE,
            )

    @staticmethod
    def _file_part(file: Union[str, Path]) -> Dict[str, Tuple[str, bytes, str]]:
        path = Path(file)
        if not path.is_file():
            raise ValidationError(
                f"File not found: {path}",
                field_name='file',
                error_code=ErrorCodes.MISSING_REQUIRED,
            )
        try:
            content = path.read_bytes()
        except OSError as e:
            raise DataError(
                f"Could not read {path.name}",
                file_path=str(path),
                error_code=ErrorCodes.FILE_READ_ERROR,
                cause=e,
            )
        content_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
        return {'file': (path.name, content, content_type)}

    def _ensure_usable(self, session_id: str) -> None:
        if self.is_finalized(session_id):
            raise SessionExpired(
                f"Session {session_id} has already been completed",
                session_id=session_id,
                error_code=ErrorCodes.SESSION_FINALIZED,
            )

    def _mark_finalized(self, session_id: str) -> None:
        with self._lock:
            self._finalized[session_id] = None
            self._finalized.move_to_end(session_id)
            while len(self._finalized) > MAX_FINALIZED_SESSIONS:
                self._finalized.popitem(last=False)
