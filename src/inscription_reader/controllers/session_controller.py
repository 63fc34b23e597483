# ============================================================================
# src/inscription_reader/controllers/session_controller.py
"""
Session Controller for the multi-image translation workflow.

Turns user intents (select file, adjust parameters, preprocess, translate,
complete) into backend calls and keeps the WorkflowState consistent across
successes, failures and late responses.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Tuple, Union

from PyQt5.QtCore import QObject, pyqtSignal

from inscription_reader.core.error_formatting import ErrorFormatter, ErrorLogger, get_error_logger
from inscription_reader.core.errors import (
    DataError,
    ErrorCodes,
    InscriptionError,
    SessionExpired,
    ValidationError,
    wrap_external_error,
)
from inscription_reader.models import (
    ImagePhase,
    PreprocessedImage,
    ProcessingParameters,
    SessionMode,
    SessionPhase,
    TranslationSession,
    WorkflowState,
    WorkflowStateModel,
)
from inscription_reader.services.backend_client import BackendClient
from inscription_reader.services.document_export import DocumentExporter, decode_lines
from inscription_reader.services.preview_store import PreviewStore
from inscription_reader.utils.image_processing import image_size, validate_image_file


class _StaleSelection(Exception):
    """The selection changed while a request for the previous one was in flight."""


class SessionController(QObject):
    """
    Controller for the translation session state machine.

    Only one backend call may be in flight at a time. File selection and
    parameter changes stay allowed while a call is running; every call is
    tagged with the image generation it was issued for, and a response that
    arrives after the selection moved on never overwrites the newer image.

    Signals:
        state_changed: Emitted with every new WorkflowState
        busy_changed: Emitted when an operation starts/stops (name, busy)
        error_occurred: Emitted with a gui-formatted error dict
        document_ready: Emitted with the path of a delivered document
    """

    state_changed = pyqtSignal(object)  # WorkflowState
    busy_changed = pyqtSignal(str, bool)  # operation, busy
    error_occurred = pyqtSignal(object)  # dict from ErrorFormatter.format_for_gui
    document_ready = pyqtSignal(str)  # path of saved document

    def __init__(self, client: BackendClient, previews: PreviewStore, exporter: DocumentExporter,
                 model: Optional[WorkflowStateModel] = None,
                 mode: Union[SessionMode, str] = SessionMode.CONTINUOUS,
                 parameters: Optional[ProcessingParameters] = None,
                 document_name: str = "final_translation.txt",
                 single_shot_document_name: str = "translation.txt",
                 error_logger: Optional[ErrorLogger] = None):
        """
        Initialize controller with dependencies.

        Args:
            client: Recognition service client
            previews: Store for preview resources
            exporter: Delivers finished documents
            model: Observable state holder (created if omitted)
            mode: Backend workflow variant
            parameters: Initial slider values
            document_name: File name for completed session documents
            single_shot_document_name: File name in single-shot mode
            error_logger: Error logger (global one if omitted)
        """
        super().__init__()
        self._client = client
        self._previews = previews
        self._exporter = exporter
        self._mode = SessionMode.parse(mode)
        self._model = model or WorkflowStateModel(
            WorkflowState(parameters=parameters or ProcessingParameters())
        )
        self._document_name = document_name
        self._single_shot_document_name = single_shot_document_name
        self._error_logger = error_logger
        self._formatter = ErrorFormatter()
        self._lock = threading.RLock()
        self._pending_document: Optional[Tuple[bytes, str]] = None
        self._logger = logging.getLogger(__name__)

    @property
    def state(self) -> WorkflowState:
        """Current workflow state snapshot."""
        return self._model.state

    @property
    def model(self) -> WorkflowStateModel:
        return self._model

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def has_pending_document(self) -> bool:
        return self._pending_document is not None

    # ------------------------------------------------------------------
    # User intents
    # ------------------------------------------------------------------

    def select_file(self, file_path: Union[str, Path]) -> Tuple[bool, str]:
        """
        Select the next photograph.

        Valid in any state. Clears per-image state (previews, preprocessed
        image, current transliteration) but keeps the session, its merged
        transliteration and image count.

        Returns:
            Tuple of (success, message)
        """
        try:
            path = validate_image_file(file_path)
            handle = self._previews.acquire_file(path, label='source')
        except InscriptionError as e:
            return self._fail(e)

        with self._lock:
            state = self.state
            self._previews.release(state.source_preview)
            if state.preprocessed is not None:
                self._previews.release(state.preprocessed.preview)
            self._commit(state.evolve(
                image_phase=ImagePhase.FILE_SELECTED,
                selected_file=path,
                source_preview=handle,
                preprocessed=None,
                preprocessed_with=None,
                current_translation=(),
                last_error=None,
                image_generation=state.image_generation + 1,
            ))

        if state.is_busy:
            self._logger.info(f"Selected {path.name} while '{state.busy_operation}' is in flight")
        else:
            self._logger.info(f"Selected {path.name}")
        return (True, f"Selected {path.name}")

    def set_parameters(self, scale, noise_divisor) -> Tuple[bool, str]:
        """
        Update the scale and noise divisor sliders.

        A held preprocessed image is kept; translate() re-preprocesses it
        if the values differ from the ones it was produced with.

        Returns:
            Tuple of (success, message)
        """
        try:
            parameters = ProcessingParameters.from_user(scale, noise_divisor)
        except (TypeError, ValueError) as e:
            return self._fail(ValidationError(
                f"Invalid parameters: {e}",
                field_name='parameters',
                error_code=ErrorCodes.INVALID_PARAMETER,
            ))

        valid, errors = parameters.validate()
        if not valid:
            return self._fail(ValidationError(
                "; ".join(errors),
                field_name='parameters',
                error_code=ErrorCodes.OUT_OF_RANGE,
            ))

        with self._lock:
            new_state = self.state.evolve(parameters=parameters, last_error=None)
            self._commit(new_state)

        message = f"Parameters set: scale={parameters.scale}%, noise divisor={parameters.noise_divisor}"
        if new_state.preprocess_stale:
            message += " (image will be preprocessed again before translating)"
        return (True, message)

    def preprocess(self) -> Tuple[bool, str]:
        """
        Preprocess the selected photograph.

        Opens a session first if none is active. If the session opens but
        preprocessing fails, the session stays open for the retry.

        Returns:
            Tuple of (success, message)
        """
        with self._lock:
            state = self.state
            error = self._check_idle('preprocess', state)
            if error is None and state.selected_file is None:
                error = ValidationError(
                    "Select a file before preprocessing",
                    field_name='file',
                    error_code=ErrorCodes.MISSING_REQUIRED,
                )
            if error is None:
                error = self._check_parameters(state.parameters)
            if error is not None:
                return self._fail(error)

            generation = state.image_generation
            file_path = state.selected_file
            parameters = state.parameters
            self._commit(state.evolve(
                image_phase=ImagePhase.PREPROCESSING,
                busy_operation='preprocess',
                last_error=None,
            ))

        self.busy_changed.emit('preprocess', True)
        try:
            preprocessed = self._preprocess_image(generation, file_path, parameters)
            with self._lock:
                self._commit(self.state.evolve(busy_operation=None))
            return (True, f"Preprocessed {file_path.name} ({preprocessed.width}x{preprocessed.height})")
        except _StaleSelection:
            with self._lock:
                self._commit(self.state.evolve(busy_operation=None))
            return (False, f"Selection changed; discarded preprocessed result for {file_path.name}")
        except Exception as e:
            return self._fail_in_flight(e, generation, 'preprocess')
        finally:
            self.busy_changed.emit('preprocess', False)

    def translate(self) -> Tuple[bool, str]:
        """
        Translate the preprocessed photograph and append it to the session.

        Sends the same parameters the held image was preprocessed with. If
        the sliders moved since, the image is preprocessed again first.
        On success per-image state is cleared for the next photograph.

        Returns:
            Tuple of (success, message)
        """
        with self._lock:
            state = self.state
            error = self._check_idle('translate', state)
            if error is None and state.image_phase != ImagePhase.PREPROCESSED:
                error = ValidationError(
                    "Preprocess the selected image before translating",
                    error_code=ErrorCodes.INVALID_STATE,
                    suggestions=["Select a photograph and run preprocessing first"],
                )
            if error is None and state.session_phase != SessionPhase.SESSION_ACTIVE:
                error = ValidationError("No active session", error_code=ErrorCodes.INVALID_STATE)
            if error is None:
                error = self._check_parameters(state.parameters)
            if error is not None:
                return self._fail(error)

            generation = state.image_generation
            file_path = state.selected_file
            parameters = state.parameters
            stale = state.preprocess_stale
            self._commit(state.evolve(
                image_phase=ImagePhase.PREPROCESSING if stale else ImagePhase.TRANSLATING,
                busy_operation='translate',
                last_error=None,
            ))

        self.busy_changed.emit('translate', True)
        try:
            if stale:
                self._logger.info(
                    f"Parameters changed since preprocessing {file_path.name}; preprocessing again"
                )
                self._preprocess_image(generation, file_path, parameters, busy_after='translate')

            with self._lock:
                if self.state.image_generation != generation:
                    raise _StaleSelection()
                if stale:
                    self._commit(self.state.evolve(image_phase=ImagePhase.TRANSLATING))
                session = self.state.session
                preprocessed = self.state.preprocessed

            lines = self._request_translation(session, file_path, parameters)
            count = self._apply_translation(generation, file_path, parameters, preprocessed, lines,
                                            session.session_id)
            return (True, f"Translated {file_path.name}: {len(lines)} line(s), "
                          f"{count} image(s) in session")
        except _StaleSelection:
            with self._lock:
                self._commit(self.state.evolve(busy_operation=None))
            return (False, f"Selection changed; translation of {file_path.name} was not sent")
        except Exception as e:
            return self._fail_in_flight(e, generation, 'translate')
        finally:
            self.busy_changed.emit('translate', False)

    def complete_session(self) -> Tuple[bool, str]:
        """
        Finalize the session and deliver the merged document.

        Completing a session with zero images delivers an empty document.
        Without an active session this is a reported no-op.

        Returns:
            Tuple of (success, message)
        """
        with self._lock:
            state = self.state
            error = self._check_idle('complete', state)
            if error is None and state.session_phase != SessionPhase.SESSION_ACTIVE:
                error = ValidationError(
                    "No active session to complete",
                    error_code=ErrorCodes.INVALID_STATE,
                    suggestions=["Preprocess an image to start a session"],
                )
            if error is not None:
                return self._fail(error)

            session = state.session
            generation = state.image_generation
            self._commit(state.evolve(
                session_phase=SessionPhase.COMPLETING,
                busy_operation='complete',
                last_error=None,
            ))

        self.busy_changed.emit('complete', True)
        fetched = False
        try:
            if self._mode == SessionMode.SINGLE_SHOT:
                document = session.document_text().encode('utf-8')
                filename = self._single_shot_document_name
            else:
                document = self._client.complete_session(session.session_id)
                filename = self._document_name
            fetched = True

            self._pending_document = (document, filename)
            path = self._exporter.deliver(document, filename)
            self._pending_document = None

            with self._lock:
                self._close_session(generation)
            self._logger.info(f"Session {session.session_id} completed with {session.image_count} image(s)")
            self.document_ready.emit(str(path))
            return (True, f"Saved {path.name} ({session.image_count} image(s))")
        except Exception as e:
            if fetched:
                # Backend session is gone; keep the document for retry_delivery()
                with self._lock:
                    self._close_session(generation)
                return self._fail(self._as_inscription_error(e, 'complete'))
            self._pending_document = None
            return self._fail_in_flight(e, generation, 'complete')
        finally:
            self.busy_changed.emit('complete', False)

    def retry_delivery(self) -> Tuple[bool, str]:
        """Save a document whose session completed but whose delivery failed."""
        if self._pending_document is None:
            return self._fail(ValidationError(
                "No document is waiting to be saved",
                error_code=ErrorCodes.INVALID_STATE,
            ))
        document, filename = self._pending_document
        try:
            path = self._exporter.deliver(document, filename)
        except InscriptionError as e:
            return self._fail(e)
        self._pending_document = None
        self.document_ready.emit(str(path))
        return (True, f"Saved {path.name}")

    def reset(self) -> Tuple[bool, str]:
        """Abandon the current session and per-image state locally."""
        with self._lock:
            error = self._check_idle('reset', self.state)
            if error is not None:
                return self._fail(error)
            self._reset_state()
        return (True, "Session discarded")

    def shutdown(self) -> None:
        """Release every preview held by the controller."""
        with self._lock:
            self._reset_state()
            self._previews.release_all()

    # ------------------------------------------------------------------
    # Backend steps
    # ------------------------------------------------------------------

    def _preprocess_image(self, generation: int, file_path: Path, parameters: ProcessingParameters,
                          busy_after: Optional[str] = None) -> PreprocessedImage:
        """
        Run preprocess (opening a session when needed) and store the result.

        Raises:
            _StaleSelection: If the selection changed during the request
            InscriptionError: On any backend or data failure
        """
        session_id = None
        if self._mode == SessionMode.CONTINUOUS:
            session_id = self._ensure_continuous_session()
        elif self._mode == SessionMode.IMPLICIT:
            session_id = self.state.session_id

        result = self._client.preprocess(
            file_path,
            parameters,
            session_id=session_id if self._mode == SessionMode.IMPLICIT else None,
        )
        width, height = image_size(result.png_bytes)

        with self._lock:
            if self.state.image_generation != generation:
                self._logger.info(f"Discarding preprocessed result for superseded {file_path.name}")
                raise _StaleSelection()
            self._adopt_session(result.session_id)

            handle = self._previews.acquire(result.png_bytes, suffix='.png', label='preprocessed')
            preprocessed = PreprocessedImage(
                png_bytes=result.png_bytes, width=width, height=height, preview=handle,
            )
            state = self.state
            if state.preprocessed is not None:
                self._previews.release(state.preprocessed.preview)
            self._commit(state.evolve(
                image_phase=ImagePhase.PREPROCESSED,
                preprocessed=preprocessed,
                preprocessed_with=parameters,
                busy_operation=busy_after,
                last_error=None,
            ))
        self._logger.info(f"Preprocessed {file_path.name}: {width}x{height}")
        return preprocessed

    def _ensure_continuous_session(self) -> str:
        with self._lock:
            session = self.state.session
        if session is not None:
            return session.session_id

        session_id = self._client.start_session()
        with self._lock:
            self._commit(self.state.evolve(
                session_phase=SessionPhase.SESSION_ACTIVE,
                session=TranslationSession(session_id=session_id, mode=self._mode),
            ))
        return session_id

    def _adopt_session(self, returned_id: Optional[str]) -> None:
        """Open or re-key the session after a successful preprocess (lock held)."""
        state = self.state
        if self._mode == SessionMode.CONTINUOUS:
            return

        if self._mode == SessionMode.SINGLE_SHOT:
            if state.session is None:
                self._commit(state.evolve(
                    session_phase=SessionPhase.SESSION_ACTIVE,
                    session=TranslationSession.local(self._mode),
                ))
            return

        if state.session is None:
            if not returned_id:
                raise DataError(
                    "Preprocessing did not allocate a session",
                    error_code=ErrorCodes.INVALID_PAYLOAD,
                )
            self._commit(state.evolve(
                session_phase=SessionPhase.SESSION_ACTIVE,
                session=TranslationSession(session_id=returned_id, mode=self._mode),
            ))
        elif returned_id and returned_id != state.session.session_id:
            self._logger.warning(
                f"Backend re-keyed session {state.session.session_id} to {returned_id}"
            )
            self._commit(state.evolve(session=state.session.with_session_id(returned_id)))

    def _request_translation(self, session: TranslationSession, file_path: Path,
                             parameters: ProcessingParameters) -> Tuple[str, ...]:
        if self._mode == SessionMode.CONTINUOUS:
            response = self._client.translate_in_session(session.session_id, file_path, parameters)
            expected = session.merged_lines + response.current
            if response.merged != expected:
                self._logger.warning(
                    f"Backend merged transliteration ({len(response.merged)} lines) differs from "
                    f"client-side concatenation ({len(expected)} lines); keeping client order"
                )
            if response.image_count != session.image_count + 1:
                self._logger.warning(
                    f"Backend reports {response.image_count} image(s), expected {session.image_count + 1}"
                )
            return response.current

        if self._mode == SessionMode.IMPLICIT:
            return decode_lines(self._client.translate(session.session_id))

        return decode_lines(self._client.predict(file_path))

    def _apply_translation(self, generation: int, file_path: Path, parameters: ProcessingParameters,
                           preprocessed: PreprocessedImage, lines: Tuple[str, ...],
                           session_id: str) -> int:
        """Append the result to the session; clear per-image state if still current."""
        with self._lock:
            state = self.state
            if state.session_id != session_id:
                # Session was discarded (shutdown) while the request was in flight
                self._logger.info(f"Dropping translation of {file_path.name} for closed session {session_id}")
                self._commit(state.evolve(busy_operation=None))
                return state.image_count

            session = state.session.with_result(file_path, parameters, preprocessed.png_bytes, lines)

            if state.image_generation != generation:
                # The backend already holds this image, so the session keeps it
                self._logger.info(
                    f"Translation of {file_path.name} arrived after a new selection; "
                    f"appended to session without touching the new image"
                )
                self._commit(state.evolve(session=session, busy_operation=None))
                return session.image_count

            self._previews.release(state.source_preview)
            self._previews.release(preprocessed.preview)
            self._commit(state.evolve(
                image_phase=ImagePhase.IDLE,
                session=session,
                selected_file=None,
                source_preview=None,
                preprocessed=None,
                preprocessed_with=None,
                current_translation=tuple(lines),
                last_error=None,
                busy_operation=None,
            ))
        self._logger.info(
            f"Translated {file_path.name}: {len(lines)} line(s); session now has {session.image_count} image(s)"
        )
        return session.image_count

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _commit(self, new_state: WorkflowState) -> None:
        self._model.state = new_state
        self.state_changed.emit(new_state)

    def _reset_state(self, last_error: Optional[str] = None) -> None:
        """Return to NO_SESSION/IDLE, releasing previews (lock held)."""
        state = self.state
        self._previews.release(state.source_preview)
        if state.preprocessed is not None:
            self._previews.release(state.preprocessed.preview)
        self._commit(WorkflowState(
            parameters=state.parameters,
            last_error=last_error,
            image_generation=state.image_generation + 1,
        ))

    def _close_session(self, generation: int, last_error: Optional[str] = None) -> None:
        """
        Return the session axis to NO_SESSION (lock held).

        A photograph selected after the closing call was issued keeps its
        selection and preview; otherwise everything is reset.
        """
        state = self.state
        if state.image_generation == generation:
            self._reset_state(last_error=last_error)
            return
        if state.selected_file is not None:
            self._logger.info(f"Keeping {state.selected_file.name} selected while closing the session")
        self._commit(state.evolve(
            session_phase=SessionPhase.NO_SESSION,
            session=None,
            current_translation=(),
            busy_operation=None,
            last_error=last_error,
        ))

    @staticmethod
    def _check_idle(operation: str, state: WorkflowState) -> Optional[ValidationError]:
        if state.is_busy:
            return ValidationError(
                f"Cannot {operation} while '{state.busy_operation}' is in progress",
                error_code=ErrorCodes.OPERATION_IN_PROGRESS,
                suggestions=["Wait for the current request to finish"],
            )
        return None

    @staticmethod
    def _check_parameters(parameters: ProcessingParameters) -> Optional[ValidationError]:
        valid, errors = parameters.validate()
        if valid:
            return None
        return ValidationError("; ".join(errors), field_name='parameters',
                               error_code=ErrorCodes.OUT_OF_RANGE)

    def _fail_in_flight(self, error: Exception, generation: int,
                        operation: str) -> Tuple[bool, str]:
        """Return to a retryable state after a failed backend call."""
        error = self._as_inscription_error(error, operation)

        with self._lock:
            if isinstance(error, SessionExpired):
                self._close_session(generation, last_error=error.message)
                return self._fail(error, record=False)

            state = self.state
            if operation == 'complete':
                restored = state.evolve(session_phase=SessionPhase.SESSION_ACTIVE, busy_operation=None)
            elif generation == state.image_generation:
                phase = ImagePhase.PREPROCESSED if state.preprocessed is not None else ImagePhase.FILE_SELECTED
                restored = state.evolve(image_phase=phase, busy_operation=None)
            else:
                restored = state.evolve(busy_operation=None)
            self._commit(restored)

        return self._fail(error)

    def _as_inscription_error(self, error: Exception, operation: str) -> InscriptionError:
        if isinstance(error, InscriptionError):
            return error
        self._logger.exception(f"Unexpected error during {operation}")
        return wrap_external_error(
            error,
            f"Unexpected error during {operation}: {error}",
            operation=operation,
        )

    def _fail(self, error: InscriptionError, record: bool = True) -> Tuple[bool, str]:
        """Log, record and broadcast a failure; returns (False, message)."""
        level = logging.WARNING if isinstance(error, ValidationError) else logging.ERROR
        (self._error_logger or get_error_logger()).log_error(error, level=level)

        if record:
            with self._lock:
                self._commit(self.state.evolve(last_error=error.message))

        self.error_occurred.emit(self._formatter.format_for_gui(error))
        return (False, error.message)
