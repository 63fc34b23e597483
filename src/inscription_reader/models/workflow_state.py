"""
Workflow state models for Inscription Reader.

The workflow state composes two axes: the session axis tracks the backend
session lifecycle and the image axis tracks progress of the image being
handled. ``WorkflowState`` refuses to be constructed in a combination the
state machine can never reach, so an observer can trust any snapshot it
receives.

Classes:
    SessionPhase: Backend session lifecycle
    ImagePhase: Per-image progress
    WorkflowState: Immutable, serializable snapshot of both axes
    WorkflowStateModel: Observable holder for the live snapshot
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .parameters import ProcessingParameters
from .session import PreprocessedImage, PreviewHandle, TranslationSession


class IllegalStateError(ValueError):
    """Raised when a WorkflowState would combine incompatible phases."""


class SessionPhase(Enum):
    """
    Backend session lifecycle.

    States:
        NO_SESSION: No session has been opened (or the last one finished)
        SESSION_ACTIVE: A session id is held and accepts images
        COMPLETING: Final document is being requested
    """

    NO_SESSION = "no_session"
    SESSION_ACTIVE = "session_active"
    COMPLETING = "completing"


class ImagePhase(Enum):
    """
    Progress of the currently handled image.

    States:
        IDLE: Ready for the next image
        FILE_SELECTED: A photograph is selected, nothing derived yet
        PREPROCESSING: Preprocess request in flight
        PREPROCESSED: Preprocessed image held, ready to translate
        TRANSLATING: Translate request in flight
    """

    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    PREPROCESSING = "preprocessing"
    PREPROCESSED = "preprocessed"
    TRANSLATING = "translating"


_IMAGE_IN_FLIGHT = (ImagePhase.PREPROCESSING, ImagePhase.TRANSLATING)
_NEEDS_PREPROCESSED = (ImagePhase.PREPROCESSED, ImagePhase.TRANSLATING)


@dataclass(frozen=True)
class WorkflowState:
    """
    Snapshot of the translation workflow.

    Attributes:
        session_phase: Session axis
        image_phase: Image axis
        session: Session data; present exactly when a session is held
        selected_file: Photograph currently being handled
        source_preview: Preview handle for the selected photograph
        parameters: Current slider values
        preprocessed: Preprocessed output for the selected photograph
        preprocessed_with: Parameters ``preprocessed`` was produced with
        current_translation: Lines of the most recently translated image
        busy_operation: Name of the backend call in flight, if any
        last_error: User message of the most recent failure
        image_generation: Incremented on every selection; tags in-flight calls
    """

    session_phase: SessionPhase = SessionPhase.NO_SESSION
    image_phase: ImagePhase = ImagePhase.IDLE
    session: Optional[TranslationSession] = None
    selected_file: Optional[Path] = None
    source_preview: Optional[PreviewHandle] = None
    parameters: ProcessingParameters = field(default_factory=ProcessingParameters)
    preprocessed: Optional[PreprocessedImage] = None
    preprocessed_with: Optional[ProcessingParameters] = None
    current_translation: Tuple[str, ...] = ()
    busy_operation: Optional[str] = None
    last_error: Optional[str] = None
    image_generation: int = 0

    def __post_init__(self):
        errors = self.check()
        if errors:
            raise IllegalStateError("; ".join(errors))

    def check(self) -> List[str]:
        """Return the list of violated invariants (empty when consistent)."""
        errors = []
        has_session = self.session is not None

        if self.session_phase == SessionPhase.NO_SESSION and has_session:
            errors.append("NO_SESSION cannot hold a session")
        if self.session_phase != SessionPhase.NO_SESSION and not has_session:
            errors.append(f"{self.session_phase.name} requires a session")

        if self.image_phase == ImagePhase.IDLE and self.selected_file is not None:
            errors.append("IDLE cannot hold a selected file")
        if self.image_phase != ImagePhase.IDLE and self.selected_file is None:
            errors.append(f"{self.image_phase.name} requires a selected file")

        if self.image_phase in _NEEDS_PREPROCESSED and (
                self.preprocessed is None or self.preprocessed_with is None):
            errors.append(f"{self.image_phase.name} requires a preprocessed image")
        if self.image_phase in (ImagePhase.IDLE, ImagePhase.FILE_SELECTED) and self.preprocessed is not None:
            errors.append(f"{self.image_phase.name} cannot hold a preprocessed image")

        if self.image_phase == ImagePhase.TRANSLATING and self.session_phase != SessionPhase.SESSION_ACTIVE:
            errors.append("TRANSLATING requires an active session")
        if self.session_phase == SessionPhase.COMPLETING and self.image_phase in _IMAGE_IN_FLIGHT:
            errors.append("COMPLETING cannot overlap an image request")

        busy_phase = self.image_phase in _IMAGE_IN_FLIGHT or self.session_phase == SessionPhase.COMPLETING
        if busy_phase and self.busy_operation is None:
            errors.append("In-flight phases require a busy operation")

        return errors

    def evolve(self, **changes) -> 'WorkflowState':
        """Return a validated copy with ``changes`` applied."""
        return replace(self, **changes)

    @property
    def merged_translation(self) -> Tuple[str, ...]:
        return self.session.merged_lines if self.session else ()

    @property
    def image_count(self) -> int:
        return self.session.image_count if self.session else 0

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id if self.session else None

    @property
    def is_busy(self) -> bool:
        return self.busy_operation is not None

    @property
    def preprocess_stale(self) -> bool:
        """True when the sliders moved since the held image was preprocessed."""
        return (self.preprocessed_with is not None
                and self.preprocessed_with != self.parameters)

    @property
    def can_preprocess(self) -> bool:
        return (not self.is_busy and self.selected_file is not None
                and self.session_phase != SessionPhase.COMPLETING)

    @property
    def can_translate(self) -> bool:
        return (not self.is_busy and self.image_phase == ImagePhase.PREPROCESSED
                and self.session_phase == SessionPhase.SESSION_ACTIVE)

    @property
    def can_complete(self) -> bool:
        return not self.is_busy and self.session_phase == SessionPhase.SESSION_ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Serializable snapshot for observers and logs."""
        return {
            'session_phase': self.session_phase.value,
            'image_phase': self.image_phase.value,
            'session_id': self.session_id,
            'selected_file': str(self.selected_file) if self.selected_file else None,
            'source_preview': str(self.source_preview.path) if self.source_preview else None,
            'parameters': self.parameters.to_dict(),
            'preprocessed': (
                {
                    'width': self.preprocessed.width,
                    'height': self.preprocessed.height,
                    'preview': str(self.preprocessed.preview.path) if self.preprocessed.preview else None,
                }
                if self.preprocessed else None
            ),
            'preprocess_stale': self.preprocess_stale,
            'current_translation': list(self.current_translation),
            'merged_translation': list(self.merged_translation),
            'image_count': self.image_count,
            'busy_operation': self.busy_operation,
            'last_error': self.last_error,
            'image_generation': self.image_generation,
        }


class WorkflowStateModel:
    """
    Observable holder for the live WorkflowState.

    Observers registered with ``add_observer`` are called with the new
    snapshot every time ``state`` is assigned.
    """

    def __init__(self, initial: Optional[WorkflowState] = None):
        self._state = initial or WorkflowState()
        self._observers: List[Callable[[WorkflowState], None]] = []

    @property
    def state(self) -> WorkflowState:
        return self._state

    @state.setter
    def state(self, new_state: WorkflowState) -> None:
        self._state = new_state
        self._notify()

    def add_observer(self, callback: Callable[[WorkflowState], None]) -> None:
        if callback not in self._observers:
            self._observers.append(callback)

    def remove_observer(self, callback: Callable[[WorkflowState], None]) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify(self) -> None:
        for observer in list(self._observers):
            observer(self._state)
