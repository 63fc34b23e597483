"""
Data models for Inscription Reader.

This package contains the parameter, session and workflow state
structures shared by services, controllers and views.
"""

from .parameters import (
    ProcessingParameters,
    SCALE_MIN,
    SCALE_MAX,
    NOISE_MIN,
    NOISE_MAX,
    NOISE_STEP,
)

from .session import (
    SessionMode,
    PreviewHandle,
    PreprocessedImage,
    ImageResult,
    TranslationSession,
)

from .workflow_state import (
    IllegalStateError,
    SessionPhase,
    ImagePhase,
    WorkflowState,
    WorkflowStateModel,
)

__all__ = [
    # Parameters
    'ProcessingParameters',
    'SCALE_MIN',
    'SCALE_MAX',
    'NOISE_MIN',
    'NOISE_MAX',
    'NOISE_STEP',

    # Session
    'SessionMode',
    'PreviewHandle',
    'PreprocessedImage',
    'ImageResult',
    'TranslationSession',

    # Workflow state
    'IllegalStateError',
    'SessionPhase',
    'ImagePhase',
    'WorkflowState',
    'WorkflowStateModel',
]
