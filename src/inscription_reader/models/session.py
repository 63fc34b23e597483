"""
Session models for Inscription Reader.

Classes:
    SessionMode: Which backend workflow variant drives the session
    PreviewHandle: Reference to a locally materialized preview image
    PreprocessedImage: Output of one preprocess call
    ImageResult: One translated image within a session
    TranslationSession: Append-only accumulation of image results
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .parameters import ProcessingParameters


LOCAL_SESSION_PREFIX = "local-"


class SessionMode(Enum):
    """
    Backend workflow variants.

    States:
        SINGLE_SHOT: ``/predict/`` per image, merged client-side
        IMPLICIT: ``/preprocess/`` allocates the session, ``/translate/{id}``
        CONTINUOUS: ``/start-continuous/`` then ``/continuous-translate/{id}``
    """

    SINGLE_SHOT = "single-shot"
    IMPLICIT = "implicit"
    CONTINUOUS = "continuous"

    @classmethod
    def parse(cls, value) -> 'SessionMode':
        """Accept an enum member, its value, or its name in any case."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace('_', '-')
        for mode in cls:
            if mode.value == text:
                return mode
        raise ValueError(f"Unknown session mode: {value!r}")


@dataclass(frozen=True)
class PreviewHandle:
    """A preview written to local storage; must be released when retired."""

    path: Path
    label: str = ""
    size_bytes: int = 0


@dataclass(frozen=True)
class PreprocessedImage:
    """Preprocessed output returned by the backend for one image."""

    png_bytes: bytes
    width: int
    height: int
    preview: Optional[PreviewHandle] = None


@dataclass(frozen=True)
class ImageResult:
    """
    Result of translating one image.

    Attributes:
        source: Path of the original photograph
        parameters: Parameters the image was preprocessed and translated with
        preprocessed_png: Preprocessed image bytes
        lines: Transliteration lines for this image only
        position: Insertion index within the session, never reordered
    """

    source: Path
    parameters: ProcessingParameters
    preprocessed_png: bytes
    lines: Tuple[str, ...]
    position: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': str(self.source),
            'parameters': self.parameters.to_dict(),
            'lines': list(self.lines),
            'position': self.position,
        }


@dataclass(frozen=True)
class TranslationSession:
    """
    Client-side view of a backend session.

    Results are append-only; the merged transliteration is always the
    concatenation of per-image lines in insertion order.
    """

    session_id: str
    mode: SessionMode = SessionMode.CONTINUOUS
    results: Tuple[ImageResult, ...] = ()
    started_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def local(cls, mode: SessionMode = SessionMode.SINGLE_SHOT) -> 'TranslationSession':
        """Create a session that only exists on the client."""
        return cls(session_id=f"{LOCAL_SESSION_PREFIX}{uuid.uuid4().hex}", mode=mode)

    @property
    def is_local(self) -> bool:
        return self.session_id.startswith(LOCAL_SESSION_PREFIX)

    @property
    def image_count(self) -> int:
        return len(self.results)

    @property
    def merged_lines(self) -> Tuple[str, ...]:
        merged = []
        for result in self.results:
            merged.extend(result.lines)
        return tuple(merged)

    def with_result(self, source: Path, parameters: ProcessingParameters,
                    preprocessed_png: bytes, lines) -> 'TranslationSession':
        """Return a new session with one more result appended at the end."""
        result = ImageResult(
            source=Path(source),
            parameters=parameters,
            preprocessed_png=preprocessed_png,
            lines=tuple(lines),
            position=self.image_count,
        )
        return replace(self, results=self.results + (result,))

    def with_session_id(self, session_id: str) -> 'TranslationSession':
        return replace(self, session_id=session_id)

    def document_text(self) -> str:
        """Merged transliteration as a newline separated document."""
        lines = self.merged_lines
        return "\n".join(lines) + ("\n" if lines else "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'mode': self.mode.value,
            'image_count': self.image_count,
            'merged_lines': list(self.merged_lines),
            'results': [result.to_dict() for result in self.results],
            'started_at': self.started_at.isoformat(),
        }
