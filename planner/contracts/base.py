"""
Base Contracts and Shared Types

Foundational types used by every layer of the trajectory engine.

BOUNDARY ENFORCEMENT:
=====================
- The alphabet is closed: built once, never extended at runtime
- Labels travel as plain strings; EventLabel members are normalized
- Every failure mode has an explicit ErrorCode
"""

from __future__ import annotations
from enum import Enum, auto
from typing import Dict, Iterable, Iterator, Optional, Tuple, Union


# =============================================================================
# EVENT LABELS
# =============================================================================

class EventLabel(Enum):
    """Narrative structural roles known to the engine."""
    INTRODUCTION = "Introduction"
    INCITING_INCIDENT = "Inciting_Incident"
    RISING_ACTION = "Rising_Action"
    CONFLICT = "Conflict"
    REVELATION = "Revelation"  # plot twist
    CLIMAX = "Climax"
    FALLING_ACTION = "Falling_Action"
    RESOLUTION = "Resolution"
    STORY_END = "Story_End"  # definitive closure
    DIALOGUE = "Dialogue"
    DESCRIPTION = "Description"


LabelLike = Union[str, EventLabel]


def label_value(label: LabelLike) -> str:
    """Normalize an EventLabel member or string to its string value."""
    if isinstance(label, EventLabel):
        return label.value
    return str(label)


STANDARD_LABELS: Tuple[str, ...] = tuple(e.value for e in EventLabel)

CLASSIC_LABELS: Tuple[str, ...] = tuple(
    label for label in STANDARD_LABELS
    if label not in (EventLabel.REVELATION.value, EventLabel.STORY_END.value)
)


class EventAlphabet:
    """
    Fixed, ordered set of event labels.

    Each label maps to a dense integer index which is the row/column
    position inside every TransitionMatrix built on this alphabet.
    """

    __slots__ = ("_labels", "_index")

    def __init__(self, labels: Iterable[LabelLike]):
        values = tuple(label_value(l) for l in labels)
        if not values:
            raise ValueError("EventAlphabet requires at least one label")
        if any(not v for v in values):
            raise ValueError("EventAlphabet labels must be non-empty strings")
        if len(set(values)) != len(values):
            raise ValueError(f"EventAlphabet labels must be unique: {values}")
        self._labels = values
        self._index: Dict[str, int] = {v: i for i, v in enumerate(values)}

    @classmethod
    def standard(cls) -> EventAlphabet:
        """The 11-label alphabet (includes Revelation and Story_End)."""
        return cls(STANDARD_LABELS)

    @classmethod
    def classic(cls) -> EventAlphabet:
        """The earlier 9-label alphabet."""
        return cls(CLASSIC_LABELS)

    @classmethod
    def named(cls, variant: str) -> EventAlphabet:
        """Resolve a configured variant name ("standard" | "classic")."""
        if variant == "standard":
            return cls.standard()
        if variant == "classic":
            return cls.classic()
        raise ValueError(f"Unknown alphabet variant: {variant}")

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    @property
    def size(self) -> int:
        return len(self._labels)

    def index(self, label: LabelLike) -> int:
        """Dense index of a label. Raises KeyError for unknown labels."""
        value = label_value(label)
        try:
            return self._index[value]
        except KeyError:
            raise KeyError(f"Label not in alphabet: {value!r}") from None

    def contains(self, label: Optional[LabelLike]) -> bool:
        if label is None:
            return False
        return label_value(label) in self._index

    def __contains__(self, label: object) -> bool:
        if not isinstance(label, (str, EventLabel)):
            return False
        return self.contains(label)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EventAlphabet):
            return NotImplemented
        return self._labels == other._labels

    def __hash__(self) -> int:
        return hash(self._labels)

    def __repr__(self) -> str:
        return f"EventAlphabet({list(self._labels)!r})"


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """Explicit error codes surfaced to callers."""
    # Model errors
    INVALID_MATRIX = auto()
    MALFORMED_MODEL = auto()
    MODEL_FORMAT = auto()

    # Corpus errors
    BAD_CORPUS = auto()
    EMPTY_CORPUS = auto()
    NO_USABLE_SEGMENTS = auto()

    # Collaborator errors
    COLLABORATOR_FAILED = auto()
    COLLABORATOR_UNREACHABLE = auto()

    # Run errors
    PLAN_EXHAUSTED = auto()
    RUN_CANCELLED = auto()


class TrajectoryEngineError(Exception):
    """Root of every error raised by the engine."""

    code: ErrorCode = ErrorCode.MALFORMED_MODEL

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


class InvalidMatrixError(TrajectoryEngineError, ValueError):
    """Matrix input is negative, non-finite or wrongly shaped."""
    code = ErrorCode.INVALID_MATRIX


class MalformedModelError(TrajectoryEngineError, ValueError):
    """A trajectory model cannot serve the requested lookup."""
    code = ErrorCode.MALFORMED_MODEL


class ModelFormatError(TrajectoryEngineError, ValueError):
    """A saved model record failed validation."""
    code = ErrorCode.MODEL_FORMAT


class CorpusFormatError(TrajectoryEngineError, ValueError):
    """Corpus input is unreadable or has the wrong shape (bad data)."""
    code = ErrorCode.BAD_CORPUS


class EmptyCorpusError(TrajectoryEngineError):
    """Corpus has nothing to mine (no data)."""
    code = ErrorCode.EMPTY_CORPUS


class CollaboratorError(TrajectoryEngineError):
    """An external collaborator call failed."""
    code = ErrorCode.COLLABORATOR_FAILED

    def __init__(self, message: str, provider_code: Optional[str] = None):
        super().__init__(message)
        self.provider_code = provider_code


class CollaboratorUnavailableError(CollaboratorError):
    """An external collaborator could not be reached at all."""
    code = ErrorCode.COLLABORATOR_UNREACHABLE


class PlanExhaustedError(TrajectoryEngineError):
    """Selection requested after a plan reached its terminal state."""
    code = ErrorCode.PLAN_EXHAUSTED


class RunCancelledError(TrajectoryEngineError):
    """Cooperative cancellation observed at a checkpoint."""
    code = ErrorCode.RUN_CANCELLED
