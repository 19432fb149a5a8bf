"""
Shared contracts for all layers.

Layers import types from here and never from each other's internals.
"""

from .base import (
    EventLabel,
    EventAlphabet,
    LabelLike,
    label_value,
    STANDARD_LABELS,
    CLASSIC_LABELS,
    ErrorCode,
    TrajectoryEngineError,
    InvalidMatrixError,
    MalformedModelError,
    ModelFormatError,
    CorpusFormatError,
    EmptyCorpusError,
    CollaboratorError,
    CollaboratorUnavailableError,
    PlanExhaustedError,
    RunCancelledError,
)
from .events import (
    GenerationStep,
    DiscoveredPath,
    PhaseTransitionSummary,
    MiningReport,
    DatasetStats,
    utc_now,
)

__all__ = [
    # Alphabet
    'EventLabel', 'EventAlphabet', 'LabelLike', 'label_value',
    'STANDARD_LABELS', 'CLASSIC_LABELS',
    # Errors
    'ErrorCode', 'TrajectoryEngineError', 'InvalidMatrixError',
    'MalformedModelError', 'ModelFormatError', 'CorpusFormatError',
    'EmptyCorpusError', 'CollaboratorError', 'CollaboratorUnavailableError',
    'PlanExhaustedError', 'RunCancelledError',
    # Records
    'GenerationStep', 'DiscoveredPath', 'PhaseTransitionSummary',
    'MiningReport', 'DatasetStats', 'utc_now',
]
