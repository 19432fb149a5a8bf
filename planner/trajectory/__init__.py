"""
Trajectory layer: transition matrices and the time-indexed model.
"""

from .matrix import TransitionMatrix, ROW_TOLERANCE, DEFAULT_ROW_WEIGHT
from .model import (
    TrajectoryModel,
    get_matrix_for_position,
    bin_index,
    progress_fraction,
    progress_label,
)
from .defaults import build_default_model, DEFAULT_BINS

__all__ = [
    'TransitionMatrix', 'ROW_TOLERANCE', 'DEFAULT_ROW_WEIGHT',
    'TrajectoryModel', 'get_matrix_for_position', 'bin_index',
    'progress_fraction', 'progress_label',
    'build_default_model', 'DEFAULT_BINS',
]
