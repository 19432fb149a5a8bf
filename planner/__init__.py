"""
Narrative Trajectory Engine: planning core.

Time-indexed transition model, constraint layer, selector and model
persistence. Collaborator calls, mining and run coordination live in the
sibling packages mining/, execution/ and collaborators/.
"""

__version__ = "2.1.0"

from .contracts import (
    EventLabel, EventAlphabet, STANDARD_LABELS, CLASSIC_LABELS,
    GenerationStep, DiscoveredPath, DatasetStats,
)
from .trajectory import TransitionMatrix, TrajectoryModel, get_matrix_for_position, build_default_model
from .constraints import ConstraintRule, ConstraintLayer, default_rules
from .selector import Selector, PlanRun, plan_path, weighted_choice

__all__ = [
    '__version__',
    'EventLabel', 'EventAlphabet', 'STANDARD_LABELS', 'CLASSIC_LABELS',
    'GenerationStep', 'DiscoveredPath', 'DatasetStats',
    'TransitionMatrix', 'TrajectoryModel', 'get_matrix_for_position', 'build_default_model',
    'ConstraintRule', 'ConstraintLayer', 'default_rules',
    'Selector', 'PlanRun', 'plan_path', 'weighted_choice',
]
