"""
Default Trajectory Model

Hand-authored three-phase model used at startup before any training run
or model load replaces it.

PHASES (by story progress):
- Setup        p < 0.30   Introduction -> Description -> Inciting Incident
- Development  p < 0.75   Rising Action <-> Conflict <-> Dialogue
- Conclusion   otherwise  Climax -> Falling Action -> Resolution -> End
"""

from __future__ import annotations
from typing import Dict, Optional

from ..contracts.base import EventAlphabet, EventLabel as E
from .matrix import TransitionMatrix, DEFAULT_ROW_WEIGHT
from .model import TrajectoryModel


DEFAULT_BINS = 20
SETUP_END = 0.30
DEVELOPMENT_END = 0.75

Weights = Dict[E, Dict[E, float]]


SETUP_WEIGHTS: Weights = {
    E.INTRODUCTION: {E.DESCRIPTION: 4, E.INCITING_INCIDENT: 2, E.DIALOGUE: 1},
    E.INCITING_INCIDENT: {E.RISING_ACTION: 6, E.DESCRIPTION: 2, E.DIALOGUE: 2},
    E.RISING_ACTION: {E.CONFLICT: 4, E.DESCRIPTION: 2},
    E.CONFLICT: {E.RISING_ACTION: 3, E.DIALOGUE: 2},
    E.REVELATION: {E.RISING_ACTION: 3, E.CONFLICT: 2},
    E.CLIMAX: {E.FALLING_ACTION: 5},
    E.FALLING_ACTION: {E.RESOLUTION: 5},
    E.RESOLUTION: {E.INTRODUCTION: 1},
    E.STORY_END: {E.INTRODUCTION: 1},
    E.DIALOGUE: {E.INTRODUCTION: 2, E.INCITING_INCIDENT: 3},
    E.DESCRIPTION: {E.INTRODUCTION: 3, E.INCITING_INCIDENT: 4},
}

DEVELOPMENT_WEIGHTS: Weights = {
    E.INTRODUCTION: {E.RISING_ACTION: 5},
    E.INCITING_INCIDENT: {E.RISING_ACTION: 6, E.CONFLICT: 3},
    E.RISING_ACTION: {E.CONFLICT: 5, E.DIALOGUE: 3, E.DESCRIPTION: 2, E.REVELATION: 1},
    E.CONFLICT: {E.RISING_ACTION: 3, E.DIALOGUE: 3, E.REVELATION: 1.5, E.CLIMAX: 1},
    E.REVELATION: {E.CONFLICT: 4, E.RISING_ACTION: 3, E.DIALOGUE: 1},
    E.CLIMAX: {E.FALLING_ACTION: 4, E.RESOLUTION: 2},
    E.FALLING_ACTION: {E.RESOLUTION: 5},
    E.RESOLUTION: {E.CONFLICT: 5},  # false resolution
    E.STORY_END: {E.CONFLICT: 1},
    E.DIALOGUE: {E.CONFLICT: 4, E.RISING_ACTION: 4},
    E.DESCRIPTION: {E.RISING_ACTION: 4, E.CONFLICT: 3},
}

CONCLUSION_WEIGHTS: Weights = {
    E.INTRODUCTION: {E.RESOLUTION: 1},
    E.INCITING_INCIDENT: {E.CONFLICT: 5},
    E.RISING_ACTION: {E.CLIMAX: 6, E.CONFLICT: 2},
    E.CONFLICT: {E.CLIMAX: 7, E.REVELATION: 1, E.RISING_ACTION: 1},
    E.REVELATION: {E.CLIMAX: 6, E.CONFLICT: 2},
    E.CLIMAX: {E.FALLING_ACTION: 6, E.RESOLUTION: 3, E.DESCRIPTION: 1},
    E.FALLING_ACTION: {E.RESOLUTION: 8, E.DIALOGUE: 2},
    E.RESOLUTION: {E.STORY_END: 5, E.RESOLUTION: 4, E.DESCRIPTION: 3, E.DIALOGUE: 2},
    E.STORY_END: {E.STORY_END: 1},
    E.DIALOGUE: {E.RESOLUTION: 5, E.FALLING_ACTION: 3},
    E.DESCRIPTION: {E.RESOLUTION: 6, E.FALLING_ACTION: 2},
}


def phase_weights(progress: float) -> Weights:
    if progress < SETUP_END:
        return SETUP_WEIGHTS
    if progress < DEVELOPMENT_END:
        return DEVELOPMENT_WEIGHTS
    return CONCLUSION_WEIGHTS


def build_default_model(
    alphabet: Optional[EventAlphabet] = None,
    bins: int = DEFAULT_BINS,
    default_weight: float = DEFAULT_ROW_WEIGHT
) -> TrajectoryModel:
    """
    Build the hand-authored model for the given alphabet.

    Each bin takes the phase of its starting progress. Labels absent from
    the alphabet are dropped from the authored rows.
    """
    alphabet = alphabet or EventAlphabet.standard()
    if bins <= 0:
        raise ValueError(f"bins must be positive, got {bins}")
    phases = {}
    matrices = []
    for i in range(bins):
        weights = phase_weights(i / bins)
        key = id(weights)
        if key not in phases:
            phases[key] = TransitionMatrix.from_weights(alphabet, weights, default_weight)
        matrices.append(phases[key])
    return TrajectoryModel(matrices)
