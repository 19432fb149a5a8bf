"""
Trajectory Model
================

Ordered sequence of B transition matrices, each valid for a contiguous
slice of story progress.

INVARIANT: a model is never mutated in place. Training or loading
produces a new instance which is swapped in wholesale.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple
import logging
import math

from ..contracts.base import EventAlphabet, MalformedModelError
from ..observability import MetricsCollector, default_metrics
from .matrix import TransitionMatrix


logger = logging.getLogger(__name__)

MAX_PROGRESS = 0.999


def progress_fraction(position: int, total_length: int) -> float:
    """Fractional progress of a 0-based position, clamped to [0, 0.999]."""
    if total_length <= 0:
        raise ValueError(f"total_length must be positive, got {total_length}")
    p = position / total_length
    return min(max(p, 0.0), MAX_PROGRESS)


def bin_index(position: int, total_length: int, bins: int) -> int:
    """
    Map a position to its progress bin.

    Shared by the selector and the archetype miner so both agree on
    which matrix owns a given slice of the story.
    """
    if bins <= 0:
        raise ValueError(f"bins must be positive, got {bins}")
    return int(math.floor(progress_fraction(position, total_length) * bins))


def progress_label(index: int, bins: int) -> str:
    """Human-readable progress range of a bin, e.g. "25-30%"."""
    start = round(index * 100 / bins)
    end = round((index + 1) * 100 / bins)
    return f"{start}-{end}%"


class TrajectoryModel:
    """
    Immutable time-indexed transition model.

    All matrices share one alphabet. Concurrent readers need no
    synchronization.
    """

    __slots__ = ("_alphabet", "_matrices")

    def __init__(self, matrices: Iterable[TransitionMatrix]):
        matrices = tuple(matrices)
        if not matrices:
            raise MalformedModelError("TrajectoryModel requires at least one matrix")
        alphabet = matrices[0].alphabet
        for i, matrix in enumerate(matrices):
            if matrix.alphabet != alphabet:
                raise MalformedModelError(f"Matrix {i} uses a different alphabet")
        self._alphabet = alphabet
        self._matrices = matrices

    @property
    def alphabet(self) -> EventAlphabet:
        return self._alphabet

    @property
    def bins(self) -> int:
        return len(self._matrices)

    @property
    def matrices(self) -> Tuple[TransitionMatrix, ...]:
        return self._matrices

    def matrix(self, index: int) -> TransitionMatrix:
        return self._matrices[index]

    def matrix_for_position(
        self,
        position: int,
        total_length: int,
        bins: Optional[int] = None,
        metrics: Optional[MetricsCollector] = None
    ) -> TransitionMatrix:
        return get_matrix_for_position(position, total_length, self, bins, metrics)

    def __iter__(self) -> Iterator[TransitionMatrix]:
        return iter(self._matrices)

    def __len__(self) -> int:
        return len(self._matrices)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrajectoryModel):
            return NotImplemented
        return self._matrices == other._matrices

    def __hash__(self) -> int:
        return hash(self._matrices)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> List[Dict[str, Dict[str, float]]]:
        return [m.to_dict() for m in self._matrices]

    @classmethod
    def from_dict(
        cls,
        alphabet: EventAlphabet,
        data: Sequence[Mapping[str, Mapping[str, Any]]]
    ) -> TrajectoryModel:
        if not isinstance(data, Sequence) or isinstance(data, (str, bytes)):
            raise MalformedModelError("Trajectory must be a list of matrices")
        return cls(TransitionMatrix.from_dict(alphabet, m) for m in data)


def get_matrix_for_position(
    position: int,
    total_length: int,
    model: TrajectoryModel,
    bins: Optional[int] = None,
    metrics: Optional[MetricsCollector] = None
) -> TransitionMatrix:
    """
    Return the matrix owning a story position.

    p = position / total_length clamped to [0, 0.999]; bin = floor(p * B).
    B defaults to the model's own bin count. When a configured B does not
    match the model and the index falls outside it, the lookup falls back
    to bin 0 and the fallback is logged and counted.
    """
    if model is None or len(model) == 0:
        raise MalformedModelError("Cannot select a matrix from an empty model")
    index = bin_index(position, total_length, bins if bins is not None else model.bins)
    if index >= model.bins:
        logger.warning(
            "Bin %d out of range for %d-bin model (position %d/%d); using bin 0",
            index, model.bins, position, total_length
        )
        (metrics or default_metrics()).increment("matrix_bin_fallback_total")
        return model.matrix(0)
    return model.matrix(index)
