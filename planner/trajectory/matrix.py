"""
Transition Matrix
=================

Row-stochastic table of P(next | current) over a fixed alphabet.

GUARANTEES:
- Dense N x N float64 array, indexed by alphabet position
- Every row sums to 1 within ROW_TOLERANCE
- No negative or non-finite entries (rejected at construction)
- Read-only after construction
"""

from __future__ import annotations
from typing import Dict, Mapping, Optional
import numpy as np

from ..contracts.base import EventAlphabet, InvalidMatrixError, LabelLike, label_value


ROW_TOLERANCE = 1e-6
DEFAULT_ROW_WEIGHT = 0.01


class TransitionMatrix:
    """
    Immutable transition probabilities for one progress bin.

    Construct through from_weights / from_array / from_dict; the
    constructor itself only accepts an already row-stochastic array.
    """

    __slots__ = ("_alphabet", "_probabilities")

    def __init__(self, alphabet: EventAlphabet, probabilities: np.ndarray):
        array = np.array(probabilities, dtype=np.float64, copy=True)
        n = alphabet.size
        if array.shape != (n, n):
            raise InvalidMatrixError(
                f"Matrix shape {array.shape} does not match alphabet size {n}"
            )
        if not np.all(np.isfinite(array)):
            raise InvalidMatrixError("Matrix contains non-finite values")
        if np.any(array < 0):
            raise InvalidMatrixError("Matrix contains negative probabilities")
        sums = array.sum(axis=1)
        bad = np.flatnonzero(np.abs(sums - 1.0) > ROW_TOLERANCE)
        if bad.size:
            label = alphabet.labels[int(bad[0])]
            raise InvalidMatrixError(
                f"Row {label!r} sums to {sums[bad[0]]:.8f}, expected 1.0"
            )
        array.setflags(write=False)
        self._alphabet = alphabet
        self._probabilities = array

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_array(
        cls,
        alphabet: EventAlphabet,
        weights: np.ndarray,
        normalize: bool = True
    ) -> TransitionMatrix:
        """Build from raw non-negative weights, normalizing each row."""
        array = np.array(weights, dtype=np.float64, copy=True)
        if array.shape != (alphabet.size, alphabet.size):
            raise InvalidMatrixError(
                f"Matrix shape {array.shape} does not match alphabet size {alphabet.size}"
            )
        if not np.all(np.isfinite(array)):
            raise InvalidMatrixError("Matrix contains non-finite values")
        if np.any(array < 0):
            raise InvalidMatrixError("Matrix contains negative weights")
        if normalize:
            sums = array.sum(axis=1, keepdims=True)
            if np.any(sums <= 0):
                raise InvalidMatrixError("Every row needs at least one positive weight")
            array = array / sums
        return cls(alphabet, array)

    @classmethod
    def from_weights(
        cls,
        alphabet: EventAlphabet,
        rows: Mapping[LabelLike, Mapping[LabelLike, float]],
        default_weight: float = DEFAULT_ROW_WEIGHT
    ) -> TransitionMatrix:
        """
        Build from sparse per-row weights.

        Labels missing from a row (and rows missing entirely) receive
        default_weight so no transition is ever impossible. Labels outside
        the alphabet are ignored so one authored table can serve several
        alphabet variants.
        """
        if default_weight <= 0:
            raise InvalidMatrixError("default_weight must be strictly positive")
        array = np.full((alphabet.size, alphabet.size), default_weight, dtype=np.float64)
        for source, targets in rows.items():
            if not alphabet.contains(source):
                continue
            i = alphabet.index(source)
            for target, weight in targets.items():
                if not alphabet.contains(target):
                    continue
                weight = float(weight)
                if weight < 0 or not np.isfinite(weight):
                    raise InvalidMatrixError(
                        f"Invalid weight {weight} for {label_value(source)} -> {label_value(target)}"
                    )
                array[i, alphabet.index(target)] = weight
        return cls.from_array(alphabet, array, normalize=True)

    @classmethod
    def from_dict(
        cls,
        alphabet: EventAlphabet,
        data: Mapping[str, Mapping[str, float]]
    ) -> TransitionMatrix:
        """
        Strict inverse of to_dict: every row and column must be present.
        """
        array = np.zeros((alphabet.size, alphabet.size), dtype=np.float64)
        if set(data) != set(alphabet.labels):
            raise InvalidMatrixError("Matrix rows do not match the alphabet")
        for source, targets in data.items():
            if not isinstance(targets, Mapping) or set(targets) != set(alphabet.labels):
                raise InvalidMatrixError(f"Row {source!r} does not cover the alphabet")
            i = alphabet.index(source)
            for target, value in targets.items():
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise InvalidMatrixError(f"Non-numeric probability in row {source!r}")
                array[i, alphabet.index(target)] = float(value)
        return cls(alphabet, array)

    @classmethod
    def uniform(cls, alphabet: EventAlphabet) -> TransitionMatrix:
        return cls.from_array(alphabet, np.ones((alphabet.size, alphabet.size)))

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    @property
    def alphabet(self) -> EventAlphabet:
        return self._alphabet

    @property
    def probabilities(self) -> np.ndarray:
        """Read-only view of the full array."""
        return self._probabilities

    def row(self, label: LabelLike) -> np.ndarray:
        """Read-only probability row for a source label."""
        return self._probabilities[self._alphabet.index(label)]

    def probability(self, source: LabelLike, target: LabelLike) -> float:
        return float(
            self._probabilities[self._alphabet.index(source), self._alphabet.index(target)]
        )

    def row_dict(self, label: LabelLike) -> Dict[str, float]:
        row = self.row(label)
        return {l: float(p) for l, p in zip(self._alphabet.labels, row)}

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {label: self.row_dict(label) for label in self._alphabet.labels}

    def argmax_target(self, source: LabelLike) -> Optional[str]:
        """Most probable next label; ties resolve to the earliest label."""
        row = self.row(source)
        if row.size == 0:
            return None
        return self._alphabet.labels[int(np.argmax(row))]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransitionMatrix):
            return NotImplemented
        return (
            self._alphabet == other._alphabet
            and np.array_equal(self._probabilities, other._probabilities)
        )

    def __hash__(self) -> int:
        return hash((self._alphabet, self._probabilities.tobytes()))

    def __repr__(self) -> str:
        return f"TransitionMatrix(size={self._alphabet.size})"
