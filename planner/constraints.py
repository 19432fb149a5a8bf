"""
Constraint Layer
================

Per-event rules that gate or dampen transition weights given the story
history and current progress.

RULE SEMANTICS:
- requires_predecessor unmet        -> weight 0 (hard gate)
- max_occurrences reached           -> weight 0 (hard gate)
- progress < min_progress           -> weight 0 (hard gate)
- last occurrence < cooldown back   -> weight x cooldown_damping (soft)
- candidate == previous label       -> weight x self_loop_penalty (soft)

All adjustments are multiplicative, so their order does not matter and a
hard gate always dominates. Rules are static configuration; nothing here
is learned from data.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping, Optional, Sequence, Tuple
import logging
import numpy as np

from .contracts.base import EventAlphabet, EventLabel as E, LabelLike, label_value
from .observability import MetricsCollector, default_metrics
from .trajectory.matrix import TransitionMatrix


logger = logging.getLogger(__name__)

DEFAULT_SELF_LOOP_PENALTY = 0.3
ALTERNATE_SELF_LOOP_PENALTY = 0.5
DEFAULT_COOLDOWN_DAMPING = 0.1
DEFAULT_FALLBACK_EPSILON = 1e-4
DEFAULT_SAFETY_LABEL = E.DESCRIPTION.value


@dataclass(frozen=True)
class ConstraintRule:
    """Static rule attached to one candidate label. Unset fields do nothing."""
    max_occurrences: Optional[int] = None
    min_progress: Optional[float] = None
    cooldown: Optional[int] = None
    requires_predecessor: Optional[str] = None

    def __post_init__(self):
        if self.max_occurrences is not None and self.max_occurrences < 1:
            raise ValueError("max_occurrences must be >= 1")
        if self.min_progress is not None and not 0.0 <= self.min_progress <= 1.0:
            raise ValueError("min_progress must be within [0, 1]")
        if self.cooldown is not None and self.cooldown < 1:
            raise ValueError("cooldown must be >= 1")
        if self.requires_predecessor is not None:
            object.__setattr__(
                self, "requires_predecessor", label_value(self.requires_predecessor)
            )


@dataclass(frozen=True)
class AdjustedRow:
    """
    Result of applying constraints to one matrix row.

    probabilities always sums to 1 and is never all-zero.
    """
    labels: Tuple[str, ...]
    weights: np.ndarray
    probabilities: np.ndarray
    gated: FrozenSet[str] = field(default_factory=frozenset)
    fallback_used: bool = False

    def probability(self, label: LabelLike) -> float:
        return float(self.probabilities[self.labels.index(label_value(label))])

    def weight(self, label: LabelLike) -> float:
        return float(self.weights[self.labels.index(label_value(label))])

    def as_dict(self) -> Dict[str, float]:
        return {l: float(p) for l, p in zip(self.labels, self.probabilities)}


class ConstraintLayer:
    """
    Applies constraint rules and the self-loop penalty to matrix rows.

    Stateless with respect to runs: history and progress are passed on
    every call, so one layer can serve concurrent runs.
    """

    def __init__(
        self,
        rules: Optional[Mapping[LabelLike, ConstraintRule]] = None,
        self_loop_penalty: float = DEFAULT_SELF_LOOP_PENALTY,
        cooldown_damping: float = DEFAULT_COOLDOWN_DAMPING,
        fallback_epsilon: float = DEFAULT_FALLBACK_EPSILON,
        safety_label: LabelLike = DEFAULT_SAFETY_LABEL,
        metrics: Optional[MetricsCollector] = None
    ):
        if not 0.0 < self_loop_penalty <= 1.0:
            raise ValueError("self_loop_penalty must be in (0, 1]")
        if not 0.0 < cooldown_damping <= 1.0:
            raise ValueError("cooldown_damping must be in (0, 1]")
        if fallback_epsilon < 0:
            raise ValueError("fallback_epsilon must be >= 0")
        self._rules: Dict[str, ConstraintRule] = {
            label_value(k): v for k, v in (rules or {}).items()
        }
        self._self_loop_penalty = float(self_loop_penalty)
        self._cooldown_damping = float(cooldown_damping)
        self._fallback_epsilon = float(fallback_epsilon)
        self._safety_label = label_value(safety_label)
        self._metrics = metrics

    @classmethod
    def unconstrained(cls) -> ConstraintLayer:
        """No rules and no self-loop penalty; used for baseline runs."""
        return cls(rules={}, self_loop_penalty=1.0)

    @property
    def self_loop_penalty(self) -> float:
        return self._self_loop_penalty

    @property
    def rules(self) -> Dict[str, ConstraintRule]:
        return dict(self._rules)

    @property
    def safety_label(self) -> str:
        return self._safety_label

    def rule_for(self, label: LabelLike) -> Optional[ConstraintRule]:
        return self._rules.get(label_value(label))

    # -------------------------------------------------------------------------
    # Per-entry contract
    # -------------------------------------------------------------------------

    def is_gated(
        self,
        label: LabelLike,
        history: Sequence[str],
        progress: float
    ) -> bool:
        """True when a hard gate forces this candidate to zero."""
        rule = self.rule_for(label)
        if rule is None:
            return False
        value = label_value(label)
        history = [label_value(h) for h in history]
        if rule.requires_predecessor is not None and rule.requires_predecessor not in history:
            return True
        if rule.max_occurrences is not None:
            if sum(1 for h in history if h == value) >= rule.max_occurrences:
                return True
        if rule.min_progress is not None and progress < rule.min_progress:
            return True
        return False

    def in_cooldown(self, label: LabelLike, history: Sequence[str]) -> bool:
        rule = self.rule_for(label)
        if rule is None or rule.cooldown is None:
            return False
        value = label_value(label)
        history = [label_value(h) for h in history]
        position = len(history)
        for index in range(len(history) - 1, -1, -1):
            if history[index] == value:
                return position - index < rule.cooldown
        return False

    def adjusted_weight(
        self,
        weight: float,
        label: LabelLike,
        history: Sequence[str],
        progress: float,
        previous_label: Optional[LabelLike] = None
    ) -> float:
        """Adjusted weight of a single candidate label."""
        if weight <= 0 or self.is_gated(label, history, progress):
            return 0.0
        adjusted = float(weight)
        if self.in_cooldown(label, history):
            adjusted *= self._cooldown_damping
        if previous_label is not None and label_value(label) == label_value(previous_label):
            adjusted *= self._self_loop_penalty
        return adjusted

    # -------------------------------------------------------------------------
    # Row contract
    # -------------------------------------------------------------------------

    def adjust_row(
        self,
        matrix: TransitionMatrix,
        previous_label: LabelLike,
        history: Sequence[str],
        progress: float
    ) -> AdjustedRow:
        """
        Adjust and renormalize the row of previous_label.

        When the adjusted total collapses to <= fallback_epsilon, the row
        becomes one-hot on the first label with positive original
        probability, or on the safety label if none exists.
        """
        alphabet = matrix.alphabet
        original = matrix.row(previous_label)
        history = [label_value(h) for h in history]
        weights = np.zeros(alphabet.size, dtype=np.float64)
        gated = set()
        for i, label in enumerate(alphabet.labels):
            if self.is_gated(label, history, progress):
                gated.add(label)
                continue
            weights[i] = self.adjusted_weight(
                original[i], label, history, progress, previous_label
            )

        total = float(weights.sum())
        fallback_used = total <= self._fallback_epsilon
        if fallback_used:
            target = self._fallback_index(alphabet, original)
            logger.warning(
                "Constraints eliminated row %r at progress %.3f; falling back to %r",
                label_value(previous_label), progress, alphabet.labels[target]
            )
            (self._metrics or default_metrics()).increment("constraint_fallback_total")
            probabilities = np.zeros(alphabet.size, dtype=np.float64)
            probabilities[target] = 1.0
        else:
            probabilities = weights / total

        weights.setflags(write=False)
        probabilities.setflags(write=False)
        return AdjustedRow(
            labels=alphabet.labels,
            weights=weights,
            probabilities=probabilities,
            gated=frozenset(gated),
            fallback_used=fallback_used
        )

    def _fallback_index(self, alphabet: EventAlphabet, original: np.ndarray) -> int:
        positive = np.flatnonzero(original > 0)
        if positive.size:
            return int(positive[0])
        if alphabet.contains(self._safety_label):
            return alphabet.index(self._safety_label)
        return 0


def default_rules(alphabet: Optional[EventAlphabet] = None) -> Dict[str, ConstraintRule]:
    """
    Stock rule set for the standard alphabets.

    Rules whose label or required predecessor is missing from the alphabet
    are dropped.
    """
    alphabet = alphabet or EventAlphabet.standard()
    rules = {
        E.INTRODUCTION: ConstraintRule(max_occurrences=1),
        E.INCITING_INCIDENT: ConstraintRule(max_occurrences=1),
        E.REVELATION: ConstraintRule(max_occurrences=2, min_progress=0.4, cooldown=4),
        E.CLIMAX: ConstraintRule(
            max_occurrences=1, min_progress=0.5, requires_predecessor=E.RISING_ACTION.value
        ),
        E.FALLING_ACTION: ConstraintRule(requires_predecessor=E.CLIMAX.value),
        E.RESOLUTION: ConstraintRule(min_progress=0.7),
        E.STORY_END: ConstraintRule(
            max_occurrences=1, min_progress=0.9, requires_predecessor=E.RESOLUTION.value
        ),
        E.DIALOGUE: ConstraintRule(cooldown=2),
        E.DESCRIPTION: ConstraintRule(cooldown=2),
    }
    kept = {}
    for label, rule in rules.items():
        if not alphabet.contains(label):
            continue
        if rule.requires_predecessor is not None and not alphabet.contains(rule.requires_predecessor):
            continue
        kept[label.value] = rule
    return kept
