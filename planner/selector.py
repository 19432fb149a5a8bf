"""
Selector (Symbolic Planner)
===========================

Chooses the structural event for each story position.

STATE MACHINE (per run):
    START     position 0 always emits the start label
    STEPPING  positions 1..L-1: override label if the active override
              covers the position, otherwise dynamic sampling
    TERMINAL  after L decisions; further calls raise PlanExhaustedError

DETERMINISM:
Same (model, constraints, history, random source) -> same labels.
The random source is an injected random.Random; nothing here touches
module-level state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple
import random

from .constraints import AdjustedRow, ConstraintLayer
from .contracts.base import (
    EventLabel, LabelLike, PlanExhaustedError, label_value
)
from .contracts.events import DiscoveredPath
from .observability import MetricsCollector
from .trajectory.model import TrajectoryModel, get_matrix_for_position, progress_fraction


DEFAULT_START_LABEL = EventLabel.INTRODUCTION.value


def weighted_choice(
    labels: Sequence[str],
    probabilities: Sequence[float],
    draw: float
) -> str:
    """
    Inverse-CDF selection over a normalized distribution.

    Entries are visited in the given order; the first entry whose
    cumulative probability reaches the draw wins. Zero-probability entries
    are never chosen. If rounding leaves nothing selected, the last
    eligible entry is returned.
    """
    if not labels or len(labels) != len(probabilities):
        raise ValueError("labels and probabilities must be non-empty and aligned")
    cumulative = 0.0
    last_eligible = labels[-1]
    for label, p in zip(labels, probabilities):
        if p <= 0:
            continue
        last_eligible = label
        cumulative += p
        if cumulative >= draw:
            return label
    return last_eligible


class SelectionMode(Enum):
    """How a decision was produced."""
    START = "start"
    OVERRIDE = "override"
    DYNAMIC = "dynamic"


class PlanPhase(Enum):
    START = "start"
    STEPPING = "stepping"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class PlanDecision:
    """One selector decision."""
    position: int
    label: str
    mode: SelectionMode
    draw: Optional[float] = None


class Selector:
    """
    Stateless planner over an immutable model snapshot.

    Per-run state lives in PlanRun, so one Selector may back any number
    of concurrent runs.
    """

    def __init__(
        self,
        model: TrajectoryModel,
        constraints: ConstraintLayer,
        start_label: LabelLike = DEFAULT_START_LABEL,
        bins: Optional[int] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        if not model.alphabet.contains(start_label):
            raise ValueError(f"Start label {label_value(start_label)!r} not in alphabet")
        self._model = model
        self._constraints = constraints
        self._start_label = label_value(start_label)
        self._bins = bins
        self._metrics = metrics

    @property
    def model(self) -> TrajectoryModel:
        return self._model

    @property
    def constraints(self) -> ConstraintLayer:
        return self._constraints

    @property
    def start_label(self) -> str:
        return self._start_label

    def distribution(
        self,
        position: int,
        total_length: int,
        previous_label: LabelLike,
        history: Sequence[str]
    ) -> AdjustedRow:
        """Constraint-adjusted, normalized next-label distribution."""
        matrix = get_matrix_for_position(
            position, total_length, self._model, self._bins, self._metrics
        )
        progress = progress_fraction(position, total_length)
        return self._constraints.adjust_row(matrix, previous_label, history, progress)

    def select(
        self,
        position: int,
        total_length: int,
        previous_label: LabelLike,
        history: Sequence[str],
        draw: float
    ) -> str:
        """Dynamic-mode selection for a given uniform draw in [0, 1)."""
        row = self.distribution(position, total_length, previous_label, history)
        return weighted_choice(row.labels, row.probabilities, draw)

    def most_likely_next(
        self,
        position: int,
        current_label: LabelLike,
        total_length: int
    ) -> Optional[str]:
        """
        Advisory look-ahead: argmax of the next bin's row for current_label.

        Returns None at the final position. Ties resolve to the earliest
        label in alphabet order.
        """
        if position >= total_length - 1:
            return None
        matrix = get_matrix_for_position(
            position + 1, total_length, self._model, self._bins, self._metrics
        )
        return matrix.argmax_target(current_label)


class PlanRun:
    """
    Per-run selection state machine.

    Owns the position counter, the optional override and the random
    source. The caller owns the history and passes it on every step.
    """

    def __init__(
        self,
        selector: Selector,
        total_length: int,
        override: Optional[DiscoveredPath] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None
    ):
        if total_length <= 0:
            raise ValueError(f"total_length must be positive, got {total_length}")
        if override is not None:
            unknown = [l for l in override.sequence if not selector.model.alphabet.contains(l)]
            if unknown:
                raise ValueError(f"Override {override.path_id} has unknown labels: {unknown}")
        self._selector = selector
        self._total_length = total_length
        self._override = override
        self._rng = rng if rng is not None else random.Random(seed)
        self._position = 0
        self._phase = PlanPhase.START
        self._override_active = override is not None
        self._decisions: List[PlanDecision] = []

    @property
    def phase(self) -> PlanPhase:
        return self._phase

    @property
    def position(self) -> int:
        return self._position

    @property
    def total_length(self) -> int:
        return self._total_length

    @property
    def decisions(self) -> Tuple[PlanDecision, ...]:
        return tuple(self._decisions)

    def next(self, history: Sequence[str]) -> PlanDecision:
        """Produce the decision for the current position and advance."""
        if self._phase is PlanPhase.TERMINAL:
            raise PlanExhaustedError(
                f"Plan already produced all {self._total_length} positions"
            )
        position = self._position
        if position == 0:
            decision = PlanDecision(position, self._selector.start_label, SelectionMode.START)
        elif self._override_active and position < len(self._override.sequence):
            decision = PlanDecision(
                position, self._override.sequence[position], SelectionMode.OVERRIDE
            )
        else:
            # Once the override runs short, the remainder is dynamic.
            self._override_active = False
            decision = self._dynamic(position, history)

        self._decisions.append(decision)
        self._position += 1
        self._phase = (
            PlanPhase.TERMINAL if self._position >= self._total_length else PlanPhase.STEPPING
        )
        return decision

    def most_likely_next(self, position: int, current_label: LabelLike) -> Optional[str]:
        return self._selector.most_likely_next(position, current_label, self._total_length)

    def _dynamic(self, position: int, history: Sequence[str]) -> PlanDecision:
        if history:
            previous = label_value(history[-1])
        else:
            previous = self._decisions[-1].label
        draw = self._rng.random()
        label = self._selector.select(position, self._total_length, previous, history, draw)
        return PlanDecision(position, label, SelectionMode.DYNAMIC, draw)


def plan_path(
    selector: Selector,
    total_length: int,
    override: Optional[DiscoveredPath] = None,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None
) -> Tuple[PlanDecision, ...]:
    """Dry-run a full plan, treating each decision as committed."""
    run = PlanRun(selector, total_length, override=override, rng=rng, seed=seed)
    history: List[str] = []
    while run.phase is not PlanPhase.TERMINAL:
        decision = run.next(history)
        history.append(decision.label)
    return run.decisions
