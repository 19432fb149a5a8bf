"""
Selector Tests

Weighted choice, the per-run state machine, overrides and look-ahead.
"""

import random

import pytest

from planner.constraints import ConstraintLayer, default_rules
from planner.contracts import EventAlphabet, PlanExhaustedError
from planner.selector import (
    PlanPhase,
    PlanRun,
    SelectionMode,
    Selector,
    plan_path,
    weighted_choice,
)
from planner.trajectory import TrajectoryModel, TransitionMatrix, build_default_model
from tests.fixtures import ABC, cycle_model, make_path


def cycle_selector(start="A"):
    return Selector(cycle_model(), ConstraintLayer.unconstrained(), start_label=start)


class TestWeightedChoice:

    def test_first_cumulative_hit_wins(self):
        assert weighted_choice(["A", "B", "C"], [0.2, 0.5, 0.3], 0.1) == "A"
        assert weighted_choice(["A", "B", "C"], [0.2, 0.5, 0.3], 0.2) == "A"
        assert weighted_choice(["A", "B", "C"], [0.2, 0.5, 0.3], 0.21) == "B"

    def test_zero_probability_never_selected(self):
        assert weighted_choice(["A", "B", "C"], [0.0, 1.0, 0.0], 0.0) == "B"
        assert weighted_choice(["A", "B", "C"], [0.0, 1.0, 0.0], 1.0) == "B"

    def test_rounding_shortfall_returns_last_eligible(self):
        assert weighted_choice(["A", "B", "C"], [0.3, 0.3, 0.3], 0.95) == "C"
        assert weighted_choice(["A", "B", "C"], [0.5, 0.45, 0.0], 0.99) == "B"

    def test_misaligned_input_rejected(self):
        with pytest.raises(ValueError):
            weighted_choice(["A"], [0.5, 0.5], 0.1)


class TestPlanRun:

    def test_start_then_dynamic(self):
        run = PlanRun(cycle_selector(), 5, seed=1)
        history = []
        while run.phase is not PlanPhase.TERMINAL:
            history.append(run.next(history).label)

        assert history == ["A", "B", "C", "A", "B"]
        modes = [d.mode for d in run.decisions]
        assert modes[0] is SelectionMode.START
        assert all(m is SelectionMode.DYNAMIC for m in modes[1:])

    def test_terminal_run_raises(self):
        run = PlanRun(cycle_selector(), 1)
        run.next([])
        assert run.phase is PlanPhase.TERMINAL
        with pytest.raises(PlanExhaustedError):
            run.next(["A"])

    def test_dynamic_step_uses_last_history_label(self):
        run = PlanRun(cycle_selector(), 3)
        run.next([])
        # The caller committed "C" rather than the planned "A".
        assert run.next(["C"]).label == "A"

    def test_override_covers_leading_positions(self):
        override = make_path(["B", "C", "C"])

        decisions = plan_path(cycle_selector(), 5, override=override, seed=3)

        assert [d.label for d in decisions] == ["A", "C", "C", "A", "B"]
        assert [d.mode for d in decisions] == [
            SelectionMode.START,
            SelectionMode.OVERRIDE,
            SelectionMode.OVERRIDE,
            SelectionMode.DYNAMIC,
            SelectionMode.DYNAMIC,
        ]

    def test_override_with_unknown_labels_rejected(self):
        with pytest.raises(ValueError):
            PlanRun(cycle_selector(), 3, override=make_path(["A", "Z"]))

    def test_non_positive_length_rejected(self):
        with pytest.raises(ValueError):
            PlanRun(cycle_selector(), 0)

    def test_same_seed_same_plan(self):
        selector = Selector(
            build_default_model(), ConstraintLayer(rules=default_rules())
        )
        first = [d.label for d in plan_path(selector, 15, seed=11)]
        second = [d.label for d in plan_path(selector, 15, seed=11)]
        assert first == second
        assert first[0] == "Introduction"

    def test_injected_random_source(self):
        selector = Selector(build_default_model(), ConstraintLayer(rules=default_rules()))
        a = plan_path(selector, 10, rng=random.Random(5))
        b = plan_path(selector, 10, rng=random.Random(5))
        assert [d.draw for d in a] == [d.draw for d in b]


class TestSelector:

    def test_start_label_must_be_in_alphabet(self):
        with pytest.raises(ValueError):
            Selector(cycle_model(), ConstraintLayer.unconstrained(), start_label="Introduction")

    def test_most_likely_next_reads_next_bin(self):
        first = TransitionMatrix.uniform(ABC)
        second = TransitionMatrix.from_weights(ABC, {"A": {"C": 5.0}})
        selector = Selector(TrajectoryModel([first, second]), ConstraintLayer.unconstrained(), "A")

        assert selector.most_likely_next(0, "A", 2) == "C"
        assert selector.most_likely_next(1, "A", 2) is None

    def test_distribution_is_normalized(self):
        selector = Selector(
            build_default_model(EventAlphabet.classic()),
            ConstraintLayer(rules=default_rules(EventAlphabet.classic())),
        )
        row = selector.distribution(5, 15, "Conflict", ["Introduction", "Conflict"])
        assert row.probabilities.sum() == pytest.approx(1.0)
