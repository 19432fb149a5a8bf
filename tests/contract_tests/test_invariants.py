"""
Property Tests for Trajectory Engine Contracts
Verifies matrix, selection, constraint and persistence invariants.
"""

import json

import numpy as np
from hypothesis import assume, given, settings, strategies as st
from hypothesis.strategies import composite

from planner.constraints import ConstraintLayer, ConstraintRule
from planner.contracts import DatasetStats, DiscoveredPath, EventAlphabet
from planner.selector import Selector, plan_path, weighted_choice
from planner.storage import ModelSnapshot, decode_record, encode_record
from planner.trajectory import TransitionMatrix, TrajectoryModel, bin_index, get_matrix_for_position
from mining.miner import aggregate_paths

# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

weights = st.floats(
    min_value=0.0, max_value=10.0,
    allow_nan=False, allow_infinity=False, allow_subnormal=False,
)


@composite
def alphabets(draw):
    size = draw(st.integers(min_value=2, max_value=6))
    return EventAlphabet([f"L{i}" for i in range(size)])


@composite
def weight_arrays(draw, size):
    """Non-negative rows, each guaranteed one positive entry."""
    rows = []
    for _ in range(size):
        row = draw(st.lists(weights, min_size=size, max_size=size))
        row[draw(st.integers(min_value=0, max_value=size - 1))] += 1.0
        rows.append(row)
    return np.array(rows)


@composite
def models(draw, alphabet=None):
    alphabet = alphabet or draw(alphabets())
    bins = draw(st.integers(min_value=1, max_value=5))
    return TrajectoryModel(
        TransitionMatrix.from_array(alphabet, draw(weight_arrays(alphabet.size)))
        for _ in range(bins)
    )


@composite
def histories(draw, alphabet):
    return draw(st.lists(st.sampled_from(alphabet.labels), max_size=12))


@composite
def rule_sets(draw, alphabet):
    rules = {}
    for label in alphabet.labels:
        kind = draw(st.sampled_from(["none", "max", "predecessor", "progress"]))
        if kind == "max":
            rules[label] = ConstraintRule(max_occurrences=draw(st.integers(min_value=1, max_value=3)))
        elif kind == "predecessor":
            rules[label] = ConstraintRule(requires_predecessor=draw(st.sampled_from(alphabet.labels)))
        elif kind == "progress":
            rules[label] = ConstraintRule(min_progress=draw(st.floats(min_value=0.0, max_value=1.0)))
    return rules


@composite
def snapshots(draw):
    model = draw(models())
    labels = model.alphabet.labels
    sequences = draw(st.lists(
        st.lists(st.sampled_from(labels), min_size=1, max_size=6).map(tuple),
        max_size=5,
        unique=True,
    ))
    paths = tuple(
        DiscoveredPath(
            path_id=DiscoveredPath.make_id(seq),
            sequence=seq,
            frequency=draw(st.integers(min_value=1, max_value=100)),
            percentage=draw(st.floats(min_value=0.0, max_value=100.0)),
            name=draw(st.sampled_from(["Slow Burn", "Cliffhanger", "Classic Arc"])),
        )
        for seq in sequences
    )
    stats = DatasetStats(
        count=sum(p.frequency for p in paths),
        distribution=tuple((label, draw(st.integers(min_value=0, max_value=50))) for label in labels),
        discovered_paths=paths,
    )
    return ModelSnapshot(model=model, stats=stats)


# =============================================================================
# MATRIX INVARIANTS
# =============================================================================

@given(models())
def test_rows_are_stochastic(model):
    """Every row of every matrix sums to 1 with no negative entries."""
    for matrix in model:
        assert np.all(matrix.probabilities >= 0)
        assert np.allclose(matrix.probabilities.sum(axis=1), 1.0, atol=1e-6)


@given(st.integers(min_value=1, max_value=60), st.integers(min_value=1, max_value=30))
def test_bin_index_is_monotonic_and_bounded(total_length, bins):
    indexes = [bin_index(p, total_length, bins) for p in range(total_length)]
    assert indexes == sorted(indexes)
    assert all(0 <= i < bins for i in indexes)


@given(models(), st.data())
def test_matrix_lookup_is_deterministic(model, data):
    total_length = data.draw(st.integers(min_value=1, max_value=40))
    position = data.draw(st.integers(min_value=0, max_value=total_length - 1))
    first = get_matrix_for_position(position, total_length, model)
    assert first is get_matrix_for_position(position, total_length, model)


# =============================================================================
# CONSTRAINT INVARIANTS
# =============================================================================

@given(models(), st.floats(min_value=0.05, max_value=0.95), st.data())
def test_self_loop_strictly_dampened(model, penalty, data):
    matrix = model.matrix(0)
    previous = data.draw(st.sampled_from(matrix.alphabet.labels))
    original = matrix.probability(previous, previous)
    assume(1e-6 < original < 0.999)

    row = ConstraintLayer(rules={}, self_loop_penalty=penalty).adjust_row(
        matrix, previous, [previous], 0.5
    )

    assert row.probability(previous) < original


@given(models(), st.data())
def test_hard_gates_zero_candidates(model, data):
    alphabet = model.alphabet
    layer = ConstraintLayer(rules=data.draw(rule_sets(alphabet)))
    history = data.draw(histories(alphabet))
    previous = data.draw(st.sampled_from(alphabet.labels))
    progress = data.draw(st.floats(min_value=0.0, max_value=0.999))

    row = layer.adjust_row(model.matrix(0), previous, history, progress)

    assert np.isclose(row.probabilities.sum(), 1.0)
    if row.fallback_used:
        assert sorted(row.probabilities.tolist())[-1] == 1.0
        assert np.count_nonzero(row.probabilities) == 1
    else:
        for label in alphabet.labels:
            if layer.is_gated(label, history, progress):
                assert row.probability(label) == 0.0


@given(models(), st.floats(min_value=0.0, max_value=1.0), st.data())
def test_weighted_choice_never_picks_zero(model, draw, data):
    alphabet = model.alphabet
    layer = ConstraintLayer(rules=data.draw(rule_sets(alphabet)))
    history = data.draw(histories(alphabet))
    row = layer.adjust_row(model.matrix(0), alphabet.labels[0], history, 0.5)

    chosen = weighted_choice(row.labels, row.probabilities, draw)

    assert row.probability(chosen) > 0


# =============================================================================
# SELECTION INVARIANTS
# =============================================================================

@given(models(), st.integers(min_value=1, max_value=25), st.integers(min_value=0, max_value=2**32))
@settings(max_examples=50)
def test_same_seed_same_plan(model, total_length, seed):
    selector = Selector(model, ConstraintLayer(), start_label=model.alphabet.labels[0])

    first = plan_path(selector, total_length, seed=seed)
    second = plan_path(selector, total_length, seed=seed)

    assert [d.label for d in first] == [d.label for d in second]
    assert len(first) == total_length
    assert first[0].label == model.alphabet.labels[0]


# =============================================================================
# PERSISTENCE AND AGGREGATION INVARIANTS
# =============================================================================

@given(snapshots())
@settings(max_examples=50)
def test_save_load_round_trip(snapshot):
    record = json.loads(json.dumps(encode_record(snapshot)))

    loaded = decode_record(record)

    assert loaded.model == snapshot.model
    assert loaded.stats.discovered_paths == snapshot.stats.discovered_paths
    assert loaded.stats.distribution == snapshot.stats.distribution


@given(st.lists(st.lists(st.sampled_from(["A", "B", "C"]), max_size=3).map(tuple), max_size=30))
def test_path_frequencies_cover_sequences(sequences):
    paths = aggregate_paths(sequences, top_k=100)
    non_empty = [s for s in sequences if s]

    assert sum(p.frequency for p in paths) == len(non_empty)
    assert [p.frequency for p in paths] == sorted((p.frequency for p in paths), reverse=True)
    if paths:
        assert abs(sum(p.percentage for p in paths) - 100.0) <= 0.01 * len(paths)
