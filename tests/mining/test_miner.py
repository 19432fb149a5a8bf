"""
Archetype Miner Tests

End-to-end mining against deterministic classifiers.
"""

import asyncio
import json

import numpy as np
import pytest

from planner.config import MiningConfig
from planner.contracts import (
    CollaboratorError,
    CollaboratorUnavailableError,
    EmptyCorpusError,
    ErrorCode,
    EventAlphabet,
    RunCancelledError,
)
from planner.observability import MetricsCollector
from mining.corpus import StoryRecord
from mining.miner import ArchetypeMiner, aggregate_paths, smooth_counts
from execution.cancellation import CancellationToken
from tests.fixtures import (
    ABC,
    CLIMAX_STORY,
    RESOLVED_STORY,
    FailingClassifier,
    KeywordClassifier,
    ScriptedClassifier,
    corpus_records,
)


def as_stories(records):
    return [StoryRecord(index=i, text=r["text"]) for i, r in enumerate(records)]


def make_miner(classifier, metrics=None, **overrides):
    config = MiningConfig(**{"segments": 3, **overrides})
    return ArchetypeMiner(
        classifier, EventAlphabet.standard(), config, metrics=metrics or MetricsCollector()
    )


class TestAggregation:

    def test_smoothing_of_empty_rows_is_uniform(self):
        probabilities = smooth_counts(np.zeros((2, 4, 4)))
        assert np.allclose(probabilities, 0.25)

    def test_smoothing_formula(self):
        counts = np.array([[3.0, 1.0], [0.0, 0.0]])
        assert np.allclose(smooth_counts(counts), [[4 / 6, 2 / 6], [0.5, 0.5]])

    def test_paths_ranked_with_stable_ties(self):
        paths = aggregate_paths([("A",), ("B",), ("B",), ("A",), ("C",), ()], top_k=10)
        assert [p.sequence for p in paths] == [("A",), ("B",), ("C",)]
        assert [p.frequency for p in paths] == [2, 2, 1]
        assert [p.percentage for p in paths] == [40.0, 40.0, 20.0]

    def test_top_k_truncates(self):
        paths = aggregate_paths([("A",), ("B",), ("B",)], top_k=1)
        assert len(paths) == 1
        assert paths[0].sequence == ("B",)

    def test_path_ids_are_content_derived(self):
        first = aggregate_paths([("A", "B")], top_k=1)[0]
        second = aggregate_paths([("C",), ("A", "B")], top_k=5)[1]
        assert first.path_id == second.path_id


class TestArchetypeMining:

    def test_discovers_ranked_archetypes(self):
        miner = make_miner(KeywordClassifier())

        result = asyncio.run(miner.mine(as_stories(corpus_records(resolved=6, climax=4))))

        paths = result.stats.discovered_paths
        assert [p.sequence for p in paths] == [
            ("Introduction", "Conflict", "Resolution"),
            ("Introduction", "Conflict", "Climax"),
        ]
        assert [p.frequency for p in paths] == [6, 4]
        assert [p.percentage for p in paths] == [60.0, 40.0]
        assert [p.name for p in paths] == ["Slow Burn", "Cliffhanger"]
        assert result.stats.most_common_path == ("Introduction", "Conflict", "Resolution")
        assert result.stats.count == 10

    def test_counts_are_laplace_smoothed(self):
        miner = make_miner(KeywordClassifier())

        result = asyncio.run(miner.mine(as_stories(corpus_records(resolved=6, climax=4))))

        model = result.model
        n = model.alphabet.size
        assert model.bins == 3
        assert model.matrix(0).probability("Introduction", "Introduction") == pytest.approx(11 / (10 + n))
        assert model.matrix(1).probability("Introduction", "Conflict") == pytest.approx(11 / (10 + n))
        assert model.matrix(2).probability("Conflict", "Resolution") == pytest.approx(7 / (10 + n))
        assert model.matrix(2).probability("Conflict", "Climax") == pytest.approx(5 / (10 + n))
        # Rows never observed stay uniform.
        assert model.matrix(2).probability("Dialogue", "Climax") == pytest.approx(1 / n)
        for matrix in model:
            assert np.allclose(matrix.probabilities.sum(axis=1), 1.0)

    def test_stats_summaries(self):
        miner = make_miner(KeywordClassifier())

        stats = asyncio.run(miner.mine(as_stories(corpus_records(resolved=6, climax=4)))).stats

        distribution = stats.distribution_dict()
        assert distribution["Introduction"] == 10
        assert distribution["Conflict"] == 10
        assert distribution["Resolution"] == 6
        assert distribution["Climax"] == 4
        assert distribution["Dialogue"] == 0
        top = stats.top_transitions[2]
        assert (top.source, top.target) == ("Conflict", "Resolution")
        assert top.progress_label == "67-100%"
        assert stats.report.segments_classified == 30
        assert stats.report.stories_in_corpus == 10

    def test_identical_stories_form_one_archetype(self):
        miner = make_miner(KeywordClassifier())
        stories = as_stories([{"text": RESOLVED_STORY}] * 5)

        paths = asyncio.run(miner.mine(stories)).stats.discovered_paths

        assert len(paths) == 1
        assert paths[0].frequency == 5
        assert paths[0].percentage == 100.0

    def test_concurrency_does_not_change_results(self):
        stories = as_stories(corpus_records(resolved=7, climax=5))
        serial = asyncio.run(make_miner(KeywordClassifier()).mine(stories))
        parallel = asyncio.run(
            make_miner(KeywordClassifier(), max_concurrent_stories=4).mine(stories)
        )
        assert serial.model == parallel.model
        assert serial.stats.discovered_paths == parallel.stats.discovered_paths

    def test_sample_limit_bounds_classification(self):
        classifier = KeywordClassifier()
        miner = make_miner(classifier, sample_limit=2)

        result = asyncio.run(miner.mine(as_stories(corpus_records(resolved=6, climax=4))))

        assert result.stats.count == 2
        assert len(classifier.calls) == 6

    def test_short_segments_are_skipped(self):
        classifier = KeywordClassifier()
        miner = make_miner(classifier)
        stories = as_stories([{"text": "The village was calm. Ok. Peace returned at last."}])

        stats = asyncio.run(miner.mine(stories)).stats

        assert stats.most_common_path == ("Introduction", "Resolution")
        assert stats.report.segments_skipped == 1
        assert len(classifier.calls) == 2

    def test_out_of_alphabet_label_is_coerced(self):
        metrics = MetricsCollector()
        miner = make_miner(ScriptedClassifier(["Introduction", "Epilogue", "Resolution"]), metrics)

        stats = asyncio.run(miner.mine(as_stories([{"text": RESOLVED_STORY}]))).stats

        assert stats.most_common_path == ("Introduction", "Description", "Resolution")
        assert stats.report.labels_coerced == 1
        assert metrics.total("classifier_coerced_total") == 1

    def test_failed_classification_uses_filler(self):
        metrics = MetricsCollector()
        classifier = ScriptedClassifier([CollaboratorError("timeout"), "Conflict", "Climax"])
        miner = make_miner(classifier, metrics)

        stats = asyncio.run(miner.mine(as_stories([{"text": CLIMAX_STORY}]))).stats

        assert stats.most_common_path == ("Rising_Action", "Conflict", "Climax")
        assert stats.report.classifier_failures == 1
        assert metrics.total("classifier_failures_total") == 1
        assert metrics.total("segments_classified_total") == 3

    def test_unreachable_classifier(self):
        miner = make_miner(FailingClassifier())
        with pytest.raises(CollaboratorUnavailableError):
            asyncio.run(miner.mine(as_stories(corpus_records(resolved=2, climax=1))))

    def test_no_usable_segments(self):
        miner = make_miner(KeywordClassifier())
        with pytest.raises(EmptyCorpusError) as exc:
            asyncio.run(miner.mine(as_stories([{"text": "Hi. Yo. Ok."}])))
        assert exc.value.code is ErrorCode.NO_USABLE_SEGMENTS

    def test_empty_story_list(self):
        with pytest.raises(EmptyCorpusError):
            asyncio.run(make_miner(KeywordClassifier()).mine([]))

    def test_cancellation_discards_partial_results(self):
        token = CancellationToken()
        token.cancel("operator")
        miner = make_miner(KeywordClassifier())
        with pytest.raises(RunCancelledError):
            asyncio.run(miner.mine(as_stories(corpus_records(resolved=3, climax=3)), cancel=token))

    def test_mining_labels_must_be_in_alphabet(self):
        with pytest.raises(ValueError):
            ArchetypeMiner(KeywordClassifier(), ABC, MiningConfig())


class TestMineFile:

    def test_progress_reporting(self, tmp_path):
        path = tmp_path / "corpus.json"
        path.write_text(json.dumps(corpus_records(resolved=3, climax=2)), encoding="utf-8")
        progress = []

        result = asyncio.run(
            make_miner(KeywordClassifier()).mine_file(path, on_progress=lambda p, m: progress.append(p))
        )

        assert result.stats.count == 5
        assert progress[0] == 5
        assert progress[1] == 10
        assert progress[-2:] == [95, 100]
        assert progress == sorted(progress)

    def test_snapshot_is_marked_trained(self, tmp_path):
        path = tmp_path / "corpus.ndjson"
        path.write_text("\n".join(json.dumps(r) for r in corpus_records(2, 1)), encoding="utf-8")

        snapshot = asyncio.run(make_miner(KeywordClassifier()).mine_file(path)).snapshot()

        assert snapshot.source == "trained"
        assert snapshot.created_at is not None
