"""
Archetype Miner
===============

Batch pipeline that learns a trajectory model and discovers recurring
label sequences from a corpus of raw stories.

PIPELINE:
    corpus -> sample -> segment -> classify (external) -> per-bin counts
           -> Laplace smoothing -> TrajectoryModel
           -> exact-sequence aggregation -> ranked DiscoveredPaths

FAILURE SEMANTICS:
- One bad classification never aborts the run: out-of-alphabet replies
  are coerced, raised calls are replaced by a filler label
- No classifiable segment at all -> EmptyCorpusError
- Every classification raised -> CollaboratorUnavailableError
- Cancellation raises RunCancelledError; partial counts are discarded

Results are only returned complete. Publishing them is the caller's
job (see planner.storage.ModelStore).
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import asyncio
import logging
import math

import numpy as np

from planner.config import MiningConfig
from planner.contracts import (
    CollaboratorUnavailableError,
    DatasetStats,
    DiscoveredPath,
    EmptyCorpusError,
    ErrorCode,
    EventAlphabet,
    MiningReport,
    PhaseTransitionSummary,
    utc_now,
)
from planner.observability import MetricsCollector, default_metrics
from planner.storage import ModelSnapshot
from planner.trajectory import TransitionMatrix, TrajectoryModel, bin_index, progress_label

from collaborators.contracts import Classifier
from execution.cancellation import CancellationToken

from .corpus import StoryRecord, load_corpus, sample_stories
from .naming import name_archetype
from .segmentation import segment_story


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class StoryTrace:
    """Everything one story contributed to the counts."""
    index: int
    sequence: Tuple[str, ...]
    transitions: Tuple[Tuple[int, str, str], ...]
    classified: int = 0
    skipped: int = 0
    coerced: int = 0
    failures: int = 0


@dataclass(frozen=True)
class MiningResult:
    model: TrajectoryModel
    stats: DatasetStats

    def snapshot(self) -> ModelSnapshot:
        return ModelSnapshot(
            model=self.model,
            stats=self.stats,
            created_at=utc_now(),
            source="trained",
        )


def smooth_counts(counts: np.ndarray) -> np.ndarray:
    """Add-one smoothing: (count + 1) / (row_total + N) for every cell."""
    n = counts.shape[-1]
    return (counts + 1.0) / (counts.sum(axis=-1, keepdims=True) + n)


def aggregate_paths(
    sequences: Sequence[Tuple[str, ...]],
    top_k: int
) -> Tuple[DiscoveredPath, ...]:
    """
    Group identical sequences, rank by frequency descending.

    Ties keep first-seen order. Percentages are relative to the number of
    non-empty sequences.
    """
    sequences = [s for s in sequences if s]
    if not sequences:
        return ()
    counts = Counter(sequences)
    ranked = sorted(counts, key=lambda s: -counts[s])
    total = len(sequences)
    return tuple(
        DiscoveredPath(
            path_id=DiscoveredPath.make_id(seq),
            sequence=seq,
            frequency=counts[seq],
            percentage=round(counts[seq] / total * 100, 2),
            name=name_archetype(seq),
        )
        for seq in ranked[:top_k]
    )


class ArchetypeMiner:
    """
    Learns a TrajectoryModel plus DatasetStats from raw stories.

    The number of bins defaults to the number of segments per story, so
    segment t of a story feeds bin t.
    """

    def __init__(
        self,
        classifier: Classifier,
        alphabet: Optional[EventAlphabet] = None,
        config: Optional[MiningConfig] = None,
        bins: Optional[int] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self._classifier = classifier
        self._alphabet = alphabet or EventAlphabet.standard()
        self._config = config or MiningConfig()
        self._bins = bins or self._config.segments
        self._metrics = metrics or default_metrics()
        for name in ("coerce_label", "filler_label", "initial_label"):
            label = getattr(self._config, name)
            if not self._alphabet.contains(label):
                raise ValueError(f"Mining {name} {label!r} is not in the alphabet")

    @property
    def bins(self) -> int:
        return self._bins

    async def mine_file(
        self,
        path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancellationToken] = None
    ) -> MiningResult:
        _report(on_progress, 5, "Reading dataset...")
        return await self.mine(load_corpus(path), on_progress, cancel)

    async def mine(
        self,
        stories: Sequence[StoryRecord],
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancellationToken] = None
    ) -> MiningResult:
        if not stories:
            raise EmptyCorpusError("Corpus has no stories")
        cancel = cancel or CancellationToken()
        config = self._config
        sample = sample_stories(stories, config.sample_limit, config.sampling, config.sampling_seed)
        _report(on_progress, 10, f"Initializing analysis ({len(sample)} samples)...")

        traces = await self._classify_all(sample, on_progress, cancel)
        cancel.raise_if_cancelled("aggregation")
        _report(on_progress, 95, "Calculating probabilities...")

        result = self._build_result(traces, len(stories))
        _report(on_progress, 100, "Training complete.")
        logger.info(
            "Mined %d stories into %d bins; %d discovered paths",
            len(sample), self._bins, len(result.stats.discovered_paths)
        )
        return result

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    async def _classify_all(
        self,
        sample: Sequence[StoryRecord],
        on_progress: Optional[ProgressCallback],
        cancel: CancellationToken
    ) -> List[StoryTrace]:
        semaphore = asyncio.Semaphore(self._config.max_concurrent_stories)
        done = 0

        async def run(story: StoryRecord) -> StoryTrace:
            nonlocal done
            async with semaphore:
                cancel.raise_if_cancelled(f"story {story.index}")
                trace = await self._mine_story(story, cancel)
            done += 1
            percent = 10 + math.floor(done / len(sample) * 80)
            _report(on_progress, percent, f"Analyzing story {done}/{len(sample)}")
            return trace

        tasks = [asyncio.ensure_future(run(story)) for story in sample]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _mine_story(self, story: StoryRecord, cancel: CancellationToken) -> StoryTrace:
        config = self._config
        segments = config.segments
        previous = config.initial_label
        sequence: List[str] = []
        transitions: List[Tuple[int, str, str]] = []
        classified = skipped = coerced = failures = 0

        for t, chunk in enumerate(segment_story(story.text, segments)):
            if len(chunk.strip()) < config.min_segment_chars:
                skipped += 1
                continue
            cancel.raise_if_cancelled(f"story {story.index} segment {t}")
            self._metrics.increment("segments_classified_total")
            try:
                raw = await self._classifier.classify(chunk)
            except Exception as e:
                # One failed call never aborts the run.
                logger.warning(
                    "Classifier failed on story %d segment %d (%s); using %s",
                    story.index, t, e, config.filler_label
                )
                self._metrics.increment("classifier_failures_total")
                failures += 1
                label = config.filler_label
            else:
                classified += 1
                if self._alphabet.contains(raw):
                    label = raw
                else:
                    logger.warning(
                        "Classifier returned %r outside the alphabet; coercing to %s",
                        raw, config.coerce_label
                    )
                    self._metrics.increment("classifier_coerced_total")
                    coerced += 1
                    label = config.coerce_label

            transitions.append((bin_index(t, segments, self._bins), previous, label))
            sequence.append(label)
            previous = label

        return StoryTrace(
            index=story.index,
            sequence=tuple(sequence),
            transitions=tuple(transitions),
            classified=classified,
            skipped=skipped,
            coerced=coerced,
            failures=failures,
        )

    # -------------------------------------------------------------------------
    # Aggregation
    # -------------------------------------------------------------------------

    def _build_result(self, traces: Sequence[StoryTrace], corpus_size: int) -> MiningResult:
        classified = sum(t.classified for t in traces)
        failures = sum(t.failures for t in traces)
        if classified + failures == 0:
            raise EmptyCorpusError(
                "Corpus yielded no usable segments", code=ErrorCode.NO_USABLE_SEGMENTS
            )
        if classified == 0:
            raise CollaboratorUnavailableError(
                f"All {failures} classification attempts failed; is the classifier reachable?"
            )

        alphabet = self._alphabet
        counts = np.zeros((self._bins, alphabet.size, alphabet.size), dtype=np.float64)
        distribution: Dict[str, int] = {label: 0 for label in alphabet.labels}
        for trace in traces:
            for b, source, target in trace.transitions:
                counts[b, alphabet.index(source), alphabet.index(target)] += 1
            for label in trace.sequence:
                distribution[label] += 1

        probabilities = smooth_counts(counts)
        model = TrajectoryModel(
            TransitionMatrix.from_array(alphabet, probabilities[b], normalize=False)
            for b in range(self._bins)
        )

        report = MiningReport(
            stories_in_corpus=corpus_size,
            stories_sampled=len(traces),
            segments_classified=classified,
            segments_skipped=sum(t.skipped for t in traces),
            labels_coerced=sum(t.coerced for t in traces),
            classifier_failures=failures,
        )
        stats = DatasetStats(
            count=len(traces),
            distribution=tuple(distribution.items()),
            discovered_paths=aggregate_paths([t.sequence for t in traces], self._config.top_k),
            top_transitions=self._top_transitions(counts, probabilities),
            report=report,
        )
        return MiningResult(model=model, stats=stats)

    def _top_transitions(
        self,
        counts: np.ndarray,
        probabilities: np.ndarray
    ) -> Tuple[PhaseTransitionSummary, ...]:
        labels = self._alphabet.labels
        summaries = []
        for b in range(self._bins):
            if counts[b].sum() == 0:
                continue
            i, j = np.unravel_index(int(np.argmax(counts[b])), counts[b].shape)
            summaries.append(PhaseTransitionSummary(
                bin_index=b,
                progress_label=progress_label(b, self._bins),
                source=labels[i],
                target=labels[j],
                probability=round(float(probabilities[b, i, j]), 4),
            ))
        return tuple(summaries)


def _report(callback: Optional[ProgressCallback], percent: int, message: str) -> None:
    if callback is not None:
        callback(percent, message)
