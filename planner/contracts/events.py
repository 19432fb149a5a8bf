"""
Event Contracts

Immutable records exchanged between the planner, the miner and the
execution coordinator.

All types are frozen dataclasses. Dict round-tripping is explicit so the
saved-model codec never depends on dataclass internals.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple
import hashlib


# =============================================================================
# EXECUTION RECORDS
# =============================================================================

@dataclass(frozen=True)
class GenerationStep:
    """
    One committed position of a run.

    The ordered tuple of steps is the authoritative history consumed by
    the constraint layer and by final scoring. Steps are never edited
    after they are committed.
    """
    index: int
    label: str
    text: str
    confidence: float
    verified: bool
    retry_count: int
    timestamp: datetime
    prompt_used: str = ""

    def __post_init__(self):
        if self.index < 0:
            raise ValueError("GenerationStep index must be >= 0")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "label": self.label,
            "text": self.text,
            "confidence": self.confidence,
            "verified": self.verified,
            "retry_count": self.retry_count,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# MINING RECORDS
# =============================================================================

@dataclass(frozen=True)
class DiscoveredPath:
    """
    A full-length label sequence recurring across corpus stories.

    Created once per mining run and ranked by frequency.
    """
    path_id: str
    sequence: Tuple[str, ...]
    frequency: int
    percentage: float
    name: str

    @staticmethod
    def make_id(sequence: Tuple[str, ...]) -> str:
        """Deterministic id derived from the sequence content."""
        digest = hashlib.sha256("|".join(sequence).encode("utf-8")).hexdigest()[:12]
        return f"path_{digest}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.path_id,
            "sequence": list(self.sequence),
            "frequency": self.frequency,
            "percentage": self.percentage,
            "name": self.name,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> DiscoveredPath:
        return DiscoveredPath(
            path_id=str(data["id"]),
            sequence=tuple(str(s) for s in data["sequence"]),
            frequency=int(data["frequency"]),
            percentage=float(data["percentage"]),
            name=str(data["name"]),
        )


@dataclass(frozen=True)
class PhaseTransitionSummary:
    """Dominant observed transition inside one progress bin."""
    bin_index: int
    progress_label: str
    source: str
    target: str
    probability: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bin_index": self.bin_index,
            "progress_label": self.progress_label,
            "from": self.source,
            "to": self.target,
            "probability": self.probability,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> PhaseTransitionSummary:
        return PhaseTransitionSummary(
            bin_index=int(data["bin_index"]),
            progress_label=str(data["progress_label"]),
            source=str(data["from"]),
            target=str(data["to"]),
            probability=float(data["probability"]),
        )


@dataclass(frozen=True)
class MiningReport:
    """Counts of recoverable events observed during a mining run."""
    stories_in_corpus: int = 0
    stories_sampled: int = 0
    segments_classified: int = 0
    segments_skipped: int = 0
    labels_coerced: int = 0
    classifier_failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "stories_in_corpus": self.stories_in_corpus,
            "stories_sampled": self.stories_sampled,
            "segments_classified": self.segments_classified,
            "segments_skipped": self.segments_skipped,
            "labels_coerced": self.labels_coerced,
            "classifier_failures": self.classifier_failures,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> MiningReport:
        return MiningReport(**{k: int(data.get(k, 0)) for k in MiningReport().to_dict()})


@dataclass(frozen=True)
class DatasetStats:
    """
    Summary of one training run.

    Replaces the previous instance wholesale when a new model is published.
    """
    count: int
    distribution: Tuple[Tuple[str, int], ...]
    discovered_paths: Tuple[DiscoveredPath, ...] = field(default_factory=tuple)
    top_transitions: Tuple[PhaseTransitionSummary, ...] = field(default_factory=tuple)
    report: MiningReport = field(default_factory=MiningReport)

    @property
    def most_common_path(self) -> Tuple[str, ...]:
        if not self.discovered_paths:
            return ()
        return self.discovered_paths[0].sequence

    def distribution_dict(self) -> Dict[str, int]:
        return dict(self.distribution)

    def find_path(self, path_id: str) -> Optional[DiscoveredPath]:
        for path in self.discovered_paths:
            if path.path_id == path_id:
                return path
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "distribution": dict(self.distribution),
            "most_common_path": list(self.most_common_path),
            "top_transitions": [t.to_dict() for t in self.top_transitions],
            "discovered_paths": [p.to_dict() for p in self.discovered_paths],
            "report": self.report.to_dict(),
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> DatasetStats:
        distribution = data.get("distribution", {})
        if not isinstance(distribution, Mapping):
            raise ValueError("distribution must be an object")
        report = data.get("report", {})
        if not isinstance(report, Mapping):
            raise ValueError("report must be an object")
        return DatasetStats(
            count=int(data["count"]),
            distribution=tuple((str(k), int(v)) for k, v in distribution.items()),
            discovered_paths=tuple(
                DiscoveredPath.from_dict(p) for p in data.get("discovered_paths", [])
            ),
            top_transitions=tuple(
                PhaseTransitionSummary.from_dict(t) for t in data.get("top_transitions", [])
            ),
            report=MiningReport.from_dict(report),
        )

    @staticmethod
    def empty(labels: Tuple[str, ...]) -> DatasetStats:
        return DatasetStats(count=0, distribution=tuple((l, 0) for l in labels))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
