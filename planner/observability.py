"""
Observability Layer

RESPONSIBILITY: Logging setup and metric collection
OUTPUTS: Log records, MetricPoints, aggregates

WHAT THIS LAYER MUST NOT DO:
============================
- Modify engine behavior
- Make decisions based on recorded data
- Raise from record() calls

Recoverable events (bin fallbacks, constraint fallbacks, classifier
coercions, verification retries) are counted here so they are visible
without ever failing a run.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple
import logging
import sys
import threading


DEFAULT_MAX_POINTS = 10_000

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_trajectory_engine", False):
            root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._trajectory_engine = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level.upper())


# =============================================================================
# METRICS
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMING = "timing"


@dataclass(frozen=True)
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MetricPoint:
    """Single recorded value."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


DEFAULT_METRICS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name="matrix_bin_fallback_total",
        metric_type=MetricType.COUNTER,
        description="Lookups that fell back to bin 0 on a malformed model",
    ),
    MetricDefinition(
        name="constraint_fallback_total",
        metric_type=MetricType.COUNTER,
        description="Rows whose adjusted weight collapsed below epsilon",
    ),
    MetricDefinition(
        name="segments_classified_total",
        metric_type=MetricType.COUNTER,
        description="Corpus segments sent to the classifier",
    ),
    MetricDefinition(
        name="classifier_coerced_total",
        metric_type=MetricType.COUNTER,
        description="Classifier replies outside the alphabet",
    ),
    MetricDefinition(
        name="classifier_failures_total",
        metric_type=MetricType.COUNTER,
        description="Classifier calls that raised",
    ),
    MetricDefinition(
        name="verification_retries_total",
        metric_type=MetricType.COUNTER,
        description="Generate/verify attempts repeated after rejection",
        labels=("label",),
    ),
    MetricDefinition(
        name="steps_unverified_total",
        metric_type=MetricType.COUNTER,
        description="Steps committed best-effort after exhausting retries",
    ),
    MetricDefinition(
        name="runs_completed_total",
        metric_type=MetricType.COUNTER,
        description="Execution runs that reached Done",
    ),
    MetricDefinition(
        name="runs_aborted_total",
        metric_type=MetricType.COUNTER,
        description="Execution runs stopped by cancellation",
    ),
    MetricDefinition(
        name="runs_failed_total",
        metric_type=MetricType.COUNTER,
        description="Execution runs stopped by a collaborator failure",
    ),
    MetricDefinition(
        name="step_duration_ms",
        metric_type=MetricType.TIMING,
        description="Wall time from Plan to Commit for one position",
    ),
)


class MetricsCollector:
    """
    Collect and aggregate metrics.

    Each metric keeps its most recent `max_points` data points; older
    points are evicted but still count towards total(). Safe to share
    between concurrent runs.
    """

    def __init__(self, max_points: int = DEFAULT_MAX_POINTS):
        if max_points < 1:
            raise ValueError(f"max_points must be >= 1, got {max_points}")
        self._max_points = max_points
        self._metrics: Dict[str, Deque[MetricPoint]] = {}
        self._totals: Dict[str, float] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._lock = threading.Lock()
        for definition in DEFAULT_METRICS:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        with self._lock:
            self._definitions[definition.name] = definition
            self._metrics.setdefault(definition.name, deque(maxlen=self._max_points))
            self._totals.setdefault(definition.name, 0.0)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        label_tuple = tuple(sorted(labels.items())) if labels else ()
        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=datetime.now(timezone.utc),
            labels=label_tuple
        )
        with self._lock:
            self._metrics.setdefault(metric_name, deque(maxlen=self._max_points)).append(point)
            self._totals[metric_name] = self._totals.get(metric_name, 0.0) + value

    def increment(self, metric_name: str, labels: Optional[Dict[str, str]] = None):
        """Shorthand for recording a counter increment of one."""
        self.record(metric_name, 1.0, labels)

    def get_metric(self, metric_name: str) -> List[MetricPoint]:
        with self._lock:
            return list(self._metrics.get(metric_name, []))

    def total(self, metric_name: str) -> float:
        """Sum of all values ever recorded, evicted points included."""
        with self._lock:
            return self._totals.get(metric_name, 0.0)

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        points = self.get_metric(metric_name)
        return points[-1] if points else None

    def definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        """Compute count/sum/min/max/mean over the retained points."""
        values = [p.value for p in self.get_metric(metric_name)]
        if not values:
            return {"count": 0, "sum": 0.0, "min": 0.0, "max": 0.0, "mean": 0.0}
        return {
            "count": len(values),
            "sum": sum(values),
            "min": min(values),
            "max": max(values),
            "mean": sum(values) / len(values),
        }

    def snapshot(self) -> Dict[str, float]:
        """Totals of every registered metric."""
        with self._lock:
            names = list(self._metrics)
        return {name: self.total(name) for name in names}


_default_collector = MetricsCollector()


def default_metrics() -> MetricsCollector:
    """Process-wide collector used when no collector is injected."""
    return _default_collector
