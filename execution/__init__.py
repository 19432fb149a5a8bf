"""
Execution layer: the generate-verify-retry coordinator, cooperative
cancellation, derived research metrics and comparison runs.
"""

from .cancellation import CancellationToken
from .metrics import (
    ResearchMetrics,
    compute_metrics,
    constraint_satisfaction_rate,
    self_bleu_proxy,
)
from .coordinator import ExecutionCoordinator, RunResult, RunStatus
from .comparison import ComparisonResult, run_comparison

__all__ = [
    'CancellationToken',
    'ResearchMetrics', 'compute_metrics', 'constraint_satisfaction_rate', 'self_bleu_proxy',
    'ExecutionCoordinator', 'RunResult', 'RunStatus',
    'ComparisonResult', 'run_comparison',
]
