"""
Constrained vs. unconstrained comparison.

Both runs share one model snapshot, one seed and one cancellation token
and are awaited concurrently.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import asyncio
import logging

from planner.config import ExecutionConfig, SelectorConfig
from planner.constraints import ConstraintLayer
from planner.contracts import DiscoveredPath
from planner.observability import MetricsCollector
from planner.storage import ModelStore

from collaborators.contracts import Evaluator, Generator, Verifier

from .cancellation import CancellationToken
from .coordinator import ExecutionCoordinator, RunResult


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonResult:
    constrained: RunResult
    baseline: RunResult

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constrained": self.constrained.to_dict(),
            "baseline": self.baseline.to_dict(),
        }


async def run_comparison(
    store: ModelStore,
    generator: Generator,
    verifier: Verifier,
    evaluator: Optional[Evaluator] = None,
    constraints: Optional[ConstraintLayer] = None,
    config: Optional[ExecutionConfig] = None,
    selector_config: Optional[SelectorConfig] = None,
    override: Optional[DiscoveredPath] = None,
    cancel: Optional[CancellationToken] = None,
    seed: Optional[int] = None,
    metrics: Optional[MetricsCollector] = None
) -> ComparisonResult:
    """
    Run a constrained story and an unconstrained baseline side by side.

    The baseline uses ConstraintLayer.unconstrained(): no rules and no
    self-loop penalty.
    """
    snapshot = store.current()
    cancel = cancel or CancellationToken()

    constrained = ExecutionCoordinator(
        store, generator, verifier, evaluator,
        constraints=constraints, config=config, selector_config=selector_config,
        metrics=metrics, variant="constrained",
    )
    baseline = ExecutionCoordinator(
        store, generator, verifier, evaluator,
        constraints=ConstraintLayer.unconstrained(), config=config,
        selector_config=selector_config, metrics=metrics, variant="baseline",
    )
    logger.info("Starting comparison against %s model", snapshot.source)
    constrained_result, baseline_result = await asyncio.gather(
        constrained.run(override=override, cancel=cancel, seed=seed, snapshot=snapshot),
        baseline.run(override=override, cancel=cancel, seed=seed, snapshot=snapshot),
    )
    return ComparisonResult(constrained=constrained_result, baseline=baseline_result)
