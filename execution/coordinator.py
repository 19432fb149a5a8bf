"""
Execution Coordinator
=====================

Drives one story-length run through plan, generate, verify and commit.

STATE MACHINE (per run):
    Init -> [Plan -> Generate -> Verify -> (retry | Commit)] x L -> Score -> Done

RULES:
1. The model snapshot is taken once at run start and kept to the end
2. At most max_retries + 1 generate/verify attempts per position
3. Retries are sequential; the verifier always sees the text from the
   matching generate attempt
4. Exhausted retries commit best-effort with verified=False
5. Cancellation is polled before Plan, Generate and Verify; the run is
   marked ABORTED and committed steps are kept
6. Any error from the generator or verifier marks the run FAILED
7. An evaluator error leaves evaluation=None on a COMPLETED run
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import time
import uuid

from planner.config import ExecutionConfig, SelectorConfig
from planner.constraints import ConstraintLayer, default_rules
from planner.contracts import (
    CollaboratorError,
    DiscoveredPath,
    GenerationStep,
    RunCancelledError,
    utc_now,
)
from planner.observability import MetricsCollector, default_metrics
from planner.selector import PlanDecision, PlanRun, Selector
from planner.storage import ModelSnapshot, ModelStore

from collaborators.contracts import Evaluation, Evaluator, Generation, Generator, Verdict, Verifier

from .cancellation import CancellationToken
from .metrics import ResearchMetrics, compute_metrics


logger = logging.getLogger(__name__)

StepCallback = Callable[[GenerationStep], None]


class RunStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True)
class RunResult:
    """Outcome of one run. Steps are kept for every status."""
    run_id: str
    status: RunStatus
    steps: Tuple[GenerationStep, ...]
    story_text: str
    decisions: Tuple[PlanDecision, ...] = ()
    evaluation: Optional[Evaluation] = None
    metrics: Optional[ResearchMetrics] = None
    error: Optional[str] = None
    model_version: str = ""
    variant: str = "constrained"

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(s.label for s in self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "variant": self.variant,
            "model_version": self.model_version,
            "labels": list(self.labels),
            "steps": [s.to_dict() for s in self.steps],
            "story_text": self.story_text,
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "error": self.error,
        }


class ExecutionCoordinator:
    """
    Runs stories against the snapshot published in a ModelStore.

    Holds no per-run state; concurrent run() calls are independent.
    When constraints is None the stock rules for the snapshot's alphabet
    are used.
    """

    def __init__(
        self,
        store: ModelStore,
        generator: Generator,
        verifier: Verifier,
        evaluator: Optional[Evaluator] = None,
        constraints: Optional[ConstraintLayer] = None,
        config: Optional[ExecutionConfig] = None,
        selector_config: Optional[SelectorConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        variant: str = "constrained"
    ):
        self._store = store
        self._generator = generator
        self._verifier = verifier
        self._evaluator = evaluator
        self._constraints = constraints
        self._config = config or ExecutionConfig()
        self._selector_config = selector_config or SelectorConfig()
        self._metrics = metrics or default_metrics()
        self._variant = variant

    @property
    def variant(self) -> str:
        return self._variant

    @property
    def config(self) -> ExecutionConfig:
        return self._config

    def _constraints_for(self, snapshot: ModelSnapshot) -> ConstraintLayer:
        if self._constraints is not None:
            return self._constraints
        return ConstraintLayer(rules=default_rules(snapshot.alphabet), metrics=self._metrics)

    async def run(
        self,
        override: Optional[DiscoveredPath] = None,
        cancel: Optional[CancellationToken] = None,
        seed: Optional[int] = None,
        snapshot: Optional[ModelSnapshot] = None,
        on_step: Optional[StepCallback] = None
    ) -> RunResult:
        """Execute one full run. Failures and cancellation are reported in the result, never raised."""
        snapshot = snapshot or self._store.current()
        cancel = cancel or CancellationToken()
        config = self._config
        run_id = f"run_{uuid.uuid4().hex[:12]}"

        selector = Selector(
            snapshot.model,
            self._constraints_for(snapshot),
            start_label=self._selector_config.start_label,
            metrics=self._metrics,
        )
        plan = PlanRun(
            selector,
            config.total_length,
            override=override,
            seed=config.random_seed if seed is None else seed,
        )
        steps: List[GenerationStep] = []
        logger.info(
            "Run %s started (length %d, override %s)",
            run_id, config.total_length, override.path_id if override else None
        )

        def result(status: RunStatus, **extra) -> RunResult:
            return RunResult(
                run_id=run_id,
                status=status,
                steps=tuple(steps),
                story_text=_join(steps),
                decisions=plan.decisions,
                model_version=snapshot.version,
                variant=self._variant,
                **extra,
            )

        try:
            for position in range(config.total_length):
                cancel.raise_if_cancelled("plan")
                started = time.perf_counter()
                decision = plan.next([s.label for s in steps])
                foreshadow = plan.most_likely_next(position, decision.label)
                step = await self._execute_step(
                    position, decision.label, foreshadow, _join(steps), cancel
                )
                steps.append(step)
                self._metrics.record("step_duration_ms", (time.perf_counter() - started) * 1000)
                if on_step is not None:
                    on_step(step)
        except RunCancelledError as e:
            logger.info("Run %s aborted after %d steps: %s", run_id, len(steps), e)
            self._metrics.increment("runs_aborted_total")
            return result(RunStatus.ABORTED, error=str(e))
        except CollaboratorError as e:
            logger.error("Run %s failed at position %d: %s", run_id, len(steps), e)
            self._metrics.increment("runs_failed_total")
            return result(RunStatus.FAILED, error=str(e))
        except Exception as e:
            logger.exception("Run %s crashed at position %d", run_id, len(steps))
            self._metrics.increment("runs_failed_total")
            return result(RunStatus.FAILED, error=f"{type(e).__name__}: {e}")

        story_text = _join(steps)
        evaluation = await self._score(run_id, story_text, steps)
        self._metrics.increment("runs_completed_total")
        logger.info("Run %s completed", run_id)
        return result(
            RunStatus.COMPLETED,
            evaluation=evaluation,
            metrics=compute_metrics(story_text, steps),
        )

    async def _execute_step(
        self,
        position: int,
        label: str,
        foreshadow: Optional[str],
        context: str,
        cancel: CancellationToken
    ) -> GenerationStep:
        max_retries = self._config.max_retries
        retry_count = 0
        while True:
            cancel.raise_if_cancelled("generate")
            generation = Generation.coerce(await self._generator.generate(
                context, label, position, self._config.total_length, foreshadow
            ))
            if generation.text.strip():
                cancel.raise_if_cancelled("verify")
                verdict = await self._verifier.verify(generation.text, label)
            else:
                verdict = Verdict(verified=False, confidence=0.0, reasoning="empty text")

            if verdict.verified or retry_count >= max_retries:
                break
            retry_count += 1
            logger.warning(
                "Position %d: %s not verified (confidence %.2f), retry %d/%d",
                position, label, verdict.confidence, retry_count, max_retries
            )
            self._metrics.increment("verification_retries_total", {"label": label})

        if not verdict.verified:
            self._metrics.increment("steps_unverified_total")
        return GenerationStep(
            index=position,
            label=label,
            text=generation.text,
            confidence=verdict.confidence,
            verified=verdict.verified,
            retry_count=retry_count,
            timestamp=utc_now(),
            prompt_used=generation.prompt_used,
        )

    async def _score(
        self,
        run_id: str,
        story_text: str,
        steps: List[GenerationStep]
    ) -> Optional[Evaluation]:
        if self._evaluator is None:
            return None
        try:
            return await self._evaluator.evaluate(story_text, tuple(steps))
        except Exception as e:
            # Scoring never fails a run whose steps are committed.
            logger.warning("Run %s: evaluation failed, continuing without scores: %s", run_id, e)
            return None


def _join(steps: List[GenerationStep]) -> str:
    return " ".join(s.text for s in steps if s.text)
