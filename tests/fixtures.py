"""
Test Fixtures

Explicit collaborator doubles and small models shared across test modules.

RULES:
======
1. Every double is deterministic
2. Doubles record what they were called with
3. No double touches the network
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from planner.contracts import (
    CollaboratorError,
    DatasetStats,
    DiscoveredPath,
    EventAlphabet,
    GenerationStep,
)
from planner.storage import ModelSnapshot
from planner.trajectory import TransitionMatrix, TrajectoryModel
from collaborators.contracts import (
    Classifier,
    Evaluation,
    Evaluator,
    Generation,
    Generator,
    Verdict,
    Verifier,
)


ABC = EventAlphabet(["A", "B", "C"])


# =============================================================================
# MODELS
# =============================================================================

def cycle_model(alphabet: EventAlphabet = ABC, bins: int = 1) -> TrajectoryModel:
    """Each label deterministically transitions to the next one in order."""
    n = alphabet.size
    weights = np.zeros((n, n))
    for i in range(n):
        weights[i, (i + 1) % n] = 1.0
    matrix = TransitionMatrix.from_array(alphabet, weights)
    return TrajectoryModel([matrix] * bins)


def snapshot_of(
    model: TrajectoryModel,
    paths: Sequence[DiscoveredPath] = (),
    version: str = "2.1.0"
) -> ModelSnapshot:
    stats = DatasetStats(
        count=sum(p.frequency for p in paths),
        distribution=tuple((label, 0) for label in model.alphabet.labels),
        discovered_paths=tuple(paths),
    )
    return ModelSnapshot(model=model, stats=stats, version=version, source="test")


def make_path(sequence: Sequence[str], frequency: int = 1, percentage: float = 100.0) -> DiscoveredPath:
    seq = tuple(sequence)
    return DiscoveredPath(
        path_id=DiscoveredPath.make_id(seq),
        sequence=seq,
        frequency=frequency,
        percentage=percentage,
        name="Test Path",
    )


# =============================================================================
# CORPUS
# =============================================================================

KEYWORDS: Dict[str, str] = {
    "calm": "Introduction",
    "fight": "Conflict",
    "peace": "Resolution",
    "storm": "Climax",
}

RESOLVED_STORY = "The village was calm. A fight broke out. Peace returned at last."
CLIMAX_STORY = "The village was calm. A fight broke out. The storm reached its peak."


def corpus_records(resolved: int, climax: int) -> List[Dict[str, str]]:
    """Interleaved corpus so the less frequent story is seen first."""
    records = []
    for i in range(max(resolved, climax)):
        if i < climax:
            records.append({"text": CLIMAX_STORY})
        if i < resolved:
            records.append({"text": RESOLVED_STORY})
    return records


# =============================================================================
# COLLABORATOR DOUBLES
# =============================================================================

class KeywordClassifier(Classifier):
    """Labels a segment by the first keyword it contains."""

    def __init__(self, keywords: Optional[Dict[str, str]] = None, default: str = "Description"):
        self._keywords = keywords or KEYWORDS
        self._default = default
        self.calls: List[str] = []

    async def classify(self, text: str) -> str:
        self.calls.append(text)
        lowered = text.lower()
        for keyword, label in self._keywords.items():
            if keyword in lowered:
                return label
        return self._default


class ScriptedClassifier(Classifier):
    """Replies in order; Exception instances are raised."""

    def __init__(self, replies: Iterable[Union[str, Exception]]):
        self._replies = list(replies)
        self.calls: List[str] = []

    async def classify(self, text: str) -> str:
        self.calls.append(text)
        reply = self._replies.pop(0) if self._replies else "Description"
        if isinstance(reply, Exception):
            raise reply
        return reply


class FailingClassifier(Classifier):
    async def classify(self, text: str) -> str:
        raise CollaboratorError("classifier offline", "network_error")


class ScriptedGenerator(Generator):
    """
    Returns scripted texts in order, then "Segment <position> <label>.".

    error_at raises `error` (a CollaboratorError by default) when that
    position is requested.
    """

    def __init__(
        self,
        texts: Iterable[str] = (),
        error_at: Optional[int] = None,
        error: Optional[Exception] = None
    ):
        self._texts = list(texts)
        self._error_at = error_at
        self._error = error
        self.calls: List[Tuple[int, str, Optional[str]]] = []
        self.contexts: List[str] = []

    async def generate(
        self,
        context: str,
        target_label: str,
        position: int,
        total_length: int,
        foreshadow: Optional[str] = None
    ) -> Generation:
        self.calls.append((position, target_label, foreshadow))
        self.contexts.append(context)
        if self._error_at is not None and position == self._error_at:
            raise self._error or CollaboratorError("generator unavailable", "api_error")
        if self._texts:
            return Generation(text=self._texts.pop(0), prompt_used=f"prompt {position}")
        return Generation(text=f"Segment {position} {target_label}.", prompt_used=f"prompt {position}")


class ScriptedVerifier(Verifier):
    """Verdicts in order, then `default`."""

    def __init__(self, verdicts: Iterable[bool] = (), default: bool = True, confidence: float = 0.9):
        self._verdicts = list(verdicts)
        self._default = default
        self._confidence = confidence
        self.calls: List[Tuple[str, str]] = []

    async def verify(self, text: str, target_label: str) -> Verdict:
        self.calls.append((text, target_label))
        verified = self._verdicts.pop(0) if self._verdicts else self._default
        return Verdict(
            verified=verified,
            confidence=self._confidence if verified else 0.2,
        )


class StaticEvaluator(Evaluator):
    def __init__(self):
        self.calls: List[Tuple[str, int]] = []

    async def evaluate(
        self,
        full_text: str,
        steps: Optional[Sequence[GenerationStep]] = None
    ) -> Evaluation:
        self.calls.append((full_text, len(steps or ())))
        return Evaluation(
            coherence_score=8.0,
            creativity_score=7.0,
            flow_score=6.0,
            critique="Solid.",
            structural_adherence=90.0,
        )


class FailingEvaluator(Evaluator):
    async def evaluate(self, full_text, steps=None) -> Evaluation:
        raise CollaboratorError("judge unavailable", "timeout")


class CancellingGenerator(ScriptedGenerator):
    """Cancels `token` while generating the text for position `at`."""

    def __init__(self, token, at: int):
        super().__init__()
        self._token = token
        self._at = at

    async def generate(self, context, target_label, position, total_length, foreshadow=None) -> Generation:
        generation = await super().generate(context, target_label, position, total_length, foreshadow)
        if position == self._at:
            self._token.cancel("operator")
        return generation


class CrashingEvaluator(Evaluator):
    async def evaluate(self, full_text, steps=None) -> Evaluation:
        raise RuntimeError("judge crashed")
