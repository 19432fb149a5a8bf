"""
Collaborator Contracts
======================

Request/response boundary between the engine core and the external
classifier, generator, verifier and evaluator.

The core only depends on these ABCs. Implementations may be an LLM, a
rule engine or a human; failures must surface as CollaboratorError.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

from planner.contracts import GenerationStep


@dataclass(frozen=True)
class Generation:
    """Text produced by a generator, with the prompt that produced it."""
    text: str
    prompt_used: str = ""

    @staticmethod
    def coerce(value: Union[str, Generation]) -> Generation:
        if isinstance(value, Generation):
            return value
        return Generation(text=value if isinstance(value, str) else "")


@dataclass(frozen=True)
class Verdict:
    """Verifier output. Only verified and confidence are consumed by the core."""
    verified: bool
    confidence: float
    reasoning: str = ""

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")


@dataclass(frozen=True)
class Evaluation:
    """Qualitative scores from the evaluator (1-10 scales, adherence 0-100)."""
    coherence_score: float
    creativity_score: float
    flow_score: float
    critique: str = ""
    structural_adherence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coherence_score": self.coherence_score,
            "creativity_score": self.creativity_score,
            "flow_score": self.flow_score,
            "structural_adherence": self.structural_adherence,
            "critique": self.critique,
        }


class Classifier(ABC):
    @abstractmethod
    async def classify(self, text: str) -> str:
        """Map a text fragment to one label. Values outside the alphabet are tolerated."""


class Generator(ABC):
    @abstractmethod
    async def generate(
        self,
        context: str,
        target_label: str,
        position: int,
        total_length: int,
        foreshadow: Optional[str] = None
    ) -> Generation:
        """Produce the prose for one position."""


class Verifier(ABC):
    @abstractmethod
    async def verify(self, text: str, target_label: str) -> Verdict:
        """Judge whether text fulfils the target label."""


class Evaluator(ABC):
    @abstractmethod
    async def evaluate(
        self,
        full_text: str,
        steps: Optional[Sequence[GenerationStep]] = None
    ) -> Evaluation:
        """Score a finished story once."""
