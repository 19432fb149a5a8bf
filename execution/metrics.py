"""
Derived research metrics computed locally over a finished run.

- CSR: share of steps that passed verification on the first attempt (%)
- Self-BLEU proxy: repeated 3-grams / total 3-grams (lower is more diverse)
- Unique 3-grams and total words
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple
import re

from planner.contracts import GenerationStep


NGRAM_SIZE = 3

_NON_WORD = re.compile(r"[^\w\s]")


@dataclass(frozen=True)
class ResearchMetrics:
    csr: float
    self_bleu: float
    unique_ngrams: int
    total_words: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "csr": self.csr,
            "self_bleu": self.self_bleu,
            "unique_ngrams": self.unique_ngrams,
            "total_words": self.total_words,
        }


def constraint_satisfaction_rate(steps: Sequence[GenerationStep]) -> float:
    if not steps:
        return 0.0
    first_try = sum(1 for s in steps if s.verified and s.retry_count == 0)
    return first_try / len(steps) * 100


def self_bleu_proxy(text: str, n: int = NGRAM_SIZE) -> Tuple[float, int]:
    """Return (repetition rate rounded to 3 places, unique n-gram count)."""
    words = _NON_WORD.sub("", text.lower()).split()
    if len(words) < n:
        return 0.0, len(words)
    grams = Counter(" ".join(words[i:i + n]) for i in range(len(words) - n + 1))
    total = sum(grams.values())
    repeated = total - len(grams)
    return round(repeated / total, 3), len(grams)


def compute_metrics(text: str, steps: Sequence[GenerationStep]) -> ResearchMetrics:
    self_bleu, unique = self_bleu_proxy(text)
    return ResearchMetrics(
        csr=constraint_satisfaction_rate(steps),
        self_bleu=self_bleu,
        unique_ngrams=unique,
        total_words=len(text.split()),
    )
