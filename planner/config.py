"""
Engine Configuration

Frozen dataclass configuration for every layer, composed into a single
EngineConfig. Values can be overridden from NTE_* environment variables.

ENVIRONMENT:
    NTE_ALPHABET            standard | classic
    NTE_BINS                number of progress bins
    NTE_SELF_LOOP_PENALTY   multiplicative penalty in (0, 1]
    NTE_TOTAL_LENGTH        positions per story
    NTE_MAX_RETRIES         extra generate/verify attempts per position
    NTE_SAMPLE_LIMIT        stories mined per training run
    NTE_OLLAMA_HOST         base URL of the Ollama server
    NTE_OLLAMA_MODEL        model tag sent to Ollama
    NTE_MODEL_PATH          saved model loaded at startup
    NTE_LOG_LEVEL           logging level name
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional
import os

from .constraints import (
    ConstraintLayer,
    DEFAULT_COOLDOWN_DAMPING,
    DEFAULT_FALLBACK_EPSILON,
    DEFAULT_SAFETY_LABEL,
    DEFAULT_SELF_LOOP_PENALTY,
    default_rules,
)
from .contracts.base import EventAlphabet
from .observability import MetricsCollector
from .selector import DEFAULT_START_LABEL
from .trajectory.defaults import DEFAULT_BINS


ENV_PREFIX = "NTE_"


@dataclass(frozen=True)
class TrajectoryConfig:
    """Alphabet variant and bin count of the trajectory model."""
    alphabet: str = "standard"
    bins: int = DEFAULT_BINS

    def build_alphabet(self) -> EventAlphabet:
        return EventAlphabet.named(self.alphabet)


@dataclass(frozen=True)
class ConstraintConfig:
    self_loop_penalty: float = DEFAULT_SELF_LOOP_PENALTY
    cooldown_damping: float = DEFAULT_COOLDOWN_DAMPING
    fallback_epsilon: float = DEFAULT_FALLBACK_EPSILON
    safety_label: str = DEFAULT_SAFETY_LABEL
    use_default_rules: bool = True

    def build_layer(
        self,
        alphabet: EventAlphabet,
        metrics: Optional[MetricsCollector] = None
    ) -> ConstraintLayer:
        return ConstraintLayer(
            rules=default_rules(alphabet) if self.use_default_rules else {},
            self_loop_penalty=self.self_loop_penalty,
            cooldown_damping=self.cooldown_damping,
            fallback_epsilon=self.fallback_epsilon,
            safety_label=self.safety_label,
            metrics=metrics,
        )


@dataclass(frozen=True)
class SelectorConfig:
    start_label: str = DEFAULT_START_LABEL


@dataclass(frozen=True)
class MiningConfig:
    """
    Archetype miner settings.

    sampling is one of "sequential", "random" or "strided".
    """
    segments: int = 15
    sample_limit: int = 50
    sampling: str = "sequential"
    sampling_seed: int = 42
    min_segment_chars: int = 10
    max_concurrent_stories: int = 1
    top_k: int = 15
    coerce_label: str = "Description"
    filler_label: str = "Rising_Action"
    initial_label: str = "Introduction"

    def __post_init__(self):
        if self.segments < 1:
            raise ValueError("segments must be >= 1")
        if self.sample_limit < 1:
            raise ValueError("sample_limit must be >= 1")
        if self.sampling not in ("sequential", "random", "strided"):
            raise ValueError(f"Unknown sampling strategy: {self.sampling}")
        if self.max_concurrent_stories < 1:
            raise ValueError("max_concurrent_stories must be >= 1")
        if self.top_k < 1:
            raise ValueError("top_k must be >= 1")


@dataclass(frozen=True)
class ExecutionConfig:
    """Per-run settings of the execution coordinator."""
    total_length: int = 15
    max_retries: int = 2
    random_seed: Optional[int] = 42

    def __post_init__(self):
        if self.total_length < 1:
            raise ValueError("total_length must be >= 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")


@dataclass(frozen=True)
class ProviderConfig:
    """LLM provider settings. provider is "ollama" or "mock"."""
    provider: str = "ollama"
    host: str = "http://localhost:11434"
    model: str = "mistral-small:24b"
    timeout_seconds: float = 120.0
    num_ctx: int = 8192


@dataclass(frozen=True)
class EngineConfig:
    """Unified configuration for the whole engine."""
    trajectory: TrajectoryConfig = field(default_factory=TrajectoryConfig)
    constraints: ConstraintConfig = field(default_factory=ConstraintConfig)
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    mining: MiningConfig = field(default_factory=MiningConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    model_path: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> EngineConfig:
        """Defaults overridden by any NTE_* variables that are set."""
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value not in (None, "") else None

        config = cls()
        trajectory = config.trajectory
        if get("ALPHABET"):
            trajectory = replace(trajectory, alphabet=get("ALPHABET"))
        if get("BINS"):
            trajectory = replace(trajectory, bins=int(get("BINS")))

        constraints = config.constraints
        if get("SELF_LOOP_PENALTY"):
            constraints = replace(constraints, self_loop_penalty=float(get("SELF_LOOP_PENALTY")))

        mining = config.mining
        if get("SAMPLE_LIMIT"):
            mining = replace(mining, sample_limit=int(get("SAMPLE_LIMIT")))

        execution = config.execution
        if get("TOTAL_LENGTH"):
            execution = replace(execution, total_length=int(get("TOTAL_LENGTH")))
            mining = replace(mining, segments=execution.total_length)
        if get("MAX_RETRIES"):
            execution = replace(execution, max_retries=int(get("MAX_RETRIES")))

        provider = config.provider
        if get("OLLAMA_HOST"):
            provider = replace(provider, host=get("OLLAMA_HOST"))
        if get("OLLAMA_MODEL"):
            provider = replace(provider, model=get("OLLAMA_MODEL"))

        return cls(
            trajectory=trajectory,
            constraints=constraints,
            selector=config.selector,
            mining=mining,
            execution=execution,
            provider=provider,
            model_path=get("MODEL_PATH"),
            log_level=get("LOG_LEVEL") or config.log_level,
        )
