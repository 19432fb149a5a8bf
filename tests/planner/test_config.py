"""
Configuration Tests
"""

import pytest

from planner.config import (
    ConstraintConfig,
    EngineConfig,
    ExecutionConfig,
    MiningConfig,
    TrajectoryConfig,
)
from planner.constraints import ALTERNATE_SELF_LOOP_PENALTY
from planner.contracts import EventAlphabet
from planner.observability import MetricsCollector


class TestDefaults:

    def test_engine_defaults(self):
        config = EngineConfig()
        assert config.trajectory.bins == 20
        assert config.execution.total_length == 15
        assert config.execution.max_retries == 2
        assert config.mining.segments == 15
        assert config.provider.model == "mistral-small:24b"
        assert config.model_path is None

    def test_empty_environment_gives_defaults(self):
        assert EngineConfig.from_env({}) == EngineConfig()

    def test_alphabet_variants(self):
        assert TrajectoryConfig().build_alphabet() == EventAlphabet.standard()
        assert TrajectoryConfig(alphabet="classic").build_alphabet().size == 9
        with pytest.raises(ValueError):
            TrajectoryConfig(alphabet="extended").build_alphabet()


class TestFromEnv:

    def test_overrides(self):
        config = EngineConfig.from_env({
            "NTE_ALPHABET": "classic",
            "NTE_BINS": "10",
            "NTE_SELF_LOOP_PENALTY": str(ALTERNATE_SELF_LOOP_PENALTY),
            "NTE_TOTAL_LENGTH": "20",
            "NTE_MAX_RETRIES": "0",
            "NTE_SAMPLE_LIMIT": "5",
            "NTE_OLLAMA_HOST": "http://gpu-box:11434",
            "NTE_OLLAMA_MODEL": "llama3:8b",
            "NTE_MODEL_PATH": "/tmp/model.json",
            "NTE_LOG_LEVEL": "DEBUG",
        })

        assert config.trajectory.alphabet == "classic"
        assert config.trajectory.bins == 10
        assert config.constraints.self_loop_penalty == 0.5
        assert config.execution.total_length == 20
        assert config.mining.segments == 20
        assert config.execution.max_retries == 0
        assert config.mining.sample_limit == 5
        assert config.provider.host == "http://gpu-box:11434"
        assert config.provider.model == "llama3:8b"
        assert config.model_path == "/tmp/model.json"
        assert config.log_level == "DEBUG"

    def test_blank_values_are_ignored(self):
        assert EngineConfig.from_env({"NTE_BINS": "", "NTE_MODEL_PATH": ""}) == EngineConfig()

    def test_invalid_values_raise(self):
        with pytest.raises(ValueError):
            EngineConfig.from_env({"NTE_TOTAL_LENGTH": "0"})
        with pytest.raises(ValueError):
            EngineConfig.from_env({"NTE_BINS": "many"})


class TestSectionValidation:

    def test_mining_rejects_unknown_sampling(self):
        with pytest.raises(ValueError):
            MiningConfig(sampling="shuffled")

    def test_mining_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            MiningConfig(max_concurrent_stories=0)

    def test_execution_rejects_negative_retries(self):
        with pytest.raises(ValueError):
            ExecutionConfig(max_retries=-1)

    def test_constraint_layer_from_config(self):
        metrics = MetricsCollector()
        layer = ConstraintConfig(self_loop_penalty=0.5).build_layer(EventAlphabet.classic(), metrics)
        assert layer.self_loop_penalty == 0.5
        assert "Revelation" not in layer.rules
        assert "Climax" in layer.rules

    def test_constraint_layer_without_rules(self):
        layer = ConstraintConfig(use_default_rules=False).build_layer(EventAlphabet.standard())
        assert layer.rules == {}
