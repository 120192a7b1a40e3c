"""Tests for engine configuration models and loading."""

import pytest
from pydantic import ValidationError

from cli.config import load_config_model
from cli.config_models import EngineConfig, ExtractionConfig, LLMConfig, PatternsConfig


class TestDefaults:
    def test_defaults(self):
        config = EngineConfig()
        assert config.extraction.cadence_turns == 5
        assert config.extraction.confidence_floor == 0.7
        assert config.patterns.decay_half_life_days == 45.0
        assert config.patterns.cross_domain_confidence == 0.85
        assert config.style.max_inferred_confidence == 0.6
        assert config.repository.max_conflict_retries == 3
        assert config.paths.db_path.name == "context.db"
        assert "~" not in str(config.paths.db_path)

    def test_round_trip_dict(self):
        config = EngineConfig.from_dict({"extraction": {"cadence_turns": 3}})
        assert EngineConfig.from_dict(config.to_dict()) == config

    def test_none_is_defaults(self):
        assert EngineConfig.from_dict(None) == EngineConfig()


class TestValidation:
    def test_unknown_provider(self):
        with pytest.raises(ValidationError):
            LLMConfig(provider="gemini")

    def test_floor_must_be_fraction(self):
        with pytest.raises(ValidationError):
            ExtractionConfig(confidence_floor=1.5)

    def test_buffer_must_hold_a_cycle(self):
        with pytest.raises(ValidationError):
            ExtractionConfig(cadence_turns=10, max_buffer_turns=5)

    def test_half_life_positive(self):
        with pytest.raises(ValidationError):
            PatternsConfig(decay_half_life_days=0)

    def test_log_level_normalized(self):
        assert EngineConfig.from_dict({"logging": {"level": "debug"}}).logging.level == "DEBUG"
        with pytest.raises(ValidationError):
            EngineConfig.from_dict({"logging": {"level": "loud"}})

    def test_api_key_env_expansion(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-test-123")
        config = EngineConfig.from_dict({"llm": {"api_key": "${MY_KEY}"}})
        assert config.llm.api_key == "sk-test-123"


class TestLoad:
    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("extraction:\n  cadence_turns: 7\nllm:\n  enabled: false\n")
        config = load_config_model(path)
        assert config.extraction.cadence_turns == 7
        assert config.llm.enabled is False

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("extraction: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_model(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("extraction:\n  confidence_floor: 2\n")
        with pytest.raises(ValueError, match="Config validation failed"):
            load_config_model(path)

    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr("cli.config.find_config", lambda: None)
        assert load_config_model() == EngineConfig()
