"""Pydantic configuration models for the context engine."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

VALID_LLM_PROVIDERS = {"auto", "claude", "openai"}


def _unit_interval(v: float, name: str) -> float:
    if not 0.0 <= v <= 1.0:
        raise ValueError(f"{name} must be 0-1, got {v}")
    return v


class LLMConfig(BaseModel):
    """LLM provider configuration. Only the cheap background tier is used."""

    provider: str = "auto"
    model: Optional[str] = None  # None = provider's cheap default
    api_key: Optional[str] = None
    enabled: bool = True

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in VALID_LLM_PROVIDERS:
            raise ValueError(f"Invalid LLM provider: {v}. Must be one of {VALID_LLM_PROVIDERS}")
        return v


class PathsConfig(BaseModel):
    """File paths configuration."""

    db_path: Path = Path("~/.context-engine/context.db")

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in the database path."""
        self.db_path = self.db_path.expanduser()
        return self


class ExtractionConfig(BaseModel):
    """Insight extraction cadence and filtering."""

    cadence_turns: int = 5
    max_buffer_turns: int = 40
    max_window_turns: int = 20
    max_window_chars: int = 6000
    confidence_floor: float = 0.7
    max_insights_per_cycle: int = 5
    pending_retention_days: int = 14

    @field_validator("confidence_floor")
    @classmethod
    def validate_floor(cls, v: float) -> float:
        return _unit_interval(v, "confidence_floor")

    @field_validator("cadence_turns", "max_insights_per_cycle", "pending_retention_days")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be at least 1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_buffer(self):
        if self.max_buffer_turns < self.cadence_turns:
            raise ValueError("max_buffer_turns must be >= cadence_turns")
        return self


class PatternsConfig(BaseModel):
    """Cross-session pattern detection and cross-domain synthesis."""

    min_source_count: int = 3
    confidence_threshold: float = 0.7
    similarity_threshold: float = 0.5
    decay_half_life_days: float = 45.0
    decay_floor: float = 0.5
    min_sessions_for_summaries: int = 5
    summary_refresh_sessions: int = 3
    max_patterns_in_prompt: int = 3
    cross_domain_confidence: float = 0.85
    min_domains: int = 2
    max_syntheses_per_session: int = 1
    min_sessions_between_synthesis: int = 3
    synthesis_cache_hours: int = 24
    use_llm_synthesis: bool = True

    @field_validator("confidence_threshold", "similarity_threshold", "decay_floor", "cross_domain_confidence")
    @classmethod
    def validate_fraction(cls, v: float, info) -> float:
        return _unit_interval(v, info.field_name)

    @field_validator("decay_half_life_days")
    @classmethod
    def validate_half_life(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"decay_half_life_days must be positive, got {v}")
        return v


class StyleConfig(BaseModel):
    """Coaching-style inference."""

    min_sessions: int = 5
    min_domain_sessions: int = 3
    max_sessions_analyzed: int = 10
    max_inferred_confidence: float = 0.6

    @field_validator("max_inferred_confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        return _unit_interval(v, "max_inferred_confidence")


class RepositoryConfig(BaseModel):
    max_conflict_retries: int = 3


class SignalsConfig(BaseModel):
    queue_size: int = 256


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class EngineConfig(BaseModel):
    """Main configuration model."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    patterns: PatternsConfig = Field(default_factory=PatternsConfig)
    style: StyleConfig = Field(default_factory=StyleConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    signals: SignalsConfig = Field(default_factory=SignalsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in API keys."""
        key = self.llm.api_key
        if key and key.startswith("${") and key.endswith("}"):
            self.llm.api_key = os.getenv(key[2:-1], "")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        return cls.model_validate(data or {})

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
