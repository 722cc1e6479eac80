# src/recursa/settings.py
"""Behavioral settings for Recursa.

Settings are passed programmatically - the library does not read from
environment variables. Applications that want env- or file-based config
use recursa.config, which reads those sources and builds a Settings.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from recursa.exceptions import ConfigurationError

# Rate limit profile definitions
RATE_LIMIT_PROFILES: dict[str, dict[str, Any]] = {
    "aggressive": {
        "max_concurrent_llm_calls": 10,
        "num_retries": 5,
        "retry_base_delay": 0.5,
    },
    "conservative": {
        "max_concurrent_llm_calls": 2,
        "num_retries": 5,
        "retry_base_delay": 2.0,
    },
}

DEFAULT_ENTITY_TYPES = ["PERSON", "ORGANIZATION", "TECHNOLOGY", "CONCEPT", "EVENT", "LOCATION"]
DEFAULT_RELATION_TYPES = ["DEVELOPS", "USES", "FOUNDED", "LOCATED_IN", "WORKS_FOR", "INVENTED"]


class Settings(BaseModel):
    """Behavioral settings for a pipeline.

    Example:
        settings = Settings(max_recursive_depth=4, relevance_threshold=0.6)

        # Or use a rate limit profile for free API tiers
        settings = Settings.with_profile("conservative")
    """

    # Chunking
    target_chunk_count: int = Field(default=8, ge=1)
    respect_sentences: bool = True
    sentence_language: str = "en"
    max_chunks: int = Field(default=25, ge=1)  # Cap on depth-0 chunks when a vector index ranks them

    # Drill-down
    max_recursive_depth: int = Field(default=3, ge=0)
    min_chunk_chars: int = Field(default=800, ge=1)  # Paragraph size; shorter spans stay whole
    child_chunk_count: int = Field(default=4, ge=2)
    relevance_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    max_chunks_per_call: int = Field(default=10, ge=1)

    # Knowledge graph
    enable_knowledge_graph: bool = True
    entity_types: list[str] = Field(default_factory=lambda: list(DEFAULT_ENTITY_TYPES))
    relation_types: list[str] = Field(default_factory=lambda: list(DEFAULT_RELATION_TYPES))
    kg_min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)

    # Scratchpad
    enable_scratchpad: bool = True
    scratchpad_max_entries: int | None = Field(default=None, ge=1)
    compression_level: int = Field(default=6, ge=0, le=9)

    # Fact verification
    enable_fact_verification: bool = True
    verification_min_confidence: float = Field(default=0.75, ge=0.0, le=1.0)
    require_evidence: bool = True

    # Synthesis
    relevance_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    temperature: float | None = Field(default=0.3, ge=0.0, le=2.0)
    prompt_variants: dict[str, str] = Field(default_factory=dict)

    # Gateway: retries use min(base * 2**(attempt-1), max) seconds of backoff
    max_concurrent_llm_calls: int = Field(default=4, ge=1)
    num_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    retry_max_delay: float = Field(default=30.0, ge=0.0)
    request_timeout: float | None = Field(default=60.0, gt=0.0)

    # Whole-run deadline; on expiry the drill-down stops with what it has
    deadline_seconds: float | None = Field(default=None, gt=0.0)

    @model_validator(mode="after")
    def _check_delays(self) -> Settings:
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        return self

    @classmethod
    def build(cls, **values: Any) -> Settings:
        """Create Settings, raising ConfigurationError on invalid values."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid settings: {e}",
                suggestion="Check the values in the settings section of recursa.yaml",
            ) from e

    @classmethod
    def with_profile(
        cls,
        profile: Literal["aggressive", "conservative"],
        **overrides: Any,
    ) -> Settings:
        """Create Settings with a rate limit profile.

        Profiles bundle settings optimized for different API tier limits:
        - "aggressive": For paid API tiers with high rate limits
        - "conservative": For free tiers or APIs with strict rate limits

        Args:
            profile: The rate limit profile to use.
            **overrides: Additional settings to override profile defaults.
        """
        if profile not in RATE_LIMIT_PROFILES:
            raise ConfigurationError(
                f"Unknown profile '{profile}'. "
                f"Available profiles: {list(RATE_LIMIT_PROFILES.keys())}"
            )

        profile_settings: dict[str, Any] = RATE_LIMIT_PROFILES[profile].copy()
        profile_settings.update(overrides)
        return cls.build(**profile_settings)

    def apply(self, options: RunOptions | None) -> Settings:
        """Return a copy with per-run overrides applied."""
        if options is None:
            return self
        updates = options.as_settings_update()
        if not updates:
            return self
        return Settings.build(**{**self.model_dump(), **updates})


class RunOptions(BaseModel):
    """Per-request overrides. Unset fields keep the pipeline's settings."""

    max_chunks: int | None = None
    recursive_depth: int | None = None
    enable_knowledge_graph: bool | None = None
    enable_fact_verification: bool | None = None
    relevance_threshold: float | None = None
    temperature: float | None = None
    deadline_seconds: float | None = None

    def as_settings_update(self) -> dict[str, Any]:
        mapping = {
            "max_chunks": "max_chunks",
            "recursive_depth": "max_recursive_depth",
            "enable_knowledge_graph": "enable_knowledge_graph",
            "enable_fact_verification": "enable_fact_verification",
            "relevance_threshold": "relevance_threshold",
            "temperature": "temperature",
            "deadline_seconds": "deadline_seconds",
        }
        return {
            settings_key: getattr(self, option_key)
            for option_key, settings_key in mapping.items()
            if getattr(self, option_key) is not None
        }
