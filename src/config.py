"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class PolicySettings(BaseModel):
    """A compliance policy declared in configuration."""

    name: str
    strict_enforcement: bool = False
    description: str = ""
    blocked_terms: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "guardrail-fusion"
    app_version: str = "0.1.0"
    debug: bool = False

    # Guardrail orchestration
    strict_mode: bool = False  # Escalate detected bias to REVIEW
    enable_audit: bool = True  # Keep raw text in records and send them to the audit sink
    compliance_level: str = "enterprise"  # Passed through to collaborators
    performance_mode: str = "balanced"  # Passed through to collaborators
    input_moderation_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    output_filter_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    # Content safety thresholds (axis score below threshold raises a flag)
    toxicity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    hate_speech_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    violence_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    adult_content_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    enable_personal_data_detection: bool = True

    # Prompt injection
    injection_sensitivity: Literal["low", "medium", "high"] = "medium"
    injection_block_level: Literal["high", "critical"] = "high"

    # Optional remote ML scorer for injection detection
    ml_scorer_url: str | None = None
    ml_scorer_api_key: SecretStr | None = None
    ml_scorer_timeout_seconds: float = 5.0

    # Circuit breaker (ML scorer)
    circuit_breaker_fail_max: int = 5
    circuit_breaker_timeout: float = 60.0

    # Compliance policies for the default registry, as a JSON list:
    # POLICIES='[{"name": "default", "strict_enforcement": true, "blocked_terms": ["x"]}]'
    policies: list[PolicySettings] = Field(default_factory=list)

    # Audit
    audit_max_records: int = 10000  # In-memory audit sink capacity

    # Observability
    tracing_enabled: bool = False
    otlp_endpoint: str | None = None
    tracing_console_export: bool = False
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
