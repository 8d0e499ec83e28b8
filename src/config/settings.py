# src/config/settings.py
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for tunable gating parameters: attempt budgets,
override requirements, rule strength thresholds and logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from stagegate.core.errors import StageGateError


class ConfigurationError(StageGateError):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STAGEGATE_",
        extra="ignore",
    )

    # === Attempt tracker ===
    max_attempts: int = 5
    manual_qa_enabled: bool = True
    blocking_qa_severities: str = "critical"

    # === Rule gate ===
    guard_min_justification_chars: int = 10

    # === Rule strength ===
    strength_min_confidence: float = 0.7
    strength_check_threshold: int = 3
    strength_guard_threshold: int = 6

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("strength_min_confidence")
    @classmethod
    def validate_confidence(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("strength_min_confidence must be within [0, 1]")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.strength_check_threshold >= self.strength_guard_threshold:
            errors.append(
                "STRENGTH_CHECK_THRESHOLD must be < STRENGTH_GUARD_THRESHOLD"
            )

        if self.guard_min_justification_chars < 1:
            errors.append("GUARD_MIN_JUSTIFICATION_CHARS must be >= 1")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def blocking_qa_severities_list(self) -> list[str]:
        """Parse comma-separated QA severities that block auto-retry."""
        return [
            s.strip() for s in self.blocking_qa_severities.split(",") if s.strip()
        ]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-pipeline config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
