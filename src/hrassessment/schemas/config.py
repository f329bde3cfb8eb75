"""Pydantic configuration schema for YAML input."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class GateSettings(BaseModel):
    default_resume_threshold: float | None = Field(default=None, ge=0.0, le=100.0)
    otp_length: int | None = Field(default=None, ge=4, le=10)
    otp_ttl_minutes: int | None = Field(default=None, gt=0)
    otp_max_attempts: int | None = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


class SessionSettings(BaseModel):
    max_violations: int | None = Field(default=None, gt=0)
    token_prefix: str | None = None
    token_bytes: int | None = Field(default=None, ge=16)
    grace_seconds: int | None = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")


class JudgeSettings(BaseModel):
    endpoint: str | None = None
    api_key: str | None = None
    host: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    poll_interval_seconds: float | None = Field(default=None, ge=0)
    max_polls: int | None = Field(default=None, gt=0)
    cpu_time_limit: float | None = Field(default=None, gt=0)
    memory_limit_kb: int | None = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


class ScoringSettings(BaseModel):
    difficulty_weights: dict[str, float] | None = None
    fallback_review_score: float | None = Field(default=None, ge=0.0, le=10.0)

    model_config = ConfigDict(extra="forbid")


class EvaluationSettings(BaseModel):
    subjective_fallback_score: float | None = Field(default=None, ge=0.0)
    default_section_points: dict[str, float] | None = None

    model_config = ConfigDict(extra="forbid")


class AISettings(BaseModel):
    endpoint: str | None = None
    api_key: str | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


class AppConfig(BaseModel):
    gate: GateSettings = Field(default_factory=GateSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    judge: JudgeSettings = Field(default_factory=JudgeSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    evaluation: EvaluationSettings = Field(default_factory=EvaluationSettings)
    ai: AISettings = Field(default_factory=AISettings)
    seed: int | None = None

    model_config = ConfigDict(extra="forbid")

    def to_settings(self) -> dict[str, Any]:
        """Return only the sections that carry overrides."""
        settings: dict[str, Any] = {}
        for name in ("gate", "session", "judge", "scoring", "evaluation", "ai"):
            section = getattr(self, name).model_dump(exclude_none=True)
            if section:
                settings[name] = section
        if self.seed is not None:
            settings["seed"] = self.seed
        return settings


def load_config(raw: Any) -> AppConfig:
    if raw is None:
        return AppConfig()
    if not isinstance(raw, dict):
        raise ValidationError.from_exception_data(
            "AppConfig",
            [{"type": "dict_type", "loc": ("config",), "input": raw}],
        )
    return AppConfig.model_validate(raw)
