"""Response contracts of the AI scoring service."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .assessment import SkillMatch


class ResumeMatch(BaseModel):
    match_score: float = Field(ge=0.0, le=100.0)
    skill_matches: list[SkillMatch] = Field(default_factory=list)
    experience_match: bool = False
    qualification_match: bool = False
    is_fake: bool = False
    fake_reasons: list[str] = Field(default_factory=list)
    overall_analysis: str = ""

    model_config = ConfigDict(extra="ignore")


class SubjectiveGrade(BaseModel):
    score: float = Field(allow_inf_nan=False)
    feedback: str = ""
    key_points: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    rubric_feedback: str = ""

    model_config = ConfigDict(extra="ignore")


class CodeReview(BaseModel):
    quality_score: float = Field(ge=0.0, le=10.0)
    quality_explanation: str = ""
    approach_score: float = Field(ge=0.0, le=10.0)
    your_approach: str = ""
    time_complexity: str = "N/A"
    overall_comments: str = ""

    model_config = ConfigDict(extra="ignore")
