from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SectionName = Literal["objective", "subjective", "programming"]

SECTIONS: tuple[SectionName, ...] = ("objective", "subjective", "programming")


class SectionConfig(BaseModel):
    """Per-section weighting and timing for a job's assessment."""

    weight: float = Field(default=0.0, ge=0.0)
    enabled: bool = True
    time_minutes: int = 0

    model_config = ConfigDict(extra="forbid")


def _default_sections() -> dict[str, SectionConfig]:
    return {
        "objective": SectionConfig(weight=30, time_minutes=15),
        "subjective": SectionConfig(weight=30, time_minutes=20),
        "programming": SectionConfig(weight=40, time_minutes=45),
    }


class JobAssessmentConfig(BaseModel):
    """Recruiter-editable assessment settings attached to a job."""

    resume_match_threshold: float | None = Field(default=None, ge=0.0, le=100.0)
    cutoff_score: float = Field(default=60.0, ge=0.0, le=100.0)
    sections: dict[SectionName, SectionConfig] = Field(default_factory=_default_sections)
    total_time_minutes: int = Field(default=80, gt=0)
    max_attempts: int = Field(default=1, ge=1)
    start_time: datetime | None = None
    end_time: datetime | None = None

    model_config = ConfigDict(extra="forbid")

    def section(self, name: SectionName) -> SectionConfig:
        return self.sections.get(name) or SectionConfig(enabled=False)


class Job(BaseModel):
    """Job opening a candidate is assessed against."""

    job_id: str
    company_id: str
    title: str = ""
    assessment_link: str
    required_skills: list[str] = Field(default_factory=list)
    experience_level: str | None = None
    years_min: int = 0
    years_max: int = 0
    qualifications: list[str] = Field(default_factory=list)
    config: JobAssessmentConfig = Field(default_factory=JobAssessmentConfig)

    model_config = ConfigDict(extra="forbid")

    def requirements(self) -> dict:
        """Structured requirements handed to the resume matcher."""
        return {
            "role_title": self.title,
            "required_skills": list(self.required_skills),
            "experience_level": self.experience_level,
            "years_of_experience": {"min": self.years_min, "max": self.years_max},
            "qualifications": list(self.qualifications),
        }
