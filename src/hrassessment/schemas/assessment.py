from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..errors import BusinessRuleViolation
from .tasks import TaskRecord


class AssessmentStatus(str, Enum):
    """Lifecycle status of a candidate's assessment."""

    ONBOARDING = "onboarding"
    RESUME_REVIEW = "resume_review"
    RESUME_REJECTED = "resume_rejected"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"
    DECIDED = "decided"
    ABANDONED = "abandoned"


IntegrityStatus = Literal["CLEAR", "FLAGGED_UNDER_REVIEW"]


class OnboardingRecord(BaseModel):
    """Gating steps completed before the assessment may start."""

    email_verified: bool = False
    email_verified_at: datetime | None = None
    profile_photo_captured: bool = False
    profile_photo_ref: str = ""
    consent_accepted: bool = False
    consent_accepted_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")


class SkillMatch(BaseModel):
    skill: str
    matched: bool = False
    confidence: float = 0.0

    model_config = ConfigDict(extra="ignore")


class ResumeRecord(BaseModel):
    """Uploaded resume and the outcome of its AI match."""

    file_ref: str = ""
    parsed_text: str = ""
    match_score: float = 0.0
    skill_matches: list[SkillMatch] = Field(default_factory=list)
    experience_match: bool = False
    qualification_match: bool = False
    overall_analysis: str = ""
    is_fake: bool = False
    fake_reasons: list[str] = Field(default_factory=list)
    passed_threshold: bool = False
    threshold: float | None = None
    analyzed_at: datetime | None = None
    needs_manual_review: bool = False

    model_config = ConfigDict(extra="forbid")


class CommunicationEntry(BaseModel):
    type: str
    sent_at: datetime
    subject: str = ""
    sent_by: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class ProctoringStats(BaseModel):
    total_events: int = 0
    high_severity_events: int = 0
    tab_switches: int = 0
    face_detection_issues: int = 0

    model_config = ConfigDict(extra="forbid")


class StatusChange(BaseModel):
    from_status: AssessmentStatus | None
    to_status: AssessmentStatus
    at: datetime
    reason: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)


_WRITE_ONCE_FIELDS = frozenset({"assigned_set_id", "session_token"})


class CandidateAssessment(BaseModel):
    """One candidate's attempt at one job's assessment."""

    assessment_id: str
    candidate_id: str
    candidate_email: str
    candidate_name: str = ""
    job_id: str
    assessment_link: str = ""
    status: AssessmentStatus = AssessmentStatus.ONBOARDING
    onboarding: OnboardingRecord = Field(default_factory=OnboardingRecord)
    resume: ResumeRecord = Field(default_factory=ResumeRecord)
    assigned_set_id: str | None = None
    assigned_set_number: int | None = None
    assigned_at: datetime | None = None
    session_token: str | None = None
    session_created_at: datetime | None = None
    started_at: datetime | None = None
    submitted_at: datetime | None = None
    last_heartbeat: datetime | None = None
    time_spent_seconds: int = 0
    current_section: str | None = None
    violation_count: int = 0
    is_terminated: bool = False
    integrity_status: IntegrityStatus = "CLEAR"
    proctoring: ProctoringStats = Field(default_factory=ProctoringStats)
    attempt_number: int = 1
    communication_log: list[CommunicationEntry] = Field(default_factory=list)
    status_history: list[StatusChange] = Field(default_factory=list)
    tasks: list[TaskRecord] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _WRITE_ONCE_FIELDS:
            current = getattr(self, name, None)
            if current is not None and value != current:
                raise BusinessRuleViolation(
                    "already_started",
                    f"{name} is already set and cannot be reassigned",
                    assessment_id=self.assessment_id,
                )
        super().__setattr__(name, value)

    def is_onboarding_complete(self) -> bool:
        return (
            self.onboarding.email_verified
            and self.onboarding.profile_photo_captured
            and self.onboarding.consent_accepted
            and self.resume.passed_threshold
        )

    def missing_onboarding_steps(self) -> list[str]:
        checks = {
            "email_verified": self.onboarding.email_verified,
            "profile_photo_captured": self.onboarding.profile_photo_captured,
            "consent_accepted": self.onboarding.consent_accepted,
            "resume_passed": self.resume.passed_threshold,
        }
        return [name for name, ok in checks.items() if not ok]
