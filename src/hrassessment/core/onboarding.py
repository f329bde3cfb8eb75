"""Registration, onboarding steps and the AI resume gate."""

from __future__ import annotations

import hashlib
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pendulum
import structlog

from .. import pdf_utils
from ..adapters.base import AIScoringService
from ..errors import BusinessRuleViolation, InputValidationError, InvalidTransitionError
from ..repository import InMemoryRepository
from ..schemas.assessment import AssessmentStatus, CandidateAssessment
from ..schemas.tasks import TaskRecord
from . import lifecycle
from .otp import OtpStore
from .tasks import FALLBACK_APPLIED, TaskRunner

RESUME_CHAR_LIMIT = 3000

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_OPEN_STATUSES = frozenset({AssessmentStatus.ONBOARDING, AssessmentStatus.RESUME_REVIEW})


@dataclass
class GateConfig:
    default_resume_threshold: float = 90.0


@dataclass(slots=True)
class Registration:
    assessment: CandidateAssessment
    otp: str
    created: bool


class OnboardingGate:
    """Tracks the onboarding steps of a candidate and gates progression on the resume match."""

    def __init__(
        self,
        *,
        repository: InMemoryRepository,
        ai_service: AIScoringService,
        task_runner: TaskRunner,
        otp_store: OtpStore,
        config: GateConfig | None = None,
        now_provider: Any | None = None,
    ) -> None:
        self._repository = repository
        self._ai = ai_service
        self._tasks = task_runner
        self._otp = otp_store
        self._config = config or GateConfig()
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    # registration

    def register(self, link: str, email: str, name: str) -> Registration:
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if not _EMAIL.match(email):
            raise InputValidationError("Invalid email", field="email")
        if not name:
            raise InputValidationError("Name is required", field="name")

        job = self._repository.job_by_link(link)
        now = self._now_provider()
        window = job.config
        if window.start_time and now < window.start_time:
            raise BusinessRuleViolation("window_closed", "Assessment has not started yet", job_id=job.job_id)
        if window.end_time and now > window.end_time:
            raise BusinessRuleViolation("window_closed", "Assessment has expired", job_id=job.job_id)

        existing = self._repository.find_assessment(email, job.job_id)
        created = False
        if existing is not None and not lifecycle.is_terminal(existing.status):
            assessment = existing
        elif existing is not None and existing.attempt_number >= window.max_attempts:
            raise BusinessRuleViolation(
                "attempt_limit_reached",
                "Maximum attempts reached",
                assessment_id=existing.assessment_id,
                max_attempts=window.max_attempts,
            )
        else:
            attempt_number = existing.attempt_number + 1 if existing is not None else 1
            assessment = self._repository.add_assessment(
                CandidateAssessment(
                    assessment_id=uuid.uuid4().hex,
                    candidate_id=hashlib.sha1(email.encode("utf-8")).hexdigest()[:16],
                    candidate_email=email,
                    candidate_name=name,
                    job_id=job.job_id,
                    assessment_link=link,
                    attempt_number=attempt_number,
                )
            )
            created = True

        otp = self._otp.issue(self._otp_key(assessment))
        self._logger.info(
            "gate.registered",
            assessment_id=assessment.assessment_id,
            job_id=job.job_id,
            created=created,
            attempt_number=assessment.attempt_number,
        )
        return Registration(assessment=assessment, otp=otp, created=created)

    def resend_otp(self, assessment_id: str) -> str:
        assessment = self._repository.get_assessment(assessment_id)
        return self._otp.issue(self._otp_key(assessment))

    # onboarding steps

    def verify_email(self, assessment_id: str, otp: str) -> CandidateAssessment:
        assessment = self._repository.get_assessment(assessment_id)
        if assessment.onboarding.email_verified:
            return assessment
        self._ensure_open(assessment)
        if not otp or not str(otp).strip():
            raise InputValidationError("OTP is required", field="otp")
        self._otp.verify(self._otp_key(assessment), otp)
        assessment.onboarding.email_verified = True
        assessment.onboarding.email_verified_at = self._now_provider()
        self._logger.info("gate.email_verified", assessment_id=assessment_id)
        self._maybe_promote(assessment)
        return assessment

    def capture_photo(self, assessment_id: str, photo_data: bytes | str) -> CandidateAssessment:
        assessment = self._repository.get_assessment(assessment_id)
        if not photo_data:
            raise InputValidationError("Photo data is required", field="photo_data")
        if assessment.onboarding.profile_photo_captured:
            return assessment
        self._ensure_open(assessment)
        raw = photo_data.encode("utf-8") if isinstance(photo_data, str) else bytes(photo_data)
        assessment.onboarding.profile_photo_captured = True
        assessment.onboarding.profile_photo_ref = "photo:" + hashlib.sha256(raw).hexdigest()
        self._logger.info("gate.photo_captured", assessment_id=assessment_id)
        self._maybe_promote(assessment)
        return assessment

    def accept_consent(self, assessment_id: str) -> CandidateAssessment:
        assessment = self._repository.get_assessment(assessment_id)
        if assessment.onboarding.consent_accepted:
            return assessment
        self._ensure_open(assessment)
        assessment.onboarding.consent_accepted = True
        assessment.onboarding.consent_accepted_at = self._now_provider()
        self._logger.info("gate.consent_accepted", assessment_id=assessment_id)
        self._maybe_promote(assessment)
        return assessment

    # resume gate

    def upload_resume(
        self,
        assessment_id: str,
        *,
        text: str | None = None,
        pdf_path: str | Path | None = None,
    ) -> TaskRecord:
        """Store the resume, move to ``resume_review`` and dispatch the AI match.

        Returns the background task record; its outcome is also kept on the
        assessment's ``tasks`` list.
        """
        assessment = self._repository.get_assessment(assessment_id)
        if text is None and pdf_path is None:
            raise InputValidationError("Resume file or text is required", field="resume")
        if not assessment.onboarding.email_verified:
            raise BusinessRuleViolation(
                "onboarding_incomplete", "Please verify your email first", assessment_id=assessment_id
            )
        if assessment.status != AssessmentStatus.ONBOARDING:
            raise InvalidTransitionError(assessment.status.value, "resume_review", "resume already uploaded")

        parsed = text if text is not None else pdf_utils.extract_resume_text(pdf_path)
        if not parsed or not parsed.strip():
            raise InputValidationError("Resume text is empty", field="resume")

        assessment.resume.file_ref = str(pdf_path) if pdf_path is not None else ""
        assessment.resume.parsed_text = parsed.strip()
        lifecycle.transition(
            assessment,
            AssessmentStatus.RESUME_REVIEW,
            now=self._now_provider(),
            reason="resume uploaded",
        )
        return self._tasks.submit(
            "resume_analysis",
            assessment,
            lambda: self.analyze_resume(assessment_id),
            on_failure=lambda exc: self._fail_closed(assessment, exc),
        )

    def analyze_resume(self, assessment_id: str) -> None:
        """Run the AI match and apply the threshold policy. Raises on adapter failure."""
        assessment = self._repository.get_assessment(assessment_id)
        if assessment.status != AssessmentStatus.RESUME_REVIEW:
            raise InvalidTransitionError(assessment.status.value, "ready", "resume is not under review")
        job = self._repository.get_job(assessment.job_id)
        threshold = self.threshold_for(job.config.resume_match_threshold)

        match = self._ai.match(assessment.resume.parsed_text[:RESUME_CHAR_LIMIT], job.requirements())

        resume = assessment.resume
        resume.match_score = match.match_score
        resume.skill_matches = list(match.skill_matches)
        resume.experience_match = match.experience_match
        resume.qualification_match = match.qualification_match
        resume.overall_analysis = match.overall_analysis
        resume.is_fake = match.is_fake
        resume.fake_reasons = list(match.fake_reasons)
        resume.threshold = threshold
        resume.passed_threshold = passes_threshold(match.match_score, threshold, match.is_fake)
        resume.analyzed_at = self._now_provider()
        self._logger.info(
            "gate.resume_analyzed",
            assessment_id=assessment_id,
            match_score=match.match_score,
            threshold=threshold,
            is_fake=match.is_fake,
            passed=resume.passed_threshold,
        )

        if not resume.passed_threshold:
            reason = "resume flagged as fake" if match.is_fake else "match score below threshold"
            lifecycle.transition(assessment, AssessmentStatus.RESUME_REJECTED, now=resume.analyzed_at, reason=reason)
            return
        self._maybe_promote(assessment)

    def threshold_for(self, job_threshold: float | None) -> float:
        return self._config.default_resume_threshold if job_threshold is None else job_threshold

    def _fail_closed(self, assessment: CandidateAssessment, exc: BaseException) -> str:
        resume = assessment.resume
        resume.analyzed_at = self._now_provider()
        resume.match_score = 0.0
        resume.passed_threshold = False
        resume.needs_manual_review = True
        if assessment.status == AssessmentStatus.RESUME_REVIEW:
            lifecycle.transition(
                assessment,
                AssessmentStatus.RESUME_REJECTED,
                now=resume.analyzed_at,
                reason=f"resume analysis failed: {exc}",
            )
        self._logger.warning("gate.resume_failed_closed", assessment_id=assessment.assessment_id, error=str(exc))
        return FALLBACK_APPLIED

    def _maybe_promote(self, assessment: CandidateAssessment) -> None:
        if assessment.status != AssessmentStatus.RESUME_REVIEW or assessment.resume.analyzed_at is None:
            return
        if lifecycle.check_guard(assessment, AssessmentStatus.READY) is not None:
            self._logger.info(
                "gate.awaiting_steps",
                assessment_id=assessment.assessment_id,
                missing=assessment.missing_onboarding_steps(),
            )
            return
        now = self._now_provider()
        assessment.onboarding.completed_at = now
        lifecycle.transition(assessment, AssessmentStatus.READY, now=now, reason="onboarding complete")

    @staticmethod
    def _ensure_open(assessment: CandidateAssessment) -> None:
        if assessment.status not in _OPEN_STATUSES:
            raise BusinessRuleViolation(
                "onboarding_closed",
                f"onboarding steps cannot change in status {assessment.status.value!r}",
                assessment_id=assessment.assessment_id,
            )

    @staticmethod
    def _otp_key(assessment: CandidateAssessment) -> str:
        return f"{assessment.candidate_email}:email_verification"


def passes_threshold(match_score: float, threshold: float, is_fake: bool) -> bool:
    return match_score >= threshold and not is_fake


__all__ = ["GateConfig", "OnboardingGate", "Registration", "passes_threshold"]
