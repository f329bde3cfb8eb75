"""Session start, token authentication, time budget and proctoring strikes."""

from __future__ import annotations

import random
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Iterable

import pendulum
import structlog

from ..errors import AuthorizationError, BusinessRuleViolation, InputValidationError
from ..repository import InMemoryRepository
from ..schemas.assessment import AssessmentStatus, CandidateAssessment
from ..schemas.job import SECTIONS
from ..schemas.question_set import ProgrammingQuestion
from ..schemas.session import Session, SessionQuestion
from . import lifecycle

HIGH_SEVERITY_EVENTS = frozenset(
    {"multiple_faces", "device_detected", "external_screen", "copy_paste", "dev_tools"}
)
LOW_SEVERITY_EVENTS = frozenset(
    {"window_blur", "face_not_centered", "right_click", "idle", "browser_resize"}
)
PROCTORING_EVENTS = HIGH_SEVERITY_EVENTS | LOW_SEVERITY_EVENTS | frozenset(
    {
        "tab_switch",
        "no_face",
        "keyboard_shortcut",
        "suspicious_behavior",
        "fullscreen_exit",
        "camera_denied",
        "fullscreen_failed",
        "copy_attempt",
        "paste_attempt",
        "cut_attempt",
        "assessment_completed",
        "periodic_check",
    }
)
_FACE_EVENTS = frozenset({"multiple_faces", "no_face", "face_not_centered"})

_FINISHED_STATUSES = frozenset(
    {AssessmentStatus.SUBMITTED, AssessmentStatus.EVALUATING, AssessmentStatus.EVALUATED, AssessmentStatus.DECIDED}
)

MIN_SESSION_QUESTIONS = 1
MAX_SESSION_QUESTIONS = 5


def severity_for(event_type: str) -> str:
    if event_type in HIGH_SEVERITY_EVENTS:
        return "high"
    if event_type in LOW_SEVERITY_EVENTS:
        return "low"
    return "medium"


@dataclass
class SessionConfig:
    max_violations: int = 3
    token_prefix: str = "sess_"
    token_bytes: int = 24
    grace_seconds: int = 60


@dataclass(slots=True)
class SessionContext:
    """An authenticated assessment plus the time left on its budget."""

    assessment: CandidateAssessment
    remaining_ms: int


class SessionManager:
    """Starts assessments, authenticates session tokens and records proctoring strikes."""

    def __init__(
        self,
        *,
        repository: InMemoryRepository,
        rng: random.Random | None = None,
        config: SessionConfig | None = None,
        now_provider: Any | None = None,
        on_auto_submit: Callable[[CandidateAssessment], Any] | None = None,
    ) -> None:
        self._repository = repository
        self._rng = rng or random.Random()
        self._config = config or SessionConfig()
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._on_auto_submit = on_auto_submit
        self._logger = structlog.get_logger(__name__)

    @property
    def config(self) -> SessionConfig:
        return self._config

    def set_auto_submit_handler(self, handler: Callable[[CandidateAssessment], Any] | None) -> None:
        self._on_auto_submit = handler

    # assessment sessions

    def start(self, assessment_id: str) -> str:
        """Assign a question set and issue the session token.

        Starting an assessment that already holds a token returns that token.
        """
        assessment = self._repository.get_assessment(assessment_id)
        if assessment.session_token is not None:
            self._logger.info("session.resumed", assessment_id=assessment_id)
            return assessment.session_token

        missing = assessment.missing_onboarding_steps()
        if missing:
            raise BusinessRuleViolation(
                "onboarding_incomplete",
                "Please complete onboarding first",
                assessment_id=assessment_id,
                missing=missing,
            )
        if assessment.status != AssessmentStatus.READY:
            raise BusinessRuleViolation(
                "invalid_transition",
                f"cannot start from status {assessment.status.value!r}",
                assessment_id=assessment_id,
            )

        now = self._now_provider()
        if assessment.assigned_set_id is None:
            sets = self._repository.active_sets(assessment.job_id)
            if not sets:
                raise BusinessRuleViolation("no_sets_available", "No question sets available", job_id=assessment.job_id)
            chosen = self._rng.choice(sets)
            assessment.assigned_set_id = chosen.set_id
            assessment.assigned_set_number = chosen.set_number
            assessment.assigned_at = now
            self._logger.info(
                "session.set_assigned",
                assessment_id=assessment_id,
                set_id=chosen.set_id,
                candidates=len(sets),
            )

        lifecycle.transition(assessment, AssessmentStatus.IN_PROGRESS, now=now, reason="assessment started")
        assessment.session_token = self._new_token()
        assessment.session_created_at = now
        assessment.started_at = now
        assessment.last_heartbeat = now
        job = self._repository.get_job(assessment.job_id)
        assessment.current_section = next((s for s in SECTIONS if job.config.section(s).enabled), None)
        self._logger.info("session.started", assessment_id=assessment_id, set_id=assessment.assigned_set_id)
        return assessment.session_token

    def authenticate(self, token: str) -> SessionContext:
        """Resolve a token to its in-progress assessment and refresh the heartbeat.

        A call past the time budget plus grace auto-submits the assessment and
        raises ``BusinessRuleViolation(time_expired)``.
        """
        if not token:
            raise InputValidationError("Session token required", field="session_token")
        assessment = self._repository.assessment_by_token(token)
        self._ensure_in_progress(assessment)

        job = self._repository.get_job(assessment.job_id)
        now = self._now_provider()
        budget = timedelta(minutes=job.config.total_time_minutes)
        elapsed = now - assessment.started_at
        if elapsed > budget + timedelta(seconds=self._config.grace_seconds):
            self._auto_submit(assessment)
            raise BusinessRuleViolation("time_expired", "Assessment time expired", assessment_id=assessment.assessment_id)

        assessment.last_heartbeat = now
        remaining_ms = max(0, int((budget - elapsed).total_seconds() * 1000))
        return SessionContext(assessment=assessment, remaining_ms=remaining_ms)

    def heartbeat(self, token: str) -> int:
        return self.authenticate(token).remaining_ms

    def submit_assessment(self, assessment: CandidateAssessment, *, reason: str = "submitted by candidate") -> None:
        now = self._now_provider()
        lifecycle.transition(assessment, AssessmentStatus.SUBMITTED, now=now, reason=reason)
        assessment.submitted_at = now
        assessment.time_spent_seconds = int((now - assessment.started_at).total_seconds())
        assessment.current_section = None

    def report_assessment_violation(self, token: str) -> CandidateAssessment:
        context = self.authenticate(token)
        assessment = context.assessment
        assessment.violation_count += 1
        if assessment.violation_count >= self._config.max_violations:
            assessment.is_terminated = True
            lifecycle.transition(
                assessment,
                AssessmentStatus.ABANDONED,
                now=self._now_provider(),
                reason=f"{assessment.violation_count} proctoring violations",
            )
        self._logger.info(
            "session.violation_recorded",
            assessment_id=assessment.assessment_id,
            violation_count=assessment.violation_count,
            terminated=assessment.is_terminated,
        )
        return assessment

    def log_proctoring_event(self, token: str, event_type: str) -> str:
        """Record a proctoring event on the assessment and return its severity."""
        if event_type not in PROCTORING_EVENTS:
            raise InputValidationError("Invalid event type", field="event_type", event_type=event_type)
        assessment = self.authenticate(token).assessment
        severity = severity_for(event_type)
        stats = assessment.proctoring
        stats.total_events += 1
        if severity == "high":
            stats.high_severity_events += 1
            assessment.integrity_status = "FLAGGED_UNDER_REVIEW"
        if event_type == "tab_switch":
            stats.tab_switches += 1
        if event_type in _FACE_EVENTS:
            stats.face_detection_issues += 1
        self._logger.info(
            "session.proctoring_event",
            assessment_id=assessment.assessment_id,
            event_type=event_type,
            severity=severity,
        )
        return severity

    # practice / online-assessment sessions

    def start_session(
        self,
        user_id: str,
        *,
        count: int = 2,
        difficulty: str | None = None,
        pool: Iterable[ProgrammingQuestion] | None = None,
        company: str = "",
        role: str = "",
    ) -> Session:
        """Draw ``count`` distinct questions from the pool and open a session."""
        if not MIN_SESSION_QUESTIONS <= count <= MAX_SESSION_QUESTIONS:
            raise InputValidationError(
                f"Question count must be between {MIN_SESSION_QUESTIONS} and {MAX_SESSION_QUESTIONS}",
                field="count",
            )
        candidates = list(pool) if pool is not None else list(self._repository.question_pool.values())
        if difficulty is not None:
            candidates = [q for q in candidates if q.difficulty == difficulty]
        if len(candidates) < count:
            raise BusinessRuleViolation(
                "no_sets_available",
                f"Only {len(candidates)} questions available",
                available=len(candidates),
            )
        candidates.sort(key=lambda q: q.question_id)
        chosen = self._rng.sample(candidates, count)
        session = Session(
            session_id=uuid.uuid4().hex,
            user_id=user_id,
            company=company,
            role=role,
            questions=[SessionQuestion(question=question) for question in chosen],
            started_at=self._now_provider(),
        )
        self._repository.add_session(session)
        self._logger.info(
            "session.oa_started",
            session_id=session.session_id,
            user_id=user_id,
            questions=[q.question_id for q in session.questions],
        )
        return session

    def get_session(self, session_id: str, user_id: str | None = None) -> Session:
        session = self._repository.get_session(session_id)
        if user_id is not None and session.user_id != user_id:
            raise AuthorizationError("Session belongs to another user", session_id=session_id)
        return session

    def report_violation(self, session_id: str, user_id: str | None = None) -> Session:
        """Add one strike; the third terminates and abandons the session for good."""
        session = self.get_session(session_id, user_id)
        if session.is_terminated:
            raise BusinessRuleViolation("session_terminated", "Session is terminated", session_id=session_id)
        if session.status == "completed":
            raise BusinessRuleViolation("session_completed", "Session already completed", session_id=session_id)
        session.violation_count += 1
        if session.violation_count >= self._config.max_violations:
            session.is_terminated = True
            session.status = "abandoned"
            session.ended_at = self._now_provider()
        self._logger.info(
            "session.violation_recorded",
            session_id=session_id,
            violation_count=session.violation_count,
            terminated=session.is_terminated,
        )
        return session

    def ensure_active(self, session: Session) -> None:
        if session.is_terminated:
            raise BusinessRuleViolation("session_terminated", "Session is terminated", session_id=session.session_id)
        if session.status != "in_progress":
            raise BusinessRuleViolation(
                "session_completed",
                f"Session is {session.status}",
                session_id=session.session_id,
            )

    # helpers

    def _new_token(self) -> str:
        return self._config.token_prefix + secrets.token_urlsafe(self._config.token_bytes)

    def _ensure_in_progress(self, assessment: CandidateAssessment) -> None:
        if assessment.is_terminated:
            raise BusinessRuleViolation(
                "session_terminated", "Assessment was terminated", assessment_id=assessment.assessment_id
            )
        if assessment.status in _FINISHED_STATUSES:
            raise BusinessRuleViolation(
                "session_completed", "Assessment already submitted", assessment_id=assessment.assessment_id
            )
        if assessment.status != AssessmentStatus.IN_PROGRESS:
            raise BusinessRuleViolation(
                "invalid_transition",
                "Assessment is not in progress",
                assessment_id=assessment.assessment_id,
                status=assessment.status.value,
            )

    def _auto_submit(self, assessment: CandidateAssessment) -> None:
        self.submit_assessment(assessment, reason="time budget expired")
        self._logger.warning("session.time_expired", assessment_id=assessment.assessment_id)
        if self._on_auto_submit is not None:
            self._on_auto_submit(assessment)


__all__ = [
    "HIGH_SEVERITY_EVENTS",
    "LOW_SEVERITY_EVENTS",
    "PROCTORING_EVENTS",
    "SessionConfig",
    "SessionContext",
    "SessionManager",
    "severity_for",
]
