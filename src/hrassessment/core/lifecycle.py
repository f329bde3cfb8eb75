"""Candidate assessment lifecycle state machine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable

import structlog

from ..errors import InvalidTransitionError
from ..schemas.assessment import AssessmentStatus, CandidateAssessment, StatusChange

S = AssessmentStatus

# Progression order, used to check that normal transitions never move backwards.
STATUS_ORDER: tuple[AssessmentStatus, ...] = (
    S.ONBOARDING,
    S.RESUME_REVIEW,
    S.RESUME_REJECTED,
    S.READY,
    S.IN_PROGRESS,
    S.ABANDONED,
    S.SUBMITTED,
    S.EVALUATING,
    S.EVALUATED,
    S.DECIDED,
)

TERMINAL_STATUSES: frozenset[AssessmentStatus] = frozenset({S.RESUME_REJECTED, S.ABANDONED, S.DECIDED})

# Explicit state diagram: each key can only move to the listed next states.
TRANSITIONS: dict[AssessmentStatus, frozenset[AssessmentStatus]] = {
    S.ONBOARDING: frozenset({S.RESUME_REVIEW, S.READY}),
    S.RESUME_REVIEW: frozenset({S.READY, S.RESUME_REJECTED}),
    S.RESUME_REJECTED: frozenset(),
    S.READY: frozenset({S.IN_PROGRESS}),
    S.IN_PROGRESS: frozenset({S.SUBMITTED, S.ABANDONED}),
    S.SUBMITTED: frozenset({S.EVALUATING}),
    S.EVALUATING: frozenset({S.EVALUATED}),
    S.EVALUATED: frozenset({S.DECIDED}),
    S.DECIDED: frozenset(),
    S.ABANDONED: frozenset(),
}

# Reachable only through an explicit re-evaluation request.
REEVALUATION_EDGES: frozenset[tuple[AssessmentStatus, AssessmentStatus]] = frozenset(
    {(S.EVALUATED, S.SUBMITTED), (S.DECIDED, S.SUBMITTED)}
)

Guard = Callable[[CandidateAssessment, dict[str, Any]], "str | None"]


def _onboarding_complete(assessment: CandidateAssessment, context: dict[str, Any]) -> str | None:
    missing = assessment.missing_onboarding_steps()
    if missing:
        return "onboarding incomplete: " + ", ".join(missing)
    return None


def _resume_uploaded(assessment: CandidateAssessment, context: dict[str, Any]) -> str | None:
    if not (assessment.resume.file_ref or assessment.resume.parsed_text):
        return "no resume uploaded"
    return None


def _resume_failed(assessment: CandidateAssessment, context: dict[str, Any]) -> str | None:
    if assessment.resume.analyzed_at is None:
        return "resume not analyzed yet"
    if assessment.resume.passed_threshold:
        return "resume passed the threshold"
    return None


def _no_session_token(assessment: CandidateAssessment, context: dict[str, Any]) -> str | None:
    if assessment.session_token is not None:
        return "session already started"
    if assessment.assigned_set_id is None:
        return "no question set assigned"
    return _onboarding_complete(assessment, context)


def _terminated(assessment: CandidateAssessment, context: dict[str, Any]) -> str | None:
    if not assessment.is_terminated:
        return "session is not terminated"
    return None


def _decision_present(assessment: CandidateAssessment, context: dict[str, Any]) -> str | None:
    if not context.get("decision"):
        return "a human decision is required"
    return None


GUARDS: dict[tuple[AssessmentStatus | None, AssessmentStatus], Guard] = {
    (S.ONBOARDING, S.RESUME_REVIEW): _resume_uploaded,
    (S.ONBOARDING, S.READY): _onboarding_complete,
    (S.RESUME_REVIEW, S.READY): _onboarding_complete,
    (S.RESUME_REVIEW, S.RESUME_REJECTED): _resume_failed,
    (S.READY, S.IN_PROGRESS): _no_session_token,
    (S.IN_PROGRESS, S.ABANDONED): _terminated,
    (S.EVALUATED, S.DECIDED): _decision_present,
}

_logger = structlog.get_logger(__name__)


def is_terminal(status: AssessmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def allowed_next(status: AssessmentStatus, *, allow_reevaluation: bool = False) -> frozenset[AssessmentStatus]:
    allowed = set(TRANSITIONS.get(status, frozenset()))
    if allow_reevaluation:
        allowed.update(target for source, target in REEVALUATION_EDGES if source == status)
    return frozenset(allowed)


def can_transition(
    current: AssessmentStatus,
    target: AssessmentStatus,
    *,
    allow_reevaluation: bool = False,
) -> bool:
    """Return True when the state graph alone permits ``current -> target``."""
    if current == target:
        return False
    return target in allowed_next(current, allow_reevaluation=allow_reevaluation)


def check_guard(
    assessment: CandidateAssessment,
    target: AssessmentStatus,
    context: dict[str, Any] | None = None,
) -> str | None:
    """Evaluate the guard of ``assessment.status -> target``; return a failure reason or None."""
    guard = GUARDS.get((assessment.status, target))
    if guard is None:
        return None
    return guard(assessment, context or {})


def transition(
    assessment: CandidateAssessment,
    target: AssessmentStatus,
    *,
    now: datetime,
    reason: str = "",
    context: dict[str, Any] | None = None,
    allow_reevaluation: bool = False,
) -> StatusChange:
    """Validate and apply a lifecycle transition, appending it to the status history.

    Raises
    ------
    InvalidTransitionError
        When the edge is not in the state graph or its guard fails.
    """
    current = assessment.status
    if not can_transition(current, target, allow_reevaluation=allow_reevaluation):
        raise InvalidTransitionError(current.value, target.value)
    failure = check_guard(assessment, target, context)
    if failure:
        raise InvalidTransitionError(current.value, target.value, failure)

    change = StatusChange(from_status=current, to_status=target, at=now, reason=reason)
    assessment.status = target
    assessment.status_history.append(change)
    _logger.info(
        "lifecycle.transition",
        assessment_id=assessment.assessment_id,
        from_status=current.value,
        to_status=target.value,
        reason=reason,
    )
    return change


def is_forward(current: AssessmentStatus, target: AssessmentStatus) -> bool:
    return STATUS_ORDER.index(target) > STATUS_ORDER.index(current)


def path_is_valid(path: Iterable[AssessmentStatus]) -> bool:
    items = list(path)
    if len(items) < 2:
        return False
    return all(can_transition(items[index], items[index + 1]) for index in range(len(items) - 1))


__all__ = [
    "GUARDS",
    "REEVALUATION_EDGES",
    "STATUS_ORDER",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "allowed_next",
    "can_transition",
    "check_guard",
    "is_forward",
    "is_terminal",
    "path_is_valid",
    "transition",
]
