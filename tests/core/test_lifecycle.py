from __future__ import annotations

import itertools

import pendulum
import pytest

from hrassessment.core import lifecycle
from hrassessment.errors import InvalidTransitionError
from hrassessment.schemas import AssessmentStatus, CandidateAssessment

S = AssessmentStatus
NOW = pendulum.datetime(2026, 3, 2, tz="UTC")


def build_assessment(**overrides) -> CandidateAssessment:
    data = {
        "assessment_id": "a-1",
        "candidate_id": "c-1",
        "candidate_email": "ada@example.com",
        "job_id": "job-1",
    }
    data.update(overrides)
    return CandidateAssessment(**data)


def complete_onboarding(assessment: CandidateAssessment) -> None:
    assessment.onboarding.email_verified = True
    assessment.onboarding.profile_photo_captured = True
    assessment.onboarding.consent_accepted = True
    assessment.resume.passed_threshold = True
    assessment.resume.analyzed_at = NOW


def test_happy_path_is_valid():
    path = [S.ONBOARDING, S.RESUME_REVIEW, S.READY, S.IN_PROGRESS, S.SUBMITTED, S.EVALUATING, S.EVALUATED, S.DECIDED]
    assert lifecycle.path_is_valid(path)


def test_terminal_states_have_no_exits():
    for status in lifecycle.TERMINAL_STATUSES:
        assert lifecycle.allowed_next(status) == frozenset()
        assert lifecycle.is_terminal(status)


def test_normal_transitions_never_move_backwards():
    for current, target in itertools.product(S, S):
        if lifecycle.can_transition(current, target):
            assert lifecycle.is_forward(current, target), (current, target)


def test_backward_edges_require_reevaluation_flag():
    assert not lifecycle.can_transition(S.EVALUATED, S.SUBMITTED)
    assert lifecycle.can_transition(S.EVALUATED, S.SUBMITTED, allow_reevaluation=True)
    assert lifecycle.can_transition(S.DECIDED, S.SUBMITTED, allow_reevaluation=True)
    assert not lifecycle.can_transition(S.IN_PROGRESS, S.READY, allow_reevaluation=True)


def test_ready_requires_every_onboarding_step():
    assessment = build_assessment()
    assessment.onboarding.email_verified = True

    with pytest.raises(InvalidTransitionError) as excinfo:
        lifecycle.transition(assessment, S.READY, now=NOW)

    assert "profile_photo_captured" in excinfo.value.message
    assert assessment.status == S.ONBOARDING
    assert assessment.status_history == []


def test_transition_records_history():
    assessment = build_assessment()
    complete_onboarding(assessment)

    change = lifecycle.transition(assessment, S.READY, now=NOW, reason="onboarding complete")

    assert assessment.status == S.READY
    assert change.from_status == S.ONBOARDING
    assert assessment.status_history == [change]


def test_start_guard_rejects_missing_set():
    assessment = build_assessment(status=S.READY)
    complete_onboarding(assessment)

    assert lifecycle.check_guard(assessment, S.IN_PROGRESS) == "no question set assigned"


def test_decided_requires_decision_context():
    assessment = build_assessment(status=S.EVALUATED)

    with pytest.raises(InvalidTransitionError):
        lifecycle.transition(assessment, S.DECIDED, now=NOW)

    lifecycle.transition(assessment, S.DECIDED, now=NOW, context={"decision": "PASS"})
    assert assessment.status == S.DECIDED


def test_abandoned_requires_termination():
    assessment = build_assessment(status=S.IN_PROGRESS)
    assert lifecycle.check_guard(assessment, S.ABANDONED) == "session is not terminated"

    assessment.is_terminated = True
    lifecycle.transition(assessment, S.ABANDONED, now=NOW)
    assert assessment.status == S.ABANDONED


def test_self_transition_is_rejected():
    assessment = build_assessment()
    with pytest.raises(InvalidTransitionError) as excinfo:
        lifecycle.transition(assessment, S.ONBOARDING, now=NOW)
    assert excinfo.value.code == "invalid_transition"


@pytest.mark.parametrize("flags", list(itertools.product([True, False], repeat=4)))
def test_ready_only_when_every_step_is_done(flags):
    email, photo, consent, resume = flags
    assessment = build_assessment()
    assessment.onboarding.email_verified = email
    assessment.onboarding.profile_photo_captured = photo
    assessment.onboarding.consent_accepted = consent
    assessment.resume.passed_threshold = resume

    complete = all(flags)

    assert assessment.is_onboarding_complete() is complete
    assert (lifecycle.check_guard(assessment, S.READY) is None) is complete
    assert len(assessment.missing_onboarding_steps()) == flags.count(False)
