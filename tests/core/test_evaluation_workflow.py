from __future__ import annotations

import pytest

from hrassessment.errors import AuthorizationError, BusinessRuleViolation, InputValidationError, NotFoundError
from hrassessment.schemas import AssessmentStatus

S = AssessmentStatus


def submit_full(harness) -> str:
    assessment_id, token = harness.started()
    harness.service.save_answer(token, "objective", "o1", {"selected_option_index": 1})
    harness.service.save_answer(token, "objective", "o2", {"selected_option_index": 1})
    harness.service.save_answer(token, "subjective", "s1", {"answer": "B-tree indexes speed up reads"})
    harness.service.submit_programming(token, "p1", "sum_ok", "python")
    harness.service.submit_assessment(token)
    return assessment_id


def test_submission_is_evaluated(harness):
    assessment_id = submit_full(harness)

    evaluation = harness.service.evaluation_result(assessment_id, company_id="acme")

    assert evaluation.weighted_percentage == pytest.approx(79.0)
    assert evaluation.recommendation == "PASS"
    assert evaluation.completed_at == harness.clock.now
    assert evaluation.cycle == 1
    history = [change.to_status for change in harness.service.get_assessment(assessment_id).status_history]
    assert history[-3:] == [S.SUBMITTED, S.EVALUATING, S.EVALUATED]


def test_trigger_requires_submission(harness):
    assessment_id, _ = harness.started()

    with pytest.raises(BusinessRuleViolation) as excinfo:
        harness.service.trigger_evaluation(assessment_id, company_id="acme")
    assert excinfo.value.code == "not_submitted"


def test_trigger_twice_is_rejected(harness):
    assessment_id = submit_full(harness)

    with pytest.raises(BusinessRuleViolation) as excinfo:
        harness.service.trigger_evaluation(assessment_id, company_id="acme")
    assert excinfo.value.code == "already_evaluated"


def test_other_company_is_denied(harness):
    assessment_id = submit_full(harness)

    with pytest.raises(AuthorizationError):
        harness.service.evaluation_result(assessment_id, company_id="globex")
    with pytest.raises(AuthorizationError):
        harness.service.record_decision(assessment_id, "PASS", actor="eve", company_id="globex")
    with pytest.raises(AuthorizationError):
        harness.service.trigger_evaluation(assessment_id, company_id="globex", reevaluate=True)
    assert harness.service.get_assessment(assessment_id).status == S.EVALUATED


def test_result_before_evaluation_is_not_found(harness):
    assessment_id, _ = harness.started()
    with pytest.raises(NotFoundError):
        harness.service.evaluation_result(assessment_id)


def test_failed_evaluation_applies_fallback(harness, monkeypatch):
    def broken(**kwargs):
        raise RuntimeError("scoring crashed")

    monkeypatch.setattr(harness.aggregator, "evaluate", broken)
    assessment_id = submit_full(harness)

    assessment = harness.service.get_assessment(assessment_id)
    evaluation = harness.service.evaluation_result(assessment_id)
    assert assessment.status == S.EVALUATED
    assert assessment.tasks[-1].status == "fallback_applied"
    assert evaluation.needs_manual_review
    assert evaluation.recommendation == "REVIEW"
    assert "scoring crashed" in evaluation.errors[-1]

    monkeypatch.undo()
    harness.service.trigger_evaluation(assessment_id, company_id="acme", reevaluate=True)
    evaluation = harness.service.evaluation_result(assessment_id)
    assert not evaluation.needs_manual_review
    assert evaluation.cycle == 2


def test_decision_moves_to_decided_once(harness):
    assessment_id = submit_full(harness)

    evaluation = harness.service.record_decision(assessment_id, "pass", "strong coding", actor="hr@acme", company_id="acme")

    assert evaluation.admin_decision.value == "PASS"
    assert evaluation.admin_decision.by == "hr@acme"
    assert evaluation.admin_decision.notes == "strong coding"
    assert harness.service.get_assessment(assessment_id).status == S.DECIDED
    with pytest.raises(BusinessRuleViolation) as excinfo:
        harness.service.record_decision(assessment_id, "FAIL", actor="hr@acme", company_id="acme")
    assert excinfo.value.code == "already_decided"


def test_invalid_decision_value(harness):
    assessment_id = submit_full(harness)

    with pytest.raises(InputValidationError):
        harness.service.record_decision(assessment_id, "MAYBE", actor="hr@acme")
    assert harness.service.get_assessment(assessment_id).status == S.EVALUATED


def test_reevaluation_resets_decision(harness):
    assessment_id = submit_full(harness)
    harness.service.record_decision(assessment_id, "FAIL", actor="hr@acme", company_id="acme")
    harness.ai.grade_score = 2

    harness.service.trigger_evaluation(assessment_id, company_id="acme", reevaluate=True)

    evaluation = harness.service.evaluation_result(assessment_id)
    assert evaluation.admin_decision is None
    assert evaluation.cycle == 2
    assert evaluation.sections.subjective.score == 2
    assert harness.service.get_assessment(assessment_id).status == S.EVALUATED
    harness.service.record_decision(assessment_id, "HOLD", actor="hr@acme")
    assert harness.service.get_assessment(assessment_id).status == S.DECIDED


def test_reevaluation_requires_prior_evaluation(harness):
    assessment_id, _ = harness.started()

    with pytest.raises(BusinessRuleViolation) as excinfo:
        harness.service.trigger_evaluation(assessment_id, reevaluate=True)
    assert excinfo.value.code == "invalid_transition"
