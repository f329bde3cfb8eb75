from __future__ import annotations

import pytest

from hrassessment.core.judging import build_battery, normalize_output, outputs_match
from hrassessment.errors import BusinessRuleViolation, InputValidationError, NotFoundError


@pytest.fixture
def oa(harness, question_factory):
    harness.service.add_pool_questions([question_factory("p1")])
    session = harness.service.start_session("user-1", count=1)
    return harness, session


def test_normalize_output_handles_line_endings():
    assert normalize_output("  3\r\n4  \r\n") == "3\n4"
    assert outputs_match("a \rb\n", "a\nb")
    assert not outputs_match("1 2", "12")
    assert normalize_output(None) == ""


def test_battery_by_mode(question_factory):
    question = question_factory()

    assert [case.case_type for case in build_battery(question, "run")] == ["visible", "visible"]
    assert [case.case_type for case in build_battery(question, "submit")] == [
        "visible",
        "visible",
        "hidden",
        "hidden",
        "edge",
    ]


def test_run_uses_visible_cases_only(oa):
    harness, session = oa

    attempt = harness.service.run(session.session_id, "p1", "sum_ok", "Python", user_id="user-1")

    assert attempt.mode == "run"
    assert attempt.counts.total == 2
    assert attempt.counts.visible == 2
    assert attempt.language == "python"
    assert attempt.language_id == 71
    assert not attempt.is_final_submission
    assert [stdin for _, _, stdin in harness.execution.calls] == ["1 2", "1 5"]


def test_submit_runs_full_battery(oa):
    harness, session = oa

    attempt = harness.service.submit(session.session_id, "p1", "sum_visible_only", "python")

    assert attempt.counts.total == 5
    assert attempt.counts.visible == 2
    assert attempt.counts.hidden == 0
    assert attempt.counts.edge == 0
    assert attempt.status == "failed"
    assert attempt.is_final_submission


def test_attempts_are_numbered_and_tracked(oa):
    harness, session = oa

    first = harness.service.run(session.session_id, "p1", "sum_wrong", "python")
    second = harness.service.submit(session.session_id, "p1", "sum_ok", "python")

    history = harness.service.attempts(session.session_id, "p1")
    assert [a.attempt_number for a in history] == [1, 2]
    assert [a.attempt_id for a in history] == [first.attempt_id, second.attempt_id]
    item = session.question("p1")
    assert item.attempt_count == 2
    assert item.latest_attempt_id == second.attempt_id


def test_case_failure_is_isolated(oa):
    harness, session = oa
    harness.execution.fail_inputs.add("10 20")

    attempt = harness.service.submit(session.session_id, "p1", "sum_ok", "python")

    failed = [result for result in attempt.results if not result.passed]
    assert len(failed) == 1
    assert failed[0].status == "error"
    assert "sandbox unavailable" in failed[0].error
    assert attempt.counts.total_passed == 4


def test_language_checks(harness, question_factory):
    harness.service.add_pool_questions([question_factory("p1", allowed_languages=("python",))])
    session = harness.service.start_session("user-1", count=1)

    with pytest.raises(InputValidationError):
        harness.service.run(session.session_id, "p1", "sum_ok", "java")
    with pytest.raises(InputValidationError):
        harness.service.run(session.session_id, "p1", "", "python")
    with pytest.raises(NotFoundError):
        harness.service.run(session.session_id, "nope", "sum_ok", "python")
    assert harness.execution.calls == []


def test_complete_rescores_latest_code_on_full_battery(oa):
    harness, session = oa
    harness.service.run(session.session_id, "p1", "sum_wrong", "python")
    latest = harness.service.run(session.session_id, "p1", "sum_ok", "python")

    overall = harness.service.complete(session.session_id, user_id="user-1")

    rescored = harness.repository.get_attempt(session.session_id, "p1", latest.attempt_id)
    assert rescored.counts.total == 5
    assert rescored.is_final_submission
    assert rescored.rescored_at == harness.clock.now
    scores = session.question("p1").scores
    assert scores.correctness == 60.0
    assert scores.performance == 15.0
    assert scores.edge_cases == 5.0
    assert scores.code_quality == 8.0
    assert scores.approach == 7.0
    assert scores.final_score == 95.0
    assert overall == 95.0
    assert session.normalized_score == 9.5
    assert session.status == "completed"


def test_unattempted_questions_score_zero(harness, question_factory):
    harness.service.add_pool_questions([question_factory("p1"), question_factory("p2")])
    session = harness.service.start_session("user-1", count=2)
    attempted = session.questions[0].question_id
    harness.service.submit(session.session_id, attempted, "sum_ok", "python")

    overall = harness.service.complete(session.session_id)

    assert overall == 47.5
    assert session.normalized_score == 4.8


def test_complete_twice_is_rejected(oa):
    harness, session = oa
    harness.service.complete(session.session_id)

    with pytest.raises(BusinessRuleViolation) as excinfo:
        harness.service.complete(session.session_id)
    assert excinfo.value.code == "session_completed"


def test_terminated_session_rejects_code(oa):
    harness, session = oa
    for _ in range(3):
        harness.service.report_violation(session.session_id)

    with pytest.raises(BusinessRuleViolation) as excinfo:
        harness.service.submit(session.session_id, "p1", "sum_ok", "python")
    assert excinfo.value.code == "session_terminated"


def test_complete_in_background_records_task(oa):
    harness, session = oa
    harness.service.submit(session.session_id, "p1", "sum_ok", "python")

    record = harness.service.complete_in_background(session.session_id)

    assert record.status == "succeeded"
    assert session.tasks == [record]
    assert session.status == "completed"


def test_review_failure_falls_back(oa):
    harness, session = oa
    harness.ai.fail_review = True
    harness.service.submit(session.session_id, "p1", "sum_ok", "python")

    harness.service.complete(session.session_id)

    scores = session.question("p1").scores
    assert scores.code_quality == 5.0
    assert scores.approach == 5.0
    assert scores.needs_manual_review


@pytest.mark.parametrize("code", ["sum_ok", "sum_visible_only", "sum_wrong"])
def test_complete_matches_submit_for_same_code(oa, code):
    harness, session = oa
    submitted = harness.service.submit(session.session_id, "p1", code, "python")
    latest = harness.service.run(session.session_id, "p1", code, "python")

    harness.service.complete(session.session_id)

    rescored = harness.repository.get_attempt(session.session_id, "p1", latest.attempt_id)

    def snapshot(counts):
        return (counts.visible, counts.hidden, counts.edge, counts.total_passed, counts.total)

    assert snapshot(rescored.counts) == snapshot(submitted.counts)
    assert [result.passed for result in rescored.results] == [result.passed for result in submitted.results]
