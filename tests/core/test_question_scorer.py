from __future__ import annotations

import pendulum
import pytest

from hrassessment.core.scoring import QuestionScorer, ScoringConfig, round1
from hrassessment.schemas import Attempt, CaseResult, PassCounts, QuestionScores, SessionQuestion


def result(case_type: str, ordinal: int, passed: bool, time_ms: float = 100.0) -> CaseResult:
    return CaseResult(case_type=case_type, ordinal=ordinal, passed=passed, time_ms=time_ms, status="success")


def build_attempt(results: list[CaseResult]) -> Attempt:
    return Attempt(
        attempt_id="att-1",
        session_id="s-1",
        question_id="p1",
        user_id="u-1",
        code="sum_ok",
        language="python",
        language_id=71,
        mode="submit",
        results=tuple(results),
        counts=PassCounts.from_results(results),
        attempt_number=1,
        created_at=pendulum.datetime(2026, 3, 2, tz="UTC"),
    )


@pytest.mark.parametrize("value,expected", [(0.05, 0.1), (14.9875, 15.0), (47.45, 47.5), (3.14, 3.1)])
def test_round1_rounds_half_up(value, expected):
    assert round1(value) == pytest.approx(expected)


def test_correctness_weights_visible_and_hidden():
    scorer = QuestionScorer()
    results = [
        result("visible", 1, True),
        result("visible", 2, False),
        result("hidden", 1, True),
        result("hidden", 2, True),
    ]

    # (0.5 * 0.4 + 1.0 * 0.6) * 60
    assert scorer.correctness(results) == 48.0


def test_missing_case_types_count_zero():
    scorer = QuestionScorer()
    assert scorer.correctness([result("visible", 1, True)]) == 24.0
    assert scorer.edge_cases([result("visible", 1, True)]) == 0.0


def test_performance_uses_seconds_against_estimate():
    scorer = QuestionScorer()
    results = [result("visible", 1, True, time_ms=30_000), result("hidden", 1, True, time_ms=90_000)]

    # limit 600s, average 60s -> 0.9 * 15
    assert scorer.performance(results, 10) == 13.5
    assert scorer.performance([], 10) == 0.0
    assert scorer.performance([result("visible", 1, True, time_ms=900_000)], 10) == 0.0


def test_score_without_ai_uses_fallback(question_factory):
    scorer = QuestionScorer(config=ScoringConfig(fallback_review_score=4))
    attempt = build_attempt([result("visible", 1, True), result("hidden", 1, True), result("edge", 1, True)])

    scores, analysis = scorer.score(question_factory(), attempt)

    assert scores.code_quality == 4.0
    assert scores.approach == 4.0
    assert scores.needs_manual_review
    assert analysis.your_solution == "sum_ok"
    assert analysis.how_to_approach == "Split and add."


def test_overall_weights_by_difficulty(question_factory):
    scorer = QuestionScorer()
    questions = [
        SessionQuestion(question=question_factory("e", difficulty="easy"), scores=QuestionScores(final_score=90)),
        SessionQuestion(question=question_factory("h", difficulty="hard"), scores=QuestionScores(final_score=60)),
    ]

    overall, normalized = scorer.overall(questions)

    # (90 * 1 + 60 * 2) / 3
    assert overall == 70.0
    assert normalized == 7.0
    assert scorer.overall([]) == (0.0, 0.0)
