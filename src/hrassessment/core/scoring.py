"""Per-question scoring of online-assessment attempts."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import structlog

from ..adapters.base import AIScoringService
from ..errors import ExternalServiceError
from ..schemas.ai import CodeReview
from ..schemas.question_set import ProgrammingQuestion
from ..schemas.session import Attempt, CaseResult, QuestionAnalysis, QuestionScores, SessionQuestion


def round1(value: float) -> float:
    """Round half up to one decimal place."""
    return math.floor(value * 10 + 0.5) / 10


def _pass_rate(results: Sequence[CaseResult], case_type: str) -> float:
    cases = [result for result in results if result.case_type == case_type]
    if not cases:
        return 0.0
    return sum(1 for result in cases if result.passed) / len(cases)


@dataclass
class ScoringConfig:
    difficulty_weights: dict[str, float] = field(
        default_factory=lambda: {"easy": 1.0, "medium": 1.5, "hard": 2.0, "expert": 3.0}
    )
    fallback_review_score: float = 5.0
    correctness_points: float = 60.0
    performance_points: float = 15.0
    edge_points: float = 5.0
    visible_share: float = 0.4
    hidden_share: float = 0.6


class QuestionScorer:
    """Turns a fully judged attempt into a 0-100 question score.

    Correctness, performance and edge-case components come from the battery
    results; code quality and approach (0-10 each) come from the AI reviewer.
    When the reviewer fails, both fall back to a neutral score and the
    question is flagged for manual review.
    """

    def __init__(self, *, ai_service: AIScoringService | None = None, config: ScoringConfig | None = None) -> None:
        self._ai = ai_service
        self._config = config or ScoringConfig()
        self._logger = structlog.get_logger(__name__)

    def correctness(self, results: Sequence[CaseResult]) -> float:
        cfg = self._config
        rate = _pass_rate(results, "visible") * cfg.visible_share + _pass_rate(results, "hidden") * cfg.hidden_share
        return round1(rate * cfg.correctness_points)

    def performance(self, results: Sequence[CaseResult], estimated_minutes: float) -> float:
        if not results:
            return 0.0
        average_seconds = sum((result.time_ms or 0.0) / 1000.0 for result in results) / len(results)
        limit_seconds = estimated_minutes * 60
        ratio = max(0.0, (limit_seconds - average_seconds) / limit_seconds)
        return round1(ratio * self._config.performance_points)

    def edge_cases(self, results: Sequence[CaseResult]) -> float:
        return round1(_pass_rate(results, "edge") * self._config.edge_points)

    def review(self, question: ProgrammingQuestion, attempt: Attempt) -> tuple[CodeReview, bool]:
        fallback = self._config.fallback_review_score
        if self._ai is None:
            return CodeReview(quality_score=fallback, approach_score=fallback), True
        try:
            return self._ai.review(question=question.question_text, code=attempt.code, language=attempt.language), False
        except ExternalServiceError as exc:
            self._logger.warning(
                "scoring.review_fallback",
                question_id=question.question_id,
                attempt_id=attempt.attempt_id,
                error=str(exc),
            )
            return (
                CodeReview(
                    quality_score=fallback,
                    quality_explanation="Unable to evaluate code quality.",
                    approach_score=fallback,
                    overall_comments="Automated review unavailable; manual review required.",
                ),
                True,
            )

    def score(self, question: ProgrammingQuestion, attempt: Attempt) -> tuple[QuestionScores, QuestionAnalysis]:
        results = list(attempt.results)
        review, fell_back = self.review(question, attempt)
        correctness = self.correctness(results)
        performance = self.performance(results, question.estimated_time_minutes)
        edge = self.edge_cases(results)
        quality = round1(review.quality_score)
        approach = round1(review.approach_score)
        scores = QuestionScores(
            correctness=correctness,
            performance=performance,
            code_quality=quality,
            edge_cases=edge,
            approach=approach,
            final_score=round1(correctness + performance + quality + edge + approach),
            needs_manual_review=fell_back,
        )
        analysis = QuestionAnalysis(
            how_to_approach=question.how_to_approach,
            your_approach=review.your_approach,
            optimal_solution=question.optimal_solution,
            your_solution=attempt.code,
            overall_comments=review.overall_comments,
            time_complexity=review.time_complexity,
        )
        self._logger.info(
            "scoring.question_scored",
            question_id=question.question_id,
            attempt_id=attempt.attempt_id,
            final_score=scores.final_score,
        )
        return scores, analysis

    def overall(self, questions: Iterable[SessionQuestion]) -> tuple[float, float]:
        """Difficulty-weighted mean of final scores and its 0-10 normalization.

        Questions without scores count as 0.
        """
        total_weighted = 0.0
        total_weight = 0.0
        for item in questions:
            weight = self._config.difficulty_weights.get(item.question.difficulty, 1.0)
            final = item.scores.final_score if item.scores is not None else 0.0
            total_weighted += final * weight
            total_weight += weight
        overall = total_weighted / total_weight if total_weight > 0 else 0.0
        return round1(overall), round1(overall / 10)


__all__ = ["QuestionScorer", "ScoringConfig", "round1"]
