"""Multi-section scoring, recommendation and the evaluation workflow."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping

import pendulum
import structlog

from ..adapters.base import AIScoringService
from ..errors import (
    AssessmentError,
    AuthorizationError,
    BusinessRuleViolation,
    ExternalServiceError,
    InputValidationError,
    NotFoundError,
)
from ..repository import InMemoryRepository
from ..schemas.answers import AssessmentAnswer, ProgrammingAnswer
from ..schemas.assessment import AssessmentStatus, CandidateAssessment
from ..schemas.evaluation import (
    DECISION_VALUES,
    AdminDecision,
    Evaluation,
    ObjectiveDetail,
    ProgrammingDetail,
    SectionResult,
    SectionScores,
    SkillScore,
    SubjectiveDetail,
)
from ..schemas.job import SECTIONS, Job
from ..schemas.question_set import AssessmentSet, ProgrammingQuestion
from ..schemas.session import PassCounts
from ..schemas.tasks import TaskRecord
from . import lifecycle
from .judging import CaseJudge, build_battery
from .tasks import FALLBACK_APPLIED, TaskRunner

OUTCOMES: dict[str, str] = {"PASS": "pass", "REVIEW": "hold", "FAIL": "fail"}


def competency_level(percentage: float) -> str:
    if percentage >= 90:
        return "expert"
    if percentage >= 70:
        return "proficient"
    if percentage >= 50:
        return "intermediate"
    return "beginner"


def percentage_of(score: float, max_score: float) -> float:
    return (score / max_score) * 100 if max_score > 0 else 0.0


def weighted_percentage(sections: SectionScores, weights: Mapping[str, float]) -> float:
    """Combine section percentages with per-section weights.

    Sections with ``max_score == 0`` are left out and the remaining weights are
    renormalized to sum to 1. Without any positive weight the plain overall
    percentage is returned.
    """
    active = [(name, result) for name, result in sections.items() if result.max_score > 0]
    total_weight = sum(max(0.0, weights.get(name, 0.0)) for name, _ in active)
    if total_weight <= 0:
        score = sum(result.score for _, result in active)
        max_score = sum(result.max_score for _, result in active)
        return min(100.0, max(0.0, percentage_of(score, max_score)))
    combined = sum(
        percentage_of(result.score, result.max_score) * max(0.0, weights.get(name, 0.0)) / total_weight
        for name, result in active
    )
    return min(100.0, max(0.0, combined))


@dataclass(slots=True)
class Recommendation:
    value: str
    outcome: str
    reason: str
    confidence: float


def recommend(score: float, cutoff: float) -> Recommendation:
    if score >= cutoff + 15:
        value, confidence = "PASS", 85.0
        reason = f"Score {score:.1f}% exceeds cutoff by significant margin."
    elif score >= cutoff:
        value, confidence = "REVIEW", 60.0
        reason = f"Score {score:.1f}% is near cutoff. Manual review recommended."
    elif score >= cutoff - 10:
        value, confidence = "REVIEW", 70.0
        reason = f"Score {score:.1f}% is slightly below cutoff. Consider for potential."
    else:
        value, confidence = "FAIL", 80.0
        reason = f"Score {score:.1f}% is significantly below cutoff ({cutoff:g}%)."
    return Recommendation(value=value, outcome=OUTCOMES[value], reason=reason, confidence=confidence)


@dataclass
class EvaluationConfig:
    subjective_fallback_score: float = 5.0
    default_section_points: dict[str, float] = field(
        default_factory=lambda: {"objective": 1.0, "subjective": 10.0, "programming": 20.0}
    )


class EvaluationAggregator:
    """Scores the three sections of a submitted assessment and derives a recommendation."""

    def __init__(
        self,
        *,
        ai_service: AIScoringService,
        case_judge: CaseJudge,
        config: EvaluationConfig | None = None,
    ) -> None:
        self._ai = ai_service
        self._judge = case_judge
        self._config = config or EvaluationConfig()
        self._logger = structlog.get_logger(__name__)

    def evaluate(
        self,
        *,
        evaluation: Evaluation,
        job: Job,
        assessment_set: AssessmentSet,
        answers: Mapping[str, AssessmentAnswer],
    ) -> Evaluation:
        scorers = {
            "objective": self.objective_section,
            "subjective": self.subjective_section,
            "programming": self.programming_section,
        }
        errors: list[str] = []
        sections: dict[str, SectionResult] = {}
        for name in SECTIONS:
            if not job.config.section(name).enabled:
                sections[name] = SectionResult()
                continue
            sections[name] = scorers[name](assessment_set, answers.get(name), errors)

        evaluation.sections = SectionScores(**sections)
        evaluation.total_score = sum(result.score for result in sections.values())
        evaluation.max_total_score = sum(result.max_score for result in sections.values())
        evaluation.percentage = percentage_of(evaluation.total_score, evaluation.max_total_score)
        weights = {name: job.config.section(name).weight for name in SECTIONS}
        evaluation.weighted_percentage = weighted_percentage(evaluation.sections, weights)
        evaluation.skill_scores = self.skill_scores(assessment_set, evaluation.sections.objective)

        advice = recommend(evaluation.weighted_percentage, job.config.cutoff_score)
        evaluation.recommendation = advice.value
        evaluation.recommendation_outcome = advice.outcome
        evaluation.recommendation_reason = advice.reason
        evaluation.confidence = advice.confidence
        evaluation.errors = errors
        evaluation.needs_manual_review = bool(errors) or any(
            getattr(detail, "needs_manual_review", False)
            for _, result in evaluation.sections.items()
            for detail in result.details
        )
        return evaluation

    # sections

    def objective_section(
        self, assessment_set: AssessmentSet, answer: AssessmentAnswer | None, errors: list[str]
    ) -> SectionResult:
        questions = assessment_set.objective_questions
        max_score = sum(self._points(q.points, "objective") for q in questions)
        score = 0.0
        details: list[ObjectiveDetail] = []
        attempted = 0
        for item in answer.objective_answers if answer else []:
            question = assessment_set.objective(item.question_id)
            if question is None:
                continue
            attempted += 1
            correct = question.is_correct(item.selected_option_index)
            points = self._points(question.points, "objective") if correct else 0.0
            score += points
            details.append(ObjectiveDetail(question_id=item.question_id, is_correct=correct, points=points))
        return SectionResult(
            score=score,
            max_score=max_score,
            percentage=percentage_of(score, max_score),
            questions_attempted=attempted,
            total_questions=len(questions),
            details=details,
        )

    def subjective_section(
        self, assessment_set: AssessmentSet, answer: AssessmentAnswer | None, errors: list[str]
    ) -> SectionResult:
        questions = assessment_set.subjective_questions
        max_score = sum(self._points(q.points, "subjective") for q in questions)
        score = 0.0
        details: list[SubjectiveDetail] = []
        attempted = 0
        for item in answer.subjective_answers if answer else []:
            question = assessment_set.subjective(item.question_id)
            if question is None or not item.answer.strip():
                continue
            attempted += 1
            max_points = self._points(question.points, "subjective")
            try:
                grade = self._ai.grade(
                    question=question.question_text,
                    expected_answer=question.expected_answer,
                    rubric=question.rubric,
                    answer=item.answer,
                    max_score=max_points,
                )
            except ExternalServiceError as exc:
                self._logger.warning("evaluation.grade_fallback", question_id=question.question_id, error=str(exc))
                errors.append(f"subjective:{question.question_id}: {exc}")
                awarded = min(max(self._config.subjective_fallback_score, 0.0), max_points)
                details.append(
                    SubjectiveDetail(
                        question_id=question.question_id,
                        ai_score=awarded,
                        max_score=max_points,
                        feedback="Could not grade automatically. Manual review required.",
                        needs_manual_review=True,
                    )
                )
            else:
                awarded = min(max(grade.score, 0.0), max_points)
                details.append(
                    SubjectiveDetail(
                        question_id=question.question_id,
                        ai_score=awarded,
                        max_score=max_points,
                        feedback=grade.feedback,
                        key_points=list(grade.key_points),
                        improvements=list(grade.improvements),
                        rubric_feedback=grade.rubric_feedback,
                    )
                )
            score += awarded
        return SectionResult(
            score=score,
            max_score=max_score,
            percentage=percentage_of(score, max_score),
            questions_attempted=attempted,
            total_questions=len(questions),
            details=details,
        )

    def programming_section(
        self, assessment_set: AssessmentSet, answer: AssessmentAnswer | None, errors: list[str]
    ) -> SectionResult:
        questions = assessment_set.programming_questions
        max_score = sum(self._points(q.points, "programming") for q in questions)
        score = 0.0
        details: list[ProgrammingDetail] = []
        attempted = 0
        for item in answer.programming_answers if answer else []:
            question = assessment_set.programming(item.question_id)
            if question is None or not item.code.strip():
                continue
            attempted += 1
            max_points = self._points(question.points, "programming")
            manual = False
            try:
                self.ensure_judged(question, item)
            except AssessmentError as exc:
                self._logger.warning("evaluation.judge_failed", question_id=question.question_id, error=str(exc))
                errors.append(f"programming:{question.question_id}: {exc}")
                manual = True
            awarded = (item.tests_passed / item.total_tests) * max_points if item.total_tests > 0 else 0.0
            score += awarded
            details.append(
                ProgrammingDetail(
                    question_id=question.question_id,
                    tests_passed=item.tests_passed,
                    total_tests=item.total_tests,
                    score=awarded,
                    max_score=max_points,
                    feedback=(
                        "All test cases passed"
                        if item.all_passed
                        else f"{item.tests_passed}/{item.total_tests} test cases passed"
                    ),
                    needs_manual_review=manual,
                )
            )
        return SectionResult(
            score=score,
            max_score=max_score,
            percentage=percentage_of(score, max_score),
            questions_attempted=attempted,
            total_questions=len(questions),
            details=details,
        )

    def ensure_judged(self, question: ProgrammingQuestion, answer: ProgrammingAnswer) -> None:
        """Run the full battery on the stored code unless its counts already belong to it."""
        if answer.is_judged:
            return
        answer.tests_passed = 0
        answer.total_tests = 0
        answer.all_passed = False
        language_id = self._judge.language_id(answer.language)
        results = self._judge.judge(answer.code, language_id, build_battery(question, "submit"))
        counts = PassCounts.from_results(results)
        answer.results = results
        answer.tests_passed = counts.total_passed
        answer.total_tests = counts.total
        answer.all_passed = counts.all_passed
        answer.judged_code = answer.code

    # skills

    def skill_scores(self, assessment_set: AssessmentSet, objective: SectionResult) -> list[SkillScore]:
        buckets: dict[str, dict[str, float]] = {}
        for detail in objective.details:
            question = assessment_set.objective(detail.question_id)
            if question is None or not question.skill:
                continue
            bucket = buckets.setdefault(question.skill, {"score": 0.0, "max_score": 0.0, "attempted": 0})
            points = self._points(question.points, "objective")
            bucket["score"] += points if detail.is_correct else 0.0
            bucket["max_score"] += points
            bucket["attempted"] += 1
        skills: list[SkillScore] = []
        for skill, bucket in buckets.items():
            percentage = percentage_of(bucket["score"], bucket["max_score"])
            skills.append(
                SkillScore(
                    skill=skill,
                    score=bucket["score"],
                    max_score=bucket["max_score"],
                    percentage=percentage,
                    competency_level=competency_level(percentage),
                    questions_attempted=int(bucket["attempted"]),
                )
            )
        return skills

    def _points(self, points: float | None, section: str) -> float:
        if points:
            return float(points)
        return self._config.default_section_points.get(section, 0.0)


class EvaluationWorkflow:
    """Moves submitted assessments through evaluation and records the human decision."""

    def __init__(
        self,
        *,
        repository: InMemoryRepository,
        aggregator: EvaluationAggregator,
        task_runner: TaskRunner,
        now_provider: Any | None = None,
    ) -> None:
        self._repository = repository
        self._aggregator = aggregator
        self._tasks = task_runner
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def trigger(
        self,
        assessment_id: str,
        *,
        company_id: str | None = None,
        reevaluate: bool = False,
    ) -> TaskRecord:
        """Move the assessment to ``evaluating`` and dispatch scoring in the background.

        ``company_id`` of ``None`` marks a system-initiated trigger that skips
        the ownership check.
        """
        assessment = self._repository.get_assessment(assessment_id)
        job = self._repository.get_job(assessment.job_id)
        self._check_owner(job, company_id, assessment_id)
        previous = self._repository.get_evaluation(assessment_id)

        if reevaluate:
            if assessment.status not in (AssessmentStatus.EVALUATED, AssessmentStatus.DECIDED):
                raise BusinessRuleViolation(
                    "invalid_transition",
                    "Only evaluated or decided assessments can be re-evaluated",
                    assessment_id=assessment_id,
                    status=assessment.status.value,
                )
            lifecycle.transition(
                assessment,
                AssessmentStatus.SUBMITTED,
                now=self._now_provider(),
                reason="re-evaluation requested",
                allow_reevaluation=True,
            )
            self._repository.delete_evaluation(assessment_id)
            cycle = previous.cycle + 1 if previous is not None else 1
        else:
            if previous is not None and previous.completed_at is not None:
                raise BusinessRuleViolation(
                    "already_evaluated",
                    "Assessment already evaluated; request a re-evaluation instead",
                    assessment_id=assessment_id,
                    evaluation_id=previous.evaluation_id,
                )
            if assessment.status != AssessmentStatus.SUBMITTED:
                raise BusinessRuleViolation(
                    "not_submitted",
                    "Assessment must be submitted before evaluation",
                    assessment_id=assessment_id,
                    status=assessment.status.value,
                )
            cycle = previous.cycle if previous is not None else 1

        # Completion marker re-checked right before starting; a concurrent trigger can still slip through.
        current = self._repository.get_evaluation(assessment_id)
        if current is not None and current.completed_at is not None:
            raise BusinessRuleViolation(
                "already_evaluated",
                "Assessment already evaluated",
                assessment_id=assessment_id,
                evaluation_id=current.evaluation_id,
            )

        now = self._now_provider()
        lifecycle.transition(assessment, AssessmentStatus.EVALUATING, now=now, reason="evaluation started")
        evaluation = self._repository.save_evaluation(
            Evaluation(
                evaluation_id=current.evaluation_id if current is not None else uuid.uuid4().hex,
                assessment_id=assessment_id,
                cycle=cycle,
                started_at=now,
            )
        )
        self._logger.info("evaluation.triggered", assessment_id=assessment_id, cycle=cycle, reevaluate=reevaluate)
        return self._tasks.submit(
            "evaluation",
            assessment,
            lambda: self.run(assessment_id),
            on_failure=lambda exc: self._apply_fallback(assessment, evaluation, exc),
        )

    def run(self, assessment_id: str) -> Evaluation:
        assessment = self._repository.get_assessment(assessment_id)
        if assessment.status != AssessmentStatus.EVALUATING:
            raise BusinessRuleViolation(
                "invalid_transition", "Assessment is not being evaluated", assessment_id=assessment_id
            )
        evaluation = self._repository.get_evaluation(assessment_id)
        if evaluation is None:
            raise NotFoundError("evaluation", assessment_id)
        if assessment.assigned_set_id is None:
            raise BusinessRuleViolation("no_sets_available", "No question set assigned", assessment_id=assessment_id)

        job = self._repository.get_job(assessment.job_id)
        assessment_set = self._repository.get_set(assessment.assigned_set_id)
        self._aggregator.evaluate(
            evaluation=evaluation,
            job=job,
            assessment_set=assessment_set,
            answers=self._repository.answers_of(assessment_id),
        )
        evaluation.completed_at = self._now_provider()
        lifecycle.transition(
            assessment, AssessmentStatus.EVALUATED, now=evaluation.completed_at, reason="evaluation completed"
        )
        self._logger.info(
            "evaluation.completed",
            assessment_id=assessment_id,
            percentage=round(evaluation.percentage, 2),
            weighted_percentage=round(evaluation.weighted_percentage, 2),
            recommendation=evaluation.recommendation,
            needs_manual_review=evaluation.needs_manual_review,
        )
        return evaluation

    def result(self, assessment_id: str, *, company_id: str | None = None) -> Evaluation:
        assessment = self._repository.get_assessment(assessment_id)
        self._check_owner(self._repository.get_job(assessment.job_id), company_id, assessment_id)
        evaluation = self._repository.get_evaluation(assessment_id)
        if evaluation is None:
            raise NotFoundError("evaluation", assessment_id)
        return evaluation

    def record_decision(
        self,
        assessment_id: str,
        decision: str,
        notes: str = "",
        *,
        actor: str,
        company_id: str | None = None,
    ) -> Evaluation:
        value = (decision or "").strip().upper()
        if value not in DECISION_VALUES:
            raise InputValidationError("Invalid decision", field="decision", decision=decision)
        if not actor:
            raise InputValidationError("Decision actor is required", field="actor")
        evaluation = self.result(assessment_id, company_id=company_id)
        if evaluation.admin_decision is not None:
            raise BusinessRuleViolation(
                "already_decided",
                "A decision was already recorded for this evaluation",
                assessment_id=assessment_id,
                decision=evaluation.admin_decision.value,
            )
        assessment = self._repository.get_assessment(assessment_id)
        now = self._now_provider()
        lifecycle.transition(
            assessment,
            AssessmentStatus.DECIDED,
            now=now,
            reason=f"decision {value} by {actor}",
            context={"decision": value},
        )
        evaluation.admin_decision = AdminDecision(value=value, by=actor, at=now, notes=notes or "")
        self._logger.info("evaluation.decided", assessment_id=assessment_id, decision=value, actor=actor)
        return evaluation

    def _apply_fallback(self, assessment: CandidateAssessment, evaluation: Evaluation, exc: BaseException) -> str:
        evaluation.needs_manual_review = True
        evaluation.recommendation = "REVIEW"
        evaluation.recommendation_outcome = OUTCOMES["REVIEW"]
        evaluation.recommendation_reason = "Automatic evaluation failed. Manual review required."
        evaluation.confidence = 0.0
        evaluation.errors = [*evaluation.errors, f"{type(exc).__name__}: {exc}"]
        evaluation.completed_at = self._now_provider()
        if assessment.status == AssessmentStatus.EVALUATING:
            lifecycle.transition(
                assessment,
                AssessmentStatus.EVALUATED,
                now=evaluation.completed_at,
                reason="evaluation failed; fallback applied",
            )
        self._logger.warning("evaluation.fallback_applied", assessment_id=assessment.assessment_id, error=str(exc))
        return FALLBACK_APPLIED

    @staticmethod
    def _check_owner(job: Job, company_id: str | None, assessment_id: str) -> None:
        if company_id is not None and job.company_id != company_id:
            raise AuthorizationError("Access denied", assessment_id=assessment_id)


__all__ = [
    "EvaluationAggregator",
    "EvaluationConfig",
    "EvaluationWorkflow",
    "Recommendation",
    "competency_level",
    "percentage_of",
    "recommend",
    "weighted_percentage",
]
