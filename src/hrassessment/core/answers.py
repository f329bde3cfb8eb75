"""Answer capture for token-authenticated assessments."""

from __future__ import annotations

from typing import Any, Mapping

import pendulum
import structlog
from pydantic import ValidationError

from ..errors import BusinessRuleViolation, InputValidationError, NotFoundError
from ..repository import InMemoryRepository
from ..schemas.answers import AssessmentAnswer, ObjectiveAnswer, ProgrammingAnswer, RunRecord, SubjectiveAnswer
from ..schemas.assessment import CandidateAssessment
from ..schemas.job import SECTIONS
from ..schemas.question_set import ProgrammingQuestion
from ..schemas.session import CaseResult, PassCounts
from ..schemas.tasks import TaskRecord
from .evaluation import EvaluationWorkflow
from .judging import CaseJudge, build_battery
from .sessions import SessionManager


def word_count(text: str) -> int:
    return len(text.split())


class AnswerRecorder:
    """Saves per-question answers, judges programming answers and submits the assessment."""

    def __init__(
        self,
        *,
        repository: InMemoryRepository,
        session_manager: SessionManager,
        case_judge: CaseJudge,
        evaluations: EvaluationWorkflow,
        now_provider: Any | None = None,
    ) -> None:
        self._repository = repository
        self._sessions = session_manager
        self._judge = case_judge
        self._evaluations = evaluations
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    def save_answer(self, token: str, section: str, question_id: str, answer: Mapping[str, Any]) -> AssessmentAnswer:
        """Upsert one answer of ``section``.

        ``answer`` carries ``selected_option_index`` (objective), ``answer``
        (subjective) or ``code``/``language`` (programming).
        """
        assessment = self._sessions.authenticate(token).assessment
        record = self._open_section(assessment, section)
        assessment_set = self._repository.get_set(assessment.assigned_set_id)
        lookup = {
            "objective": assessment_set.objective,
            "subjective": assessment_set.subjective,
            "programming": assessment_set.programming,
        }[section]
        if lookup(question_id) is None:
            raise NotFoundError("question", question_id)

        now = self._now_provider()
        payload = dict(answer or {})
        try:
            if section == "objective":
                self._upsert(
                    record.objective_answers,
                    ObjectiveAnswer.model_validate({**payload, "question_id": question_id, "answered_at": now}),
                )
            elif section == "subjective":
                text = str(payload.get("answer") or "")
                self._upsert(
                    record.subjective_answers,
                    SubjectiveAnswer(question_id=question_id, answer=text, word_count=word_count(text), answered_at=now),
                )
            else:
                existing = record.programming(question_id)
                item = existing or ProgrammingAnswer(question_id=question_id)
                item.code = str(payload.get("code") or "")
                item.language = str(payload.get("language") or "python").lower()
                item.answered_at = now
                if existing is None:
                    record.programming_answers.append(item)
        except ValidationError as exc:
            raise InputValidationError("Invalid answer", field="answer", errors=exc.errors()) from exc

        self._logger.info(
            "answers.saved",
            assessment_id=assessment.assessment_id,
            section=section,
            question_id=question_id,
            answered=record.answered_count(),
        )
        return record

    def run_programming(self, token: str, question_id: str, code: str, language: str) -> list[CaseResult]:
        """Judge ``code`` against the visible cases only and keep it in the run history."""
        assessment, record, question = self._programming(token, question_id, code, language)
        results = self._judge.judge(code, self._judge.language_id(language), build_battery(question, "run"))
        counts = PassCounts.from_results(results)
        now = self._now_provider()

        item = record.programming(question_id)
        if item is None:
            item = ProgrammingAnswer(question_id=question_id)
            record.programming_answers.append(item)
        item.code = code
        item.language = language.lower()
        item.answered_at = now
        item.run_history.append(
            RunRecord(
                code=code,
                language=language.lower(),
                tests_passed=counts.total_passed,
                total_tests=counts.total,
                ran_at=now,
            )
        )
        self._logger.info(
            "answers.code_run",
            assessment_id=assessment.assessment_id,
            question_id=question_id,
            passed=counts.total_passed,
            total=counts.total,
        )
        return results

    def submit_programming(self, token: str, question_id: str, code: str, language: str) -> ProgrammingAnswer:
        """Judge ``code`` on the full battery and store the authoritative pass counts."""
        assessment, record, question = self._programming(token, question_id, code, language)
        results = self._judge.judge(code, self._judge.language_id(language), build_battery(question, "submit"))
        counts = PassCounts.from_results(results)
        now = self._now_provider()

        item = record.programming(question_id)
        if item is None:
            item = ProgrammingAnswer(question_id=question_id)
            record.programming_answers.append(item)
        item.code = code
        item.language = language.lower()
        item.results = results
        item.tests_passed = counts.total_passed
        item.total_tests = counts.total
        item.all_passed = counts.all_passed
        item.judged_code = code
        item.answered_at = now
        item.submitted_at = now
        self._logger.info(
            "answers.code_submitted",
            assessment_id=assessment.assessment_id,
            question_id=question_id,
            passed=counts.total_passed,
            total=counts.total,
        )
        return item

    def submit_section(self, token: str, section: str) -> str | None:
        """Close ``section`` and return the next enabled section, if any."""
        assessment = self._sessions.authenticate(token).assessment
        record = self._open_section(assessment, section)
        record.is_submitted = True
        record.section_submitted_at = self._now_provider()

        job = self._repository.get_job(assessment.job_id)
        following = SECTIONS[SECTIONS.index(section) + 1 :]
        assessment.current_section = next((name for name in following if job.config.section(name).enabled), None)
        self._logger.info(
            "answers.section_submitted",
            assessment_id=assessment.assessment_id,
            section=section,
            next_section=assessment.current_section,
        )
        return assessment.current_section

    def submit_assessment(self, token: str) -> TaskRecord:
        """Move the assessment to ``submitted`` and dispatch its evaluation."""
        assessment = self._sessions.authenticate(token).assessment
        self._sessions.submit_assessment(assessment)
        self._logger.info(
            "answers.assessment_submitted",
            assessment_id=assessment.assessment_id,
            time_spent_seconds=assessment.time_spent_seconds,
        )
        return self._evaluations.trigger(assessment.assessment_id)

    # helpers

    def _open_section(self, assessment: CandidateAssessment, section: str) -> AssessmentAnswer:
        if section not in SECTIONS:
            raise InputValidationError("Invalid section", field="section", section=section)
        job = self._repository.get_job(assessment.job_id)
        if not job.config.section(section).enabled:
            raise InputValidationError("Section is not enabled for this job", field="section", section=section)
        record = self._repository.answer_for(assessment.assessment_id, section)
        if record.is_submitted:
            raise BusinessRuleViolation(
                "section_submitted",
                f"Section {section!r} was already submitted",
                assessment_id=assessment.assessment_id,
            )
        if record.section_started_at is None:
            record.section_started_at = self._now_provider()
        return record

    def _programming(
        self, token: str, question_id: str, code: str, language: str
    ) -> tuple[CandidateAssessment, AssessmentAnswer, ProgrammingQuestion]:
        if not code or not language:
            raise InputValidationError("Code and language are required", field="code")
        assessment = self._sessions.authenticate(token).assessment
        record = self._open_section(assessment, "programming")
        question = self._repository.get_set(assessment.assigned_set_id).programming(question_id)
        if question is None:
            raise NotFoundError("question", question_id)
        if question.allowed_languages and language.lower() not in question.allowed_languages:
            raise InputValidationError(f"Language {language!r} is not allowed for this question", field="language")
        return assessment, record, question

    @staticmethod
    def _upsert(items: list, answer: Any) -> None:
        for index, existing in enumerate(items):
            if existing.question_id == answer.question_id:
                items[index] = answer
                return
        items.append(answer)


__all__ = ["AnswerRecorder", "word_count"]
