"""Test battery construction, per-case execution and attempt bookkeeping."""

from __future__ import annotations

import uuid
from typing import Any, Sequence

import pendulum
import structlog

from ..adapters.base import ExecutionService
from ..errors import ExternalServiceError, InputValidationError, NotFoundError
from ..repository import InMemoryRepository
from ..schemas.question_set import JudgeCase, ProgrammingQuestion
from ..schemas.session import Attempt, CaseResult, JudgeMode, PassCounts, Session, SessionQuestion
from ..schemas.tasks import TaskRecord
from .scoring import QuestionScorer
from .sessions import SessionManager
from .tasks import InlineTaskRunner, TaskRunner


def normalize_output(text: str | None) -> str:
    """Unify line endings and strip surrounding whitespace of the text and each line."""
    unified = (text or "").replace("\r\n", "\n").replace("\r", "\n").strip()
    return "\n".join(line.strip() for line in unified.split("\n"))


def outputs_match(actual: str | None, expected: str | None) -> bool:
    return normalize_output(actual) == normalize_output(expected)


def build_battery(question: ProgrammingQuestion, mode: JudgeMode) -> list[JudgeCase]:
    """Visible cases for ``run``; visible, hidden and edge cases for ``submit``."""
    if mode == "run":
        return question.cases_of("visible")
    return question.cases_of("visible", "hidden", "edge")


class CaseJudge:
    """Executes a battery case by case against the execution service."""

    def __init__(self, execution_service: ExecutionService) -> None:
        self._execution = execution_service
        self._logger = structlog.get_logger(__name__)

    def language_id(self, language: str) -> int:
        return self._execution.get_language_id(language)

    def judge(self, code: str, language_id: int, cases: Sequence[JudgeCase]) -> list[CaseResult]:
        results: list[CaseResult] = []
        for case in cases:
            try:
                outcome = self._execution.execute(code, language_id, case.input)
            except ExternalServiceError as exc:
                self._logger.warning(
                    "judge.case_failed",
                    case_type=case.case_type,
                    ordinal=case.ordinal,
                    error=str(exc),
                )
                results.append(
                    CaseResult(
                        case_type=case.case_type,
                        ordinal=case.ordinal,
                        passed=False,
                        expected_output=case.expected_output,
                        error=str(exc),
                        status="error",
                    )
                )
                continue
            results.append(
                CaseResult(
                    case_type=case.case_type,
                    ordinal=case.ordinal,
                    passed=outputs_match(outcome.stdout, case.expected_output),
                    expected_output=case.expected_output,
                    actual_output=outcome.stdout,
                    time_ms=outcome.time_ms,
                    memory=outcome.memory,
                    error=outcome.stderr or outcome.compile_output or None,
                    status=outcome.status,
                )
            )
        return results


class JudgingOrchestrator:
    """Runs and submits code inside online-assessment sessions and completes them.

    Every run or submit appends an immutable attempt and moves the question's
    latest-attempt pointer (last write wins). Completion re-judges the latest
    code of every attempted question against the full battery before scoring.
    """

    def __init__(
        self,
        *,
        repository: InMemoryRepository,
        execution_service: ExecutionService,
        session_manager: SessionManager,
        scorer: QuestionScorer,
        task_runner: TaskRunner | None = None,
        now_provider: Any | None = None,
    ) -> None:
        self._repository = repository
        self._judge = CaseJudge(execution_service)
        self._sessions = session_manager
        self._scorer = scorer
        self._tasks = task_runner or InlineTaskRunner()
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)

    @property
    def case_judge(self) -> CaseJudge:
        return self._judge

    def run(self, session_id: str, question_id: str, code: str, language: str, *, user_id: str | None = None) -> Attempt:
        return self._record(session_id, question_id, code, language, mode="run", user_id=user_id)

    def submit(
        self, session_id: str, question_id: str, code: str, language: str, *, user_id: str | None = None
    ) -> Attempt:
        return self._record(session_id, question_id, code, language, mode="submit", user_id=user_id)

    def attempts(self, session_id: str, question_id: str, *, user_id: str | None = None) -> list[Attempt]:
        session = self._sessions.get_session(session_id, user_id)
        self._question(session, question_id)
        return self._repository.attempts(session_id, question_id)

    def complete(self, session_id: str, *, user_id: str | None = None) -> Session:
        """Re-judge every attempted question on its full battery, score it and close the session."""
        session = self._sessions.get_session(session_id, user_id)
        self._sessions.ensure_active(session)

        for item in session.questions:
            if item.latest_attempt_id is None:
                continue
            latest = self._repository.get_attempt(session_id, item.question_id, item.latest_attempt_id)
            if not latest.code:
                continue
            battery = build_battery(item.question, "submit")
            results = self._judge.judge(latest.code, latest.language_id, battery)
            rescored = self._repository.replace_attempt(
                latest.model_copy(
                    update={
                        "results": tuple(results),
                        "counts": PassCounts.from_results(results),
                        "is_final_submission": True,
                        "rescored_at": self._now_provider(),
                    }
                )
            )
            item.scores, item.analysis = self._scorer.score(item.question, rescored)

        session.overall_score, session.normalized_score = self._scorer.overall(session.questions)
        session.status = "completed"
        session.ended_at = self._now_provider()
        session.total_duration_minutes = round((session.ended_at - session.started_at).total_seconds() / 60)
        self._logger.info(
            "judge.session_completed",
            session_id=session_id,
            overall_score=session.overall_score,
            normalized_score=session.normalized_score,
        )
        return session

    def complete_in_background(self, session_id: str, *, user_id: str | None = None) -> TaskRecord:
        session = self._sessions.get_session(session_id, user_id)
        self._sessions.ensure_active(session)
        return self._tasks.submit("session_completion", session, lambda: self.complete(session_id, user_id=user_id))

    def _record(
        self,
        session_id: str,
        question_id: str,
        code: str,
        language: str,
        *,
        mode: JudgeMode,
        user_id: str | None,
    ) -> Attempt:
        if not code or not language:
            raise InputValidationError("Code and language are required", field="code")
        session = self._sessions.get_session(session_id, user_id)
        self._sessions.ensure_active(session)
        item = self._question(session, question_id)
        if item.question.allowed_languages and language.lower() not in item.question.allowed_languages:
            raise InputValidationError(f"Language {language!r} is not allowed for this question", field="language")
        language_id = self._judge.language_id(language)

        results = self._judge.judge(code, language_id, build_battery(item.question, mode))
        attempt = self._repository.append_attempt(
            Attempt(
                attempt_id=uuid.uuid4().hex,
                session_id=session_id,
                question_id=question_id,
                user_id=session.user_id,
                code=code,
                language=language.lower(),
                language_id=language_id,
                mode=mode,
                results=tuple(results),
                counts=PassCounts.from_results(results),
                attempt_number=1,
                is_final_submission=mode == "submit",
                created_at=self._now_provider(),
            )
        )
        item.attempt_count = attempt.attempt_number
        item.latest_attempt_id = attempt.attempt_id
        self._logger.info(
            "judge.attempt_recorded",
            session_id=session_id,
            question_id=question_id,
            mode=mode,
            attempt_number=attempt.attempt_number,
            passed=attempt.counts.total_passed,
            total=attempt.counts.total,
        )
        return attempt

    @staticmethod
    def _question(session: Session, question_id: str) -> SessionQuestion:
        item = session.question(question_id)
        if item is None:
            raise NotFoundError("question", question_id)
        return item


__all__ = [
    "CaseJudge",
    "JudgingOrchestrator",
    "build_battery",
    "normalize_output",
    "outputs_match",
]
