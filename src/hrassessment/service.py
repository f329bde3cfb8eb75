"""Assessment service facade and JSON loaders used by the CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

import pendulum
import structlog
from pydantic import BaseModel, ValidationError

from .adapters.base import Notifier
from .core import (
    AnswerRecorder,
    EvaluationAggregator,
    EvaluationWorkflow,
    JudgingOrchestrator,
    OnboardingGate,
    Registration,
    SessionManager,
)
from .errors import AssessmentError, BusinessRuleViolation, InputValidationError
from .repository import InMemoryRepository
from .schemas import (
    AssessmentAnswer,
    AssessmentSet,
    AssessmentStatus,
    Attempt,
    CandidateAssessment,
    CaseResult,
    CommunicationEntry,
    Evaluation,
    Job,
    ProgrammingAnswer,
    ProgrammingQuestion,
    Session,
    TaskRecord,
)


class AssessmentService:
    """Single entry point for every assessment operation.

    Delegates to the onboarding gate, session manager, judge, answer recorder
    and evaluation workflow, all sharing one repository.
    """

    def __init__(
        self,
        *,
        repository: InMemoryRepository,
        gate: OnboardingGate,
        sessions: SessionManager,
        judge: JudgingOrchestrator,
        answers: AnswerRecorder,
        evaluations: EvaluationWorkflow,
        notifier: Notifier | None = None,
        now_provider: Any | None = None,
    ) -> None:
        self.repository = repository
        self._gate = gate
        self._sessions = sessions
        self._judge = judge
        self._answers = answers
        self._evaluations = evaluations
        self._notifier = notifier
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._logger = structlog.get_logger(__name__)
        self._sessions.set_auto_submit_handler(lambda assessment: self._evaluations.trigger(assessment.assessment_id))

    # setup

    def add_job(self, job: Job | Mapping[str, Any]) -> Job:
        return self.repository.add_job(_parse(Job, job))

    def add_set(self, assessment_set: AssessmentSet | Mapping[str, Any]) -> AssessmentSet:
        return self.repository.add_set(_parse(AssessmentSet, assessment_set))

    def add_pool_questions(self, questions: Iterable[ProgrammingQuestion | Mapping[str, Any]]) -> None:
        self.repository.add_pool_questions(_parse(ProgrammingQuestion, item) for item in questions)

    # onboarding

    def register(self, link: str, email: str, name: str) -> Registration:
        return self._gate.register(link, email, name)

    def resend_otp(self, assessment_id: str) -> str:
        return self._gate.resend_otp(assessment_id)

    def verify_email(self, assessment_id: str, otp: str) -> CandidateAssessment:
        return self._gate.verify_email(assessment_id, otp)

    def capture_photo(self, assessment_id: str, photo_data: bytes | str) -> CandidateAssessment:
        return self._gate.capture_photo(assessment_id, photo_data)

    def accept_consent(self, assessment_id: str) -> CandidateAssessment:
        return self._gate.accept_consent(assessment_id)

    def upload_resume(
        self, assessment_id: str, *, text: str | None = None, pdf_path: str | Path | None = None
    ) -> TaskRecord:
        return self._gate.upload_resume(assessment_id, text=text, pdf_path=pdf_path)

    def get_assessment(self, assessment_id: str) -> CandidateAssessment:
        return self.repository.get_assessment(assessment_id)

    # token-authenticated assessment

    def start(self, assessment_id: str) -> str:
        return self._sessions.start(assessment_id)

    def heartbeat(self, token: str) -> int:
        return self._sessions.heartbeat(token)

    def log_proctoring_event(self, token: str, event_type: str) -> str:
        return self._sessions.log_proctoring_event(token, event_type)

    def report_assessment_violation(self, token: str) -> CandidateAssessment:
        return self._sessions.report_assessment_violation(token)

    def save_answer(self, token: str, section: str, question_id: str, answer: Mapping[str, Any]) -> AssessmentAnswer:
        return self._answers.save_answer(token, section, question_id, answer)

    def run_programming(self, token: str, question_id: str, code: str, language: str) -> list[CaseResult]:
        return self._answers.run_programming(token, question_id, code, language)

    def submit_programming(self, token: str, question_id: str, code: str, language: str) -> ProgrammingAnswer:
        return self._answers.submit_programming(token, question_id, code, language)

    def submit_section(self, token: str, section: str) -> str | None:
        return self._answers.submit_section(token, section)

    def submit_assessment(self, token: str) -> TaskRecord:
        return self._answers.submit_assessment(token)

    # online-assessment sessions

    def start_session(self, user_id: str, *, count: int = 2, difficulty: str | None = None, **extra: Any) -> Session:
        return self._sessions.start_session(user_id, count=count, difficulty=difficulty, **extra)

    def run(self, session_id: str, question_id: str, code: str, language: str, *, user_id: str | None = None) -> Attempt:
        return self._judge.run(session_id, question_id, code, language, user_id=user_id)

    def submit(
        self, session_id: str, question_id: str, code: str, language: str, *, user_id: str | None = None
    ) -> Attempt:
        return self._judge.submit(session_id, question_id, code, language, user_id=user_id)

    def attempts(self, session_id: str, question_id: str, *, user_id: str | None = None) -> list[Attempt]:
        return self._judge.attempts(session_id, question_id, user_id=user_id)

    def complete(self, session_id: str, *, user_id: str | None = None) -> float:
        return self._judge.complete(session_id, user_id=user_id).overall_score

    def complete_in_background(self, session_id: str, *, user_id: str | None = None) -> TaskRecord:
        return self._judge.complete_in_background(session_id, user_id=user_id)

    def report_violation(self, session_id: str, *, user_id: str | None = None) -> Session:
        return self._sessions.report_violation(session_id, user_id)

    # evaluation

    def trigger_evaluation(
        self, assessment_id: str, *, company_id: str | None = None, reevaluate: bool = False
    ) -> TaskRecord:
        return self._evaluations.trigger(assessment_id, company_id=company_id, reevaluate=reevaluate)

    def evaluation_result(self, assessment_id: str, *, company_id: str | None = None) -> Evaluation:
        return self._evaluations.result(assessment_id, company_id=company_id)

    def record_decision(
        self,
        assessment_id: str,
        decision: str,
        notes: str = "",
        *,
        actor: str,
        company_id: str | None = None,
    ) -> Evaluation:
        return self._evaluations.record_decision(assessment_id, decision, notes, actor=actor, company_id=company_id)

    def notify_results(
        self,
        assessment_ids: Iterable[str],
        notifier: Notifier | None = None,
        *,
        sent_by: str | None = None,
    ) -> dict[str, str | None]:
        """Send one result message per decided assessment.

        Returns ``{assessment_id: None}`` for delivered messages and the error
        text for failures; a failure never stops the remaining ids.
        """
        notifier = notifier or self._notifier
        if notifier is None:
            raise InputValidationError("A notifier is required", field="notifier")
        outcome: dict[str, str | None] = {}
        for assessment_id in assessment_ids:
            try:
                self._notify_one(assessment_id, notifier, sent_by)
            except AssessmentError as exc:
                outcome[assessment_id] = str(exc)
                self._logger.warning("service.notify_failed", assessment_id=assessment_id, error=str(exc))
            else:
                outcome[assessment_id] = None
        return outcome

    def _notify_one(self, assessment_id: str, notifier: Notifier, sent_by: str | None) -> None:
        assessment = self.repository.get_assessment(assessment_id)
        if assessment.status != AssessmentStatus.DECIDED:
            raise BusinessRuleViolation(
                "invalid_transition",
                "Only decided assessments can be notified",
                assessment_id=assessment_id,
                status=assessment.status.value,
            )
        evaluation = self._evaluations.result(assessment_id)
        job = self.repository.get_job(assessment.job_id)
        subject, body = result_message(assessment, job, evaluation)
        notifier.send(recipient=assessment.candidate_email, subject=subject, body=body)
        assessment.communication_log.append(
            CommunicationEntry(type="result", sent_at=self._now_provider(), subject=subject, sent_by=sent_by)
        )
        self._logger.info("service.result_notified", assessment_id=assessment_id)


def result_message(assessment: CandidateAssessment, job: Job, evaluation: Evaluation) -> tuple[str, str]:
    decision = evaluation.admin_decision.value if evaluation.admin_decision else "HOLD"
    subject = f"Your assessment result for {job.title or job.job_id}"
    lines = {
        "PASS": "We are happy to let you know that you have cleared the assessment.",
        "FAIL": "Thank you for your time. We will not be moving forward with your application.",
        "HOLD": "Your assessment is still under review. We will get back to you soon.",
    }
    body = f"Hi {assessment.candidate_name},\n\n{lines[decision]}\n"
    return subject, body


def _parse(model: type[BaseModel], value: Any) -> Any:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise InputValidationError(f"Invalid {model.__name__}", errors=exc.errors()) from exc


# offline evaluation


def load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        try:
            return json.load(handle)
        except json.JSONDecodeError as exc:
            raise InputValidationError(f"Invalid JSON in {path}: {exc}") from exc


def load_answers(raw: Any, assessment_id: str) -> dict[str, AssessmentAnswer]:
    """Parse an answer sheet: a list of section records or a mapping keyed by section."""
    if isinstance(raw, Mapping):
        items = [{"section": section, **(body or {})} for section, body in raw.items()]
    elif isinstance(raw, list):
        items = list(raw)
    else:
        raise InputValidationError("Answer sheet must be a list or an object", field="answers")
    answers: dict[str, AssessmentAnswer] = {}
    for item in items:
        record = _parse(AssessmentAnswer, {"assessment_id": assessment_id, **item})
        answers[record.section] = record
    return answers


def evaluate_offline(
    aggregator: EvaluationAggregator,
    *,
    job: Job,
    assessment_set: AssessmentSet,
    answers: Mapping[str, AssessmentAnswer],
    assessment_id: str = "offline",
) -> Evaluation:
    now = pendulum.now("UTC")
    evaluation = Evaluation(evaluation_id=assessment_id, assessment_id=assessment_id, started_at=now)
    aggregator.evaluate(evaluation=evaluation, job=job, assessment_set=assessment_set, answers=answers)
    evaluation.completed_at = pendulum.now("UTC")
    return evaluation


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


__all__ = [
    "AssessmentService",
    "evaluate_offline",
    "load_answers",
    "load_json",
    "result_message",
    "write_json",
]
