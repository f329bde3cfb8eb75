from __future__ import annotations

import random
from datetime import timedelta
from typing import Any, Callable

import pendulum
import pytest

from hrassessment.adapters.base import ExecutionResult
from hrassessment.adapters.judge0 import get_language_id
from hrassessment.core import (
    AnswerRecorder,
    CaseJudge,
    EvaluationAggregator,
    EvaluationWorkflow,
    InlineTaskRunner,
    JudgingOrchestrator,
    OnboardingGate,
    OtpStore,
    QuestionScorer,
    SessionManager,
)
from hrassessment.errors import ExternalServiceError
from hrassessment.repository import InMemoryRepository
from hrassessment.schemas import (
    AssessmentSet,
    CodeReview,
    Job,
    JobAssessmentConfig,
    JudgeCase,
    ObjectiveOption,
    ObjectiveQuestion,
    ProgrammingQuestion,
    ResumeMatch,
    SubjectiveGrade,
    SubjectiveQuestion,
)
from hrassessment.service import AssessmentService


class FakeClock:
    def __init__(self) -> None:
        self.now = pendulum.datetime(2026, 3, 2, 9, 0, tz="UTC")

    def __call__(self):
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


def _sum_numbers(stdin: str) -> str:
    return str(sum(int(token) for token in stdin.split()))


class StubExecution:
    """Executes a small set of named programs instead of real code."""

    programs: dict[str, Callable[[str], str]] = {
        "sum_ok": _sum_numbers,
        "sum_wrong": lambda stdin: "0",
        "sum_visible_only": lambda stdin: _sum_numbers(stdin) if stdin.startswith("1 ") else "-1",
    }

    def __init__(self, time_seconds: float = 0.5) -> None:
        self.calls: list[tuple[str, int, str]] = []
        self.fail_inputs: set[str] = set()
        self.time_ms = time_seconds * 1000

    def execute(self, code: str, language_id: int, stdin: str = "") -> ExecutionResult:
        self.calls.append((code, language_id, stdin))
        if stdin in self.fail_inputs or code == "crash":
            raise ExternalServiceError("judge0", "sandbox unavailable")
        program = self.programs.get(code)
        if program is None:
            return ExecutionResult(stderr="NameError", status="error", time_ms=self.time_ms)
        return ExecutionResult(stdout=program(stdin) + "\n", status="success", time_ms=self.time_ms, memory=1024)

    def get_language_id(self, language: str) -> int:
        return get_language_id(language)


class StubAI:
    def __init__(self) -> None:
        self.match_score = 85.0
        self.is_fake = False
        self.grade_score = 8.0
        self.fail_match = False
        self.fail_grade = False
        self.fail_review = False
        self.match_calls: list[tuple[str, dict]] = []
        self.grade_calls: list[dict] = []

    def match(self, resume_text: str, requirements: dict) -> ResumeMatch:
        self.match_calls.append((resume_text, requirements))
        if self.fail_match:
            raise ExternalServiceError("ai", "unparseable match")
        return ResumeMatch(
            match_score=self.match_score,
            is_fake=self.is_fake,
            skill_matches=[{"skill": "python", "matched": True, "confidence": 0.9}],
            overall_analysis="Solid backend profile",
        )

    def grade(self, **kwargs: Any) -> SubjectiveGrade:
        self.grade_calls.append(kwargs)
        if self.fail_grade:
            raise ExternalServiceError("ai", "timeout")
        return SubjectiveGrade(score=self.grade_score, feedback="Good", key_points=["covers indexes"])

    def review(self, **kwargs: Any) -> CodeReview:
        if self.fail_review:
            raise ExternalServiceError("ai", "timeout")
        return CodeReview(quality_score=8, approach_score=7, your_approach="two pointers")


class StubNotifier:
    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent: list[dict] = []

    def send(self, *, recipient: str, subject: str, body: str) -> None:
        if recipient in self.failing:
            raise ExternalServiceError("mail", "mailbox unavailable")
        self.sent.append({"recipient": recipient, "subject": subject, "body": body})


def build_programming_question(question_id: str = "p1", **overrides: Any) -> ProgrammingQuestion:
    data: dict[str, Any] = {
        "question_id": question_id,
        "title": "Sum numbers",
        "question_text": "Print the sum of the numbers on stdin.",
        "skill": "python",
        "difficulty": "medium",
        "points": 20,
        "estimated_time_minutes": 10,
        "test_cases": [
            JudgeCase(case_type="visible", ordinal=1, input="1 2", expected_output="3"),
            JudgeCase(case_type="visible", ordinal=2, input="1 5", expected_output="6"),
            JudgeCase(case_type="hidden", ordinal=1, input="10 20", expected_output="30"),
            JudgeCase(case_type="hidden", ordinal=2, input="7 8", expected_output="15"),
            JudgeCase(case_type="edge", ordinal=1, input="0 0", expected_output="0"),
        ],
        "how_to_approach": "Split and add.",
    }
    data.update(overrides)
    return ProgrammingQuestion(**data)


def build_set(set_id: str = "set-1", job_id: str = "job-1", set_number: int = 1) -> AssessmentSet:
    return AssessmentSet(
        set_id=set_id,
        job_id=job_id,
        set_number=set_number,
        objective_questions=(
            ObjectiveQuestion(
                question_id="o1",
                question_text="Which keyword defines a function?",
                options=(ObjectiveOption(text="func"), ObjectiveOption(text="def", is_correct=True)),
                skill="python",
            ),
            ObjectiveQuestion(
                question_id="o2",
                question_text="Which clause filters groups?",
                options=(ObjectiveOption(text="HAVING", is_correct=True), ObjectiveOption(text="WHERE")),
                skill="sql",
            ),
        ),
        subjective_questions=(
            SubjectiveQuestion(
                question_id="s1",
                question_text="Explain database indexes.",
                expected_answer="B-tree, lookup speed, write cost",
            ),
        ),
        programming_questions=(build_programming_question(),),
    )


def build_job(**config: Any) -> Job:
    settings = {"resume_match_threshold": 70, **config}
    return Job(
        job_id="job-1",
        company_id="acme",
        title="Backend Engineer",
        assessment_link="link-1",
        required_skills=["python", "sql"],
        config=JobAssessmentConfig(**settings),
    )


class Harness:
    """Components wired by hand around one repository and one fake clock."""

    def __init__(self, *, job: Job | None = None, seed: int = 7) -> None:
        self.clock = FakeClock()
        self.execution = StubExecution()
        self.ai = StubAI()
        self.notifier = StubNotifier()
        self.repository = InMemoryRepository()
        self.tasks = InlineTaskRunner(now_provider=self.clock)
        self.otp = OtpStore(now_provider=self.clock)
        self.gate = OnboardingGate(
            repository=self.repository,
            ai_service=self.ai,
            task_runner=self.tasks,
            otp_store=self.otp,
            now_provider=self.clock,
        )
        self.sessions = SessionManager(repository=self.repository, rng=random.Random(seed), now_provider=self.clock)
        self.case_judge = CaseJudge(self.execution)
        self.scorer = QuestionScorer(ai_service=self.ai)
        self.judge = JudgingOrchestrator(
            repository=self.repository,
            execution_service=self.execution,
            session_manager=self.sessions,
            scorer=self.scorer,
            task_runner=self.tasks,
            now_provider=self.clock,
        )
        self.aggregator = EvaluationAggregator(ai_service=self.ai, case_judge=self.case_judge)
        self.evaluations = EvaluationWorkflow(
            repository=self.repository,
            aggregator=self.aggregator,
            task_runner=self.tasks,
            now_provider=self.clock,
        )
        self.answers = AnswerRecorder(
            repository=self.repository,
            session_manager=self.sessions,
            case_judge=self.case_judge,
            evaluations=self.evaluations,
            now_provider=self.clock,
        )
        self.service = AssessmentService(
            repository=self.repository,
            gate=self.gate,
            sessions=self.sessions,
            judge=self.judge,
            answers=self.answers,
            evaluations=self.evaluations,
            notifier=self.notifier,
            now_provider=self.clock,
        )
        self.service.add_job(job or build_job())
        self.service.add_set(build_set())

    def register(self, email: str = "ada@example.com", name: str = "Ada"):
        return self.service.register("link-1", email, name)

    def onboard(self, email: str = "ada@example.com") -> str:
        """Register and complete every onboarding step; return the assessment id."""
        registration = self.register(email)
        assessment_id = registration.assessment.assessment_id
        self.service.verify_email(assessment_id, registration.otp)
        self.service.capture_photo(assessment_id, b"jpeg-bytes")
        self.service.accept_consent(assessment_id)
        self.service.upload_resume(assessment_id, text="Python developer, 5 years of SQL and APIs.")
        return assessment_id

    def started(self, email: str = "ada@example.com") -> tuple[str, str]:
        assessment_id = self.onboard(email)
        return assessment_id, self.service.start(assessment_id)


@pytest.fixture
def harness() -> Harness:
    return Harness()


@pytest.fixture
def make_harness() -> Callable[..., Harness]:
    return Harness


@pytest.fixture
def job_factory() -> Callable[..., Job]:
    return build_job


@pytest.fixture
def set_factory() -> Callable[..., AssessmentSet]:
    return build_set


@pytest.fixture
def question_factory() -> Callable[..., ProgrammingQuestion]:
    return build_programming_question


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub_execution() -> StubExecution:
    return StubExecution()


@pytest.fixture
def stub_ai() -> StubAI:
    return StubAI()
