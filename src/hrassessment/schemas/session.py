from __future__ import annotations

from datetime import datetime
from typing import Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field

from .question_set import CaseType, ProgrammingQuestion
from .tasks import TaskRecord

JudgeMode = Literal["run", "submit"]
SessionStatus = Literal["in_progress", "completed", "abandoned"]


class CaseResult(BaseModel):
    """Outcome of executing one battery case."""

    case_type: CaseType
    ordinal: int
    passed: bool
    expected_output: str = ""
    actual_output: str = ""
    time_ms: float | None = None
    memory: int | None = None
    error: str | None = None
    status: str = "error"

    model_config = ConfigDict(extra="forbid", frozen=True)


class PassCounts(BaseModel):
    """Pass counts of a battery run, split by case type."""

    visible: int = 0
    hidden: int = 0
    edge: int = 0
    total_passed: int = 0
    total: int = 0

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def all_passed(self) -> bool:
        return self.total > 0 and self.total_passed == self.total

    @classmethod
    def from_results(cls, results: Iterable[CaseResult]) -> "PassCounts":
        items = list(results)
        passed = [item for item in items if item.passed]
        return cls(
            visible=sum(1 for item in passed if item.case_type == "visible"),
            hidden=sum(1 for item in passed if item.case_type == "hidden"),
            edge=sum(1 for item in passed if item.case_type == "edge"),
            total_passed=len(passed),
            total=len(items),
        )


class Attempt(BaseModel):
    """Immutable record of one code run or submission."""

    attempt_id: str
    session_id: str
    question_id: str
    user_id: str
    code: str
    language: str
    language_id: int
    mode: JudgeMode
    results: tuple[CaseResult, ...] = ()
    counts: PassCounts = Field(default_factory=PassCounts)
    attempt_number: int = Field(ge=1)
    is_final_submission: bool = False
    created_at: datetime
    rescored_at: datetime | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def status(self) -> str:
        return "success" if self.counts.all_passed else "failed"


class QuestionScores(BaseModel):
    correctness: float = 0.0
    performance: float = 0.0
    code_quality: float = 0.0
    edge_cases: float = 0.0
    approach: float = 0.0
    final_score: float = 0.0
    needs_manual_review: bool = False

    model_config = ConfigDict(extra="forbid")


class QuestionAnalysis(BaseModel):
    how_to_approach: str = ""
    your_approach: str = ""
    optimal_solution: str = ""
    your_solution: str = ""
    overall_comments: str = ""
    time_complexity: str = "N/A"

    model_config = ConfigDict(extra="forbid")


class SessionQuestion(BaseModel):
    """A question inside an online-assessment session plus its attempt pointer."""

    question: ProgrammingQuestion
    attempt_count: int = 0
    latest_attempt_id: str | None = None
    scores: QuestionScores | None = None
    analysis: QuestionAnalysis | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def question_id(self) -> str:
        return self.question.question_id


class Session(BaseModel):
    """Online-assessment session with a fixed, ordered list of questions."""

    session_id: str
    user_id: str
    company: str = ""
    role: str = ""
    questions: list[SessionQuestion] = Field(default_factory=list)
    violation_count: int = 0
    is_terminated: bool = False
    status: SessionStatus = "in_progress"
    overall_score: float = 0.0
    normalized_score: float = 0.0
    started_at: datetime
    ended_at: datetime | None = None
    total_duration_minutes: int | None = None
    tasks: list[TaskRecord] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def question(self, question_id: str) -> SessionQuestion | None:
        return next((q for q in self.questions if q.question_id == question_id), None)
