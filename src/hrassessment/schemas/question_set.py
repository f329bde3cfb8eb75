from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

CaseType = Literal["visible", "hidden", "edge"]
Difficulty = Literal["easy", "medium", "hard", "expert"]

CASE_TYPE_ORDER: tuple[CaseType, ...] = ("visible", "hidden", "edge")


class JudgeCase(BaseModel):
    """One typed entry of a programming question's test battery."""

    case_type: CaseType
    ordinal: int = Field(ge=1)
    input: str = ""
    expected_output: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)


class ObjectiveOption(BaseModel):
    text: str
    is_correct: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)


class ObjectiveQuestion(BaseModel):
    """Multiple-choice question."""

    question_id: str
    question_text: str
    options: tuple[ObjectiveOption, ...] = ()
    skill: str = ""
    difficulty: Difficulty = "medium"
    points: float = Field(default=1.0, ge=0.0)
    explanation: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)

    def is_correct(self, option_index: int | None) -> bool:
        if option_index is None or option_index < 0 or option_index >= len(self.options):
            return False
        return self.options[option_index].is_correct


class SubjectiveQuestion(BaseModel):
    """Open-ended question graded against a rubric."""

    question_id: str
    question_text: str
    expected_answer: str = ""
    rubric: str = ""
    skill: str = ""
    difficulty: Difficulty = "medium"
    points: float = Field(default=10.0, ge=0.0)
    max_words: int = 500

    model_config = ConfigDict(extra="forbid", frozen=True)


class ProgrammingQuestion(BaseModel):
    """Coding question with its visible/hidden/edge battery."""

    question_id: str
    title: str = ""
    question_text: str
    skill: str = ""
    difficulty: Difficulty = "medium"
    points: float = Field(default=20.0, ge=0.0)
    estimated_time_minutes: float = Field(default=30.0, gt=0.0)
    allowed_languages: tuple[str, ...] = ()
    test_cases: tuple[JudgeCase, ...] = ()
    how_to_approach: str = ""
    optimal_solution: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)

    def cases_of(self, *case_types: CaseType) -> list[JudgeCase]:
        """Return cases of the requested types, ordered by type then ordinal."""
        wanted = case_types or CASE_TYPE_ORDER
        return sorted(
            (case for case in self.test_cases if case.case_type in wanted),
            key=lambda case: (CASE_TYPE_ORDER.index(case.case_type), case.ordinal),
        )


class AssessmentSet(BaseModel):
    """Immutable pool of questions assigned to candidates of one job."""

    set_id: str
    job_id: str
    set_number: int = 1
    objective_questions: tuple[ObjectiveQuestion, ...] = ()
    subjective_questions: tuple[SubjectiveQuestion, ...] = ()
    programming_questions: tuple[ProgrammingQuestion, ...] = ()
    is_active: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def total_points(self) -> float:
        return (
            sum(q.points for q in self.objective_questions)
            + sum(q.points for q in self.subjective_questions)
            + sum(q.points for q in self.programming_questions)
        )

    def question_counts(self) -> dict[str, int]:
        return {
            "objective": len(self.objective_questions),
            "subjective": len(self.subjective_questions),
            "programming": len(self.programming_questions),
        }

    def objective(self, question_id: str) -> ObjectiveQuestion | None:
        return next((q for q in self.objective_questions if q.question_id == question_id), None)

    def subjective(self, question_id: str) -> SubjectiveQuestion | None:
        return next((q for q in self.subjective_questions if q.question_id == question_id), None)

    def programming(self, question_id: str) -> ProgrammingQuestion | None:
        return next((q for q in self.programming_questions if q.question_id == question_id), None)
