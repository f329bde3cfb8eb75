from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .job import SectionName
from .session import CaseResult


class ObjectiveAnswer(BaseModel):
    question_id: str
    selected_option_index: int | None = None
    selected_option_text: str = ""
    answered_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")


class SubjectiveAnswer(BaseModel):
    question_id: str
    answer: str = ""
    word_count: int = 0
    answered_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")


class RunRecord(BaseModel):
    code: str
    language: str
    tests_passed: int
    total_tests: int
    ran_at: datetime

    model_config = ConfigDict(extra="forbid", frozen=True)


class ProgrammingAnswer(BaseModel):
    """Latest code for a programming question and its authoritative pass counts."""

    question_id: str
    code: str = ""
    language: str = "python"
    results: list[CaseResult] = Field(default_factory=list)
    tests_passed: int = 0
    total_tests: int = 0
    all_passed: bool = False
    judged_code: str | None = None
    run_history: list[RunRecord] = Field(default_factory=list)
    answered_at: datetime | None = None
    submitted_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")

    @property
    def is_judged(self) -> bool:
        """True when the stored pass counts belong to the current code."""
        return self.judged_code is not None and self.judged_code == self.code


class AssessmentAnswer(BaseModel):
    """All answers of one section of a candidate assessment."""

    assessment_id: str
    section: SectionName
    objective_answers: list[ObjectiveAnswer] = Field(default_factory=list)
    subjective_answers: list[SubjectiveAnswer] = Field(default_factory=list)
    programming_answers: list[ProgrammingAnswer] = Field(default_factory=list)
    section_started_at: datetime | None = None
    section_submitted_at: datetime | None = None
    is_submitted: bool = False

    model_config = ConfigDict(extra="forbid")

    def answered_count(self) -> int:
        return len(self.objective_answers) + len(self.subjective_answers) + len(self.programming_answers)

    def objective(self, question_id: str) -> ObjectiveAnswer | None:
        return next((a for a in self.objective_answers if a.question_id == question_id), None)

    def subjective(self, question_id: str) -> SubjectiveAnswer | None:
        return next((a for a in self.subjective_answers if a.question_id == question_id), None)

    def programming(self, question_id: str) -> ProgrammingAnswer | None:
        return next((a for a in self.programming_answers if a.question_id == question_id), None)
