from __future__ import annotations

from datetime import datetime
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

CompetencyLevel = Literal["beginner", "intermediate", "proficient", "expert"]
Recommendation = Literal["PASS", "REVIEW", "FAIL"]
RecommendationOutcome = Literal["pass", "hold", "fail"]
DecisionValue = Literal["PASS", "FAIL", "HOLD"]

DECISION_VALUES: tuple[str, ...] = ("PASS", "FAIL", "HOLD")


class ObjectiveDetail(BaseModel):
    question_id: str
    is_correct: bool
    points: float

    model_config = ConfigDict(extra="forbid")


class SubjectiveDetail(BaseModel):
    question_id: str
    ai_score: float
    max_score: float
    feedback: str = ""
    key_points: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    rubric_feedback: str = ""
    needs_manual_review: bool = False

    model_config = ConfigDict(extra="forbid")


class ProgrammingDetail(BaseModel):
    question_id: str
    tests_passed: int
    total_tests: int
    score: float
    max_score: float
    feedback: str = ""
    needs_manual_review: bool = False

    model_config = ConfigDict(extra="forbid")


SectionDetail = Union[ObjectiveDetail, SubjectiveDetail, ProgrammingDetail]


class SectionResult(BaseModel):
    score: float = 0.0
    max_score: float = 0.0
    percentage: float = 0.0
    questions_attempted: int = 0
    total_questions: int = 0
    details: list[SectionDetail] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class SectionScores(BaseModel):
    objective: SectionResult = Field(default_factory=SectionResult)
    subjective: SectionResult = Field(default_factory=SectionResult)
    programming: SectionResult = Field(default_factory=SectionResult)

    model_config = ConfigDict(extra="forbid")

    def items(self) -> list[tuple[str, SectionResult]]:
        return [
            ("objective", self.objective),
            ("subjective", self.subjective),
            ("programming", self.programming),
        ]


class SkillScore(BaseModel):
    skill: str
    score: float
    max_score: float
    percentage: float
    competency_level: CompetencyLevel
    questions_attempted: int = 0

    model_config = ConfigDict(extra="forbid")


class AdminDecision(BaseModel):
    value: DecisionValue
    by: str
    at: datetime
    notes: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)


class Evaluation(BaseModel):
    """Scoring result of one candidate assessment. Unique per assessment."""

    evaluation_id: str
    assessment_id: str
    sections: SectionScores = Field(default_factory=SectionScores)
    total_score: float = 0.0
    max_total_score: float = 0.0
    percentage: float = 0.0
    weighted_percentage: float = 0.0
    skill_scores: list[SkillScore] = Field(default_factory=list)
    recommendation: Recommendation = "REVIEW"
    recommendation_outcome: RecommendationOutcome = "hold"
    recommendation_reason: str = ""
    confidence: float = 0.0
    admin_decision: AdminDecision | None = None
    needs_manual_review: bool = False
    errors: list[str] = Field(default_factory=list)
    cycle: int = 1
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(extra="forbid")
