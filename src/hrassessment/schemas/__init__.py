"""Pydantic schema definitions for assessment records."""

from __future__ import annotations

from .ai import CodeReview, ResumeMatch, SubjectiveGrade
from .answers import (
    AssessmentAnswer,
    ObjectiveAnswer,
    ProgrammingAnswer,
    RunRecord,
    SubjectiveAnswer,
)
from .assessment import (
    AssessmentStatus,
    CandidateAssessment,
    CommunicationEntry,
    OnboardingRecord,
    ProctoringStats,
    ResumeRecord,
    SkillMatch,
    StatusChange,
)
from .evaluation import (
    AdminDecision,
    Evaluation,
    ObjectiveDetail,
    ProgrammingDetail,
    SectionResult,
    SectionScores,
    SkillScore,
    SubjectiveDetail,
)
from .job import SECTIONS, Job, JobAssessmentConfig, SectionConfig
from .question_set import (
    AssessmentSet,
    JudgeCase,
    ObjectiveOption,
    ObjectiveQuestion,
    ProgrammingQuestion,
    SubjectiveQuestion,
)
from .session import Attempt, CaseResult, PassCounts, QuestionAnalysis, QuestionScores, Session, SessionQuestion
from .tasks import TaskRecord

__all__ = [
    "AdminDecision",
    "AssessmentAnswer",
    "AssessmentSet",
    "AssessmentStatus",
    "Attempt",
    "CandidateAssessment",
    "CaseResult",
    "CodeReview",
    "CommunicationEntry",
    "Evaluation",
    "Job",
    "JobAssessmentConfig",
    "JudgeCase",
    "ObjectiveAnswer",
    "ObjectiveDetail",
    "ObjectiveOption",
    "ObjectiveQuestion",
    "OnboardingRecord",
    "PassCounts",
    "ProctoringStats",
    "ProgrammingAnswer",
    "ProgrammingDetail",
    "ProgrammingQuestion",
    "QuestionAnalysis",
    "QuestionScores",
    "ResumeMatch",
    "ResumeRecord",
    "RunRecord",
    "SECTIONS",
    "SectionConfig",
    "SectionResult",
    "SectionScores",
    "Session",
    "SessionQuestion",
    "SkillMatch",
    "SkillScore",
    "StatusChange",
    "SubjectiveAnswer",
    "SubjectiveDetail",
    "SubjectiveGrade",
    "TaskRecord",
]
