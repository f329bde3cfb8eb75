"""Core assessment engine components."""

from __future__ import annotations

# NOTE: keep imports explicit for export clarity.
from .answers import AnswerRecorder
from .evaluation import EvaluationAggregator, EvaluationConfig, EvaluationWorkflow, recommend
from .judging import CaseJudge, JudgingOrchestrator
from .onboarding import GateConfig, OnboardingGate, Registration
from .otp import OtpConfig, OtpStore
from .scoring import QuestionScorer, ScoringConfig
from .sessions import SessionConfig, SessionContext, SessionManager
from .tasks import FALLBACK_APPLIED, InlineTaskRunner, TaskRunner, ThreadTaskRunner

__all__ = [
    "AnswerRecorder",
    "CaseJudge",
    "EvaluationAggregator",
    "EvaluationConfig",
    "EvaluationWorkflow",
    "FALLBACK_APPLIED",
    "GateConfig",
    "InlineTaskRunner",
    "JudgingOrchestrator",
    "OnboardingGate",
    "OtpConfig",
    "OtpStore",
    "QuestionScorer",
    "Registration",
    "ScoringConfig",
    "SessionConfig",
    "SessionContext",
    "SessionManager",
    "TaskRunner",
    "ThreadTaskRunner",
    "recommend",
]
