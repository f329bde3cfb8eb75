"""Dependency injection container for the assessment engine."""

from __future__ import annotations

import random

from dependency_injector import containers, providers

from .adapters.ai import AIClientConfig, HTTPAIScoringClient
from .adapters.judge0 import Judge0Client, Judge0Config
from .core import (
    AnswerRecorder,
    CaseJudge,
    EvaluationAggregator,
    EvaluationConfig,
    EvaluationWorkflow,
    GateConfig,
    JudgingOrchestrator,
    OnboardingGate,
    OtpConfig,
    OtpStore,
    QuestionScorer,
    ScoringConfig,
    SessionConfig,
    SessionManager,
    ThreadTaskRunner,
)
from .repository import InMemoryRepository
from .schemas.config import load_config
from .service import AssessmentService

_OTP_KEYS = {"otp_length": "length", "otp_ttl_minutes": "ttl_minutes", "otp_max_attempts": "max_attempts"}


class AssessmentContainer(containers.DeclarativeContainer):
    """Dependency-injector container definition."""

    repository = providers.Singleton(InMemoryRepository)
    rng = providers.Singleton(random.Random)
    task_runner = providers.Singleton(ThreadTaskRunner)
    notifier = providers.Object(None)

    judge0_config = providers.Singleton(Judge0Config)
    ai_config = providers.Singleton(AIClientConfig)
    gate_config = providers.Singleton(GateConfig)
    otp_config = providers.Singleton(OtpConfig)
    session_config = providers.Singleton(SessionConfig)
    scoring_config = providers.Singleton(ScoringConfig)
    evaluation_config = providers.Singleton(EvaluationConfig)

    execution_service = providers.Singleton(Judge0Client, config=judge0_config)
    ai_service = providers.Singleton(HTTPAIScoringClient, config=ai_config)
    case_judge = providers.Singleton(CaseJudge, execution_service)

    otp_store = providers.Singleton(OtpStore, config=otp_config)

    gate = providers.Singleton(
        OnboardingGate,
        repository=repository,
        ai_service=ai_service,
        task_runner=task_runner,
        otp_store=otp_store,
        config=gate_config,
    )

    session_manager = providers.Singleton(
        SessionManager,
        repository=repository,
        rng=rng,
        config=session_config,
    )

    scorer = providers.Singleton(QuestionScorer, ai_service=ai_service, config=scoring_config)

    judge = providers.Singleton(
        JudgingOrchestrator,
        repository=repository,
        execution_service=execution_service,
        session_manager=session_manager,
        scorer=scorer,
        task_runner=task_runner,
    )

    aggregator = providers.Singleton(
        EvaluationAggregator,
        ai_service=ai_service,
        case_judge=case_judge,
        config=evaluation_config,
    )

    evaluations = providers.Singleton(
        EvaluationWorkflow,
        repository=repository,
        aggregator=aggregator,
        task_runner=task_runner,
    )

    answers = providers.Singleton(
        AnswerRecorder,
        repository=repository,
        session_manager=session_manager,
        case_judge=case_judge,
        evaluations=evaluations,
    )

    service = providers.Factory(
        AssessmentService,
        repository=repository,
        gate=gate,
        sessions=session_manager,
        judge=judge,
        answers=answers,
        evaluations=evaluations,
        notifier=notifier,
    )


def create_container(*, settings: dict | None = None) -> AssessmentContainer:
    """Instantiate container with optional overrides.

    ``settings`` follows the ``AppConfig`` layout; only sections present in it
    replace the default component configs.
    """

    container = AssessmentContainer()

    if not settings:
        return container

    overrides = load_config(settings).to_settings()

    if "gate" in overrides:
        gate_settings = dict(overrides["gate"])
        otp_settings = {_OTP_KEYS[key]: gate_settings.pop(key) for key in list(gate_settings) if key in _OTP_KEYS}
        if gate_settings:
            container.gate_config.override(providers.Singleton(GateConfig, **gate_settings))
        if otp_settings:
            container.otp_config.override(providers.Singleton(OtpConfig, **otp_settings))

    if "session" in overrides:
        container.session_config.override(providers.Singleton(SessionConfig, **overrides["session"]))

    if "judge" in overrides:
        container.judge0_config.override(providers.Singleton(Judge0Config, **overrides["judge"]))

    if "ai" in overrides:
        container.ai_config.override(providers.Singleton(AIClientConfig, **overrides["ai"]))

    if "scoring" in overrides:
        container.scoring_config.override(providers.Singleton(ScoringConfig, **overrides["scoring"]))

    if "evaluation" in overrides:
        container.evaluation_config.override(providers.Singleton(EvaluationConfig, **overrides["evaluation"]))

    if "seed" in overrides:
        container.rng.override(providers.Singleton(random.Random, overrides["seed"]))

    return container
