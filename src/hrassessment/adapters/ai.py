"""HTTP client for the AI scoring service."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, TypeVar
from urllib import request

import structlog
from pydantic import BaseModel, ValidationError

from ..errors import ExternalServiceError
from ..schemas.ai import CodeReview, ResumeMatch, SubjectiveGrade
from .base import TRANSPORT_ERRORS

ModelT = TypeVar("ModelT", bound=BaseModel)

RESUME_CHAR_LIMIT = 3000

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_json_content(content: str) -> dict[str, Any]:
    """Parse a JSON object from model output, tolerating Markdown code fences."""
    cleaned = _FENCE.sub("", (content or "").strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExternalServiceError("ai", "invalid JSON response") from exc
    if not isinstance(data, dict):
        raise ExternalServiceError("ai", "response is not a JSON object")
    return data


@dataclass
class AIClientConfig:
    endpoint: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 30.0


class HTTPAIScoringClient:
    """Posts a prompt to a chat-completion style endpoint and validates the JSON reply.

    The endpoint receives ``{"prompt": ..., "response_format": "json"}`` and
    must answer with either the judgment object itself or
    ``{"content": "<json text>"}``.
    """

    def __init__(self, *, config: AIClientConfig | None = None, opener: Callable[..., Any] | None = None) -> None:
        self._config = config or AIClientConfig()
        self._urlopen = opener or request.urlopen
        self._logger = structlog.get_logger(__name__)

    def match(self, resume_text: str, requirements: dict[str, Any]) -> ResumeMatch:
        prompt = (
            "Compare the resume with the job requirements. Reply with JSON containing "
            "match_score (0-100), skill_matches [{skill, matched, confidence}], experience_match, "
            "qualification_match, is_fake, fake_reasons and overall_analysis.\n\n"
            f"Job requirements:\n{json.dumps(requirements, ensure_ascii=False)}\n\n"
            f"Resume:\n{resume_text[:RESUME_CHAR_LIMIT]}"
        )
        return self._ask(prompt, ResumeMatch)

    def grade(
        self,
        *,
        question: str,
        expected_answer: str,
        rubric: str,
        answer: str,
        max_score: float,
    ) -> SubjectiveGrade:
        prompt = (
            f"Grade the candidate answer from 0 to {max_score:g}. Reply with JSON containing score, "
            "feedback, key_points, improvements and rubric_feedback.\n\n"
            f"Question:\n{question}\n\nExpected key points:\n{expected_answer}\n\n"
            f"Rubric:\n{rubric}\n\nCandidate answer:\n{answer}"
        )
        return self._ask(prompt, SubjectiveGrade)

    def review(self, *, question: str, code: str, language: str) -> CodeReview:
        prompt = (
            "Review the solution. Reply with JSON containing quality_score (0-10), quality_explanation, "
            "approach_score (0-10), your_approach, time_complexity and overall_comments.\n\n"
            f"Problem:\n{question}\n\nLanguage: {language}\n\nCode:\n{code}"
        )
        return self._ask(prompt, CodeReview)

    def _ask(self, prompt: str, model: type[ModelT]) -> ModelT:
        if not self._config.endpoint:
            raise ExternalServiceError("ai", "no endpoint configured")
        data = json.dumps({"prompt": prompt, "response_format": "json"}, ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        req = request.Request(self._config.endpoint, data=data, headers=headers, method="POST")
        try:
            with self._urlopen(req, timeout=self._config.timeout_seconds) as resp:
                body = resp.read().decode("utf-8")
        except TRANSPORT_ERRORS as exc:
            self._logger.warning("ai.request_failed", error=str(exc))
            raise ExternalServiceError("ai", str(exc)) from exc

        payload = parse_json_content(body)
        if isinstance(payload.get("content"), str):
            payload = parse_json_content(payload["content"])
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            self._logger.warning("ai.invalid_response", model=model.__name__, errors=exc.error_count())
            raise ExternalServiceError("ai", f"unexpected {model.__name__} shape") from exc


__all__ = ["AIClientConfig", "HTTPAIScoringClient", "RESUME_CHAR_LIMIT", "parse_json_content"]
