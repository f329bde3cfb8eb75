"""Service contracts shared by the adapters and the core."""

from __future__ import annotations

import http.client
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..schemas.ai import CodeReview, ResumeMatch, SubjectiveGrade

# Failures raised while opening or reading an HTTP response. URLError and socket
# timeouts are OSError subclasses.
TRANSPORT_ERRORS: tuple[type[BaseException], ...] = (OSError, http.client.HTTPException, UnicodeDecodeError)


@dataclass(slots=True)
class ExecutionResult:
    """Normalized output of one code execution."""

    stdout: str = ""
    stderr: str = ""
    compile_output: str = ""
    status: str = "error"
    status_description: str = ""
    time_ms: float | None = None
    memory: int | None = None


@runtime_checkable
class ExecutionService(Protocol):
    """Code execution capability."""

    def execute(self, code: str, language_id: int, stdin: str = "") -> ExecutionResult:
        """Run ``code`` with ``stdin`` and return its output."""

    def get_language_id(self, language: str) -> int:
        """Map a language name to the service's language id."""


@runtime_checkable
class AIScoringService(Protocol):
    """Structured AI judgments.

    Implementations raise ``ExternalServiceError`` when the service is
    unreachable or its response cannot be parsed into the return type.
    """

    def match(self, resume_text: str, requirements: dict[str, Any]) -> ResumeMatch:
        """Score a resume against job requirements."""

    def grade(
        self,
        *,
        question: str,
        expected_answer: str,
        rubric: str,
        answer: str,
        max_score: float,
    ) -> SubjectiveGrade:
        """Grade a free-text answer on a 0..max_score scale."""

    def review(self, *, question: str, code: str, language: str) -> CodeReview:
        """Rate code quality and approach on a 0..10 scale."""


@runtime_checkable
class Notifier(Protocol):
    def send(self, *, recipient: str, subject: str, body: str) -> None:
        """Deliver one message; raise on failure."""


