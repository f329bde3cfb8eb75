"""Exception taxonomy shared by every assessment component."""

from __future__ import annotations

from typing import Any


class AssessmentError(Exception):
    """Base class for all errors raised by the assessment engine."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InputValidationError(AssessmentError):
    """Malformed request data. Raised before any state change."""


class NotFoundError(AssessmentError):
    """Unknown identifier."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier!r}", kind=kind, identifier=identifier)
        self.kind = kind
        self.identifier = identifier


class AuthorizationError(AssessmentError):
    """The caller does not own the entity it is acting on."""


class BusinessRuleViolation(AssessmentError):
    """A well-formed request that the current state does not allow."""

    def __init__(self, code: str, message: str, **details: Any) -> None:
        super().__init__(message, **details)
        self.code = code

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.code}: {self.message}"


class InvalidTransitionError(BusinessRuleViolation):
    """Lifecycle transition rejected by the state graph or its guard."""

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        message = f"cannot move from {current!r} to {target!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__("invalid_transition", message, current=current, target=target, reason=reason)
        self.current = current
        self.target = target
        self.reason = reason


class ExternalServiceError(AssessmentError):
    """Execution or AI service unreachable, or its output could not be parsed."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}", service=service)
        self.service = service


__all__ = [
    "AssessmentError",
    "AuthorizationError",
    "BusinessRuleViolation",
    "ExternalServiceError",
    "InputValidationError",
    "InvalidTransitionError",
    "NotFoundError",
]
