"""External service adapters: code execution, AI scoring and notification."""

from __future__ import annotations

from .ai import HTTPAIScoringClient
from .base import AIScoringService, ExecutionResult, ExecutionService, Notifier
from .judge0 import LANGUAGE_IDS, Judge0Client, supported_languages

__all__ = [
    "AIScoringService",
    "ExecutionResult",
    "ExecutionService",
    "HTTPAIScoringClient",
    "Judge0Client",
    "LANGUAGE_IDS",
    "Notifier",
    "supported_languages",
]
