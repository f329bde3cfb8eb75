"""Judge0 code execution client."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib import parse, request

import structlog

from ..errors import ExternalServiceError, InputValidationError
from .base import TRANSPORT_ERRORS, ExecutionResult

LANGUAGE_IDS: dict[str, int] = {
    "javascript": 63,
    "python": 71,
    "java": 62,
    "cpp": 54,
    "c": 50,
    "csharp": 51,
    "go": 60,
    "ruby": 72,
    "rust": 73,
    "kotlin": 78,
    "swift": 83,
    "typescript": 74,
    "php": 68,
    "sql": 82,
}

# Status ids 1 and 2 are "In Queue" and "Processing".
_PENDING_STATUS_IDS = frozenset({1, 2})

_STATUS_MAP: dict[int, str] = {
    3: "success",
    4: "failed",
    5: "time-limit-exceeded",
    6: "compilation-error",
    **{status_id: "error" for status_id in range(7, 15)},
}


def get_language_id(language: str) -> int:
    language_id = LANGUAGE_IDS.get((language or "").strip().lower())
    if language_id is None:
        raise InputValidationError(f"Unsupported language: {language}", language=language)
    return language_id


def supported_languages() -> list[dict[str, Any]]:
    return [{"name": name, "id": language_id} for name, language_id in LANGUAGE_IDS.items()]


@dataclass
class Judge0Config:
    endpoint: str = "https://judge0-ce.p.rapidapi.com"
    api_key: str | None = None
    host: str | None = "judge0-ce.p.rapidapi.com"
    timeout_seconds: float = 10.0
    poll_interval_seconds: float = 1.0
    max_polls: int = 10
    cpu_time_limit: float = 5.0
    memory_limit_kb: int = 128000


class Judge0Client:
    """Submit-then-poll client for a Judge0 compatible HTTP API."""

    def __init__(
        self,
        *,
        config: Judge0Config | None = None,
        sleep: Callable[[float], None] | None = None,
        opener: Callable[..., Any] | None = None,
    ) -> None:
        self._config = config or Judge0Config()
        self._sleep = sleep or time.sleep
        self._urlopen = opener or request.urlopen
        self._logger = structlog.get_logger(__name__)

    def get_language_id(self, language: str) -> int:
        return get_language_id(language)

    def execute(self, code: str, language_id: int, stdin: str = "") -> ExecutionResult:
        token = self._submit(code, language_id, stdin)
        for _ in range(self._config.max_polls):
            self._sleep(self._config.poll_interval_seconds)
            payload = self._request("GET", f"/submissions/{parse.quote(token)}?base64_encoded=false")
            status = payload.get("status") or {}
            if int(status.get("id") or 0) not in _PENDING_STATUS_IDS:
                return self._format(payload)
        raise ExternalServiceError("judge0", "execution timeout: maximum polling attempts reached")

    def _submit(self, code: str, language_id: int, stdin: str) -> str:
        body = {
            "source_code": code,
            "language_id": language_id,
            "stdin": stdin,
            "cpu_time_limit": self._config.cpu_time_limit,
            "memory_limit": self._config.memory_limit_kb,
        }
        payload = self._request("POST", "/submissions?base64_encoded=false&wait=false", body)
        token = payload.get("token")
        if not token:
            raise ExternalServiceError("judge0", "submission response carried no token")
        return str(token)

    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["X-RapidAPI-Key"] = self._config.api_key
        if self._config.host:
            headers["X-RapidAPI-Host"] = self._config.host
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = request.Request(self._config.endpoint.rstrip("/") + path, data=data, headers=headers, method=method)
        try:
            with self._urlopen(req, timeout=self._config.timeout_seconds) as resp:
                raw = resp.read().decode("utf-8")
        except TRANSPORT_ERRORS as exc:
            self._logger.warning("judge0.request_failed", method=method, path=path, error=str(exc))
            raise ExternalServiceError("judge0", str(exc)) from exc
        try:
            parsed = json.loads(raw) if raw else {}
        except json.JSONDecodeError as exc:
            raise ExternalServiceError("judge0", "response is not valid JSON") from exc
        if not isinstance(parsed, dict):
            raise ExternalServiceError("judge0", "response is not a JSON object")
        return parsed

    @staticmethod
    def _format(payload: dict[str, Any]) -> ExecutionResult:
        status = payload.get("status") or {}
        seconds = payload.get("time")
        return ExecutionResult(
            stdout=payload.get("stdout") or "",
            stderr=payload.get("stderr") or "",
            compile_output=payload.get("compile_output") or "",
            status=_STATUS_MAP.get(int(status.get("id") or 0), "error"),
            status_description=status.get("description") or "",
            time_ms=float(seconds) * 1000.0 if seconds not in (None, "") else None,
            memory=payload.get("memory"),
        )


__all__ = ["Judge0Client", "Judge0Config", "LANGUAGE_IDS", "get_language_id", "supported_languages"]
