"""One-time e-mail verification codes."""

from __future__ import annotations

import hmac
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import pendulum
import structlog

from ..errors import BusinessRuleViolation


@dataclass
class OtpConfig:
    length: int = 6
    ttl_minutes: int = 10
    max_attempts: int = 5


@dataclass(slots=True)
class _IssuedCode:
    code: str
    expires_at: Any
    attempts: int = 0


class OtpStore:
    """Issues and verifies single-use numeric codes keyed by assessment id.

    Issuing a new code replaces the previous one for the same key.
    """

    def __init__(self, *, config: OtpConfig | None = None, now_provider: Any | None = None) -> None:
        self._config = config or OtpConfig()
        self._now_provider = now_provider or (lambda: pendulum.now("UTC"))
        self._codes: dict[str, _IssuedCode] = {}
        self._logger = structlog.get_logger(__name__)

    def issue(self, key: str) -> str:
        code = "".join(secrets.choice("0123456789") for _ in range(self._config.length))
        expires_at = self._now_provider() + timedelta(minutes=self._config.ttl_minutes)
        self._codes[key] = _IssuedCode(code=code, expires_at=expires_at)
        self._logger.info("otp.issued", key=key, expires_at=str(expires_at))
        return code

    def verify(self, key: str, code: str) -> None:
        """Consume the code for ``key`` or raise ``BusinessRuleViolation(otp_invalid)``."""
        issued = self._codes.get(key)
        if issued is None:
            raise BusinessRuleViolation("otp_invalid", "no verification code issued", key=key)
        if self._now_provider() > issued.expires_at:
            del self._codes[key]
            raise BusinessRuleViolation("otp_invalid", "verification code expired", key=key)
        if issued.attempts >= self._config.max_attempts:
            del self._codes[key]
            raise BusinessRuleViolation("otp_invalid", "too many failed attempts", key=key)
        if not hmac.compare_digest(issued.code, str(code).strip()):
            issued.attempts += 1
            self._logger.info("otp.mismatch", key=key, attempts=issued.attempts)
            raise BusinessRuleViolation("otp_invalid", "verification code does not match", key=key)
        del self._codes[key]
        self._logger.info("otp.verified", key=key)


__all__ = ["OtpConfig", "OtpStore"]
