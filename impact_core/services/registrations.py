from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
import hmac
import logging
import threading
from typing import Any

from impact_core.core.clock import Clock, SystemClock
from impact_core.core.errors import (
    AttemptsExceededError,
    CodeMismatchError,
    RegistrationNotFoundError,
)

logger = logging.getLogger(__name__)

OTP_TTL_SECONDS = 600
OTP_MAX_ATTEMPTS = 5


def normalize_identity(identity: str) -> str:
    return identity.strip().lower()


@dataclass(slots=True)
class PendingRegistration:
    identity: str
    code: str = field(repr=False)
    payload: dict[str, Any] = field(repr=False)
    created_at: datetime
    expires_at: datetime
    attempts: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class PendingRegistrationStore:
    """Process-local store of pending registrations keyed by normalized email."""

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        ttl_seconds: int = OTP_TTL_SECONDS,
        max_attempts: int = OTP_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be a positive integer")
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be a positive integer")
        self._clock = clock or SystemClock()
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts
        self._lock = threading.Lock()
        self._records: dict[str, PendingRegistration] = {}

    def put(self, identity: str, code: str, payload: dict[str, Any]) -> PendingRegistration:
        key = normalize_identity(identity)
        now = self._clock.now()
        record = PendingRegistration(
            identity=key,
            code=code,
            payload=dict(payload),
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        with self._lock:
            superseded = key in self._records
            self._records[key] = record
        logger.info("pending registration stored identity=%s superseded=%s", key, superseded)
        return replace(record)

    def get(self, identity: str) -> PendingRegistration | None:
        key = normalize_identity(identity)
        with self._lock:
            record = self._live_record(key)
            return replace(record) if record is not None else None

    def verify(self, identity: str, submitted_code: str) -> dict[str, Any]:
        key = normalize_identity(identity)
        with self._lock:
            record = self._live_record(key)
            if record is None:
                raise RegistrationNotFoundError("verification code expired or not found")
            if record.attempts >= self.max_attempts:
                raise AttemptsExceededError("too many failed attempts")
            if not hmac.compare_digest(record.code.encode("utf-8"), submitted_code.encode("utf-8")):
                record.attempts += 1
                remaining = max(self.max_attempts - record.attempts, 0)
                logger.info("verification code mismatch identity=%s attempts=%s", key, record.attempts)
                raise CodeMismatchError(
                    f"invalid verification code; {remaining} attempts remaining",
                    attempts_remaining=remaining,
                )
            del self._records[key]
        logger.info("pending registration verified identity=%s", key)
        return record.payload

    def discard(self, identity: str) -> bool:
        with self._lock:
            return self._records.pop(normalize_identity(identity), None) is not None

    def reap_expired(self) -> int:
        now = self._clock.now()
        with self._lock:
            expired = [key for key, record in self._records.items() if record.is_expired(now)]
            for key in expired:
                del self._records[key]
        if expired:
            logger.info("reaped expired pending registrations: %s", len(expired))
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def _live_record(self, key: str) -> PendingRegistration | None:
        record = self._records.get(key)
        if record is None:
            return None
        if record.is_expired(self._clock.now()):
            del self._records[key]
            return None
        return record
