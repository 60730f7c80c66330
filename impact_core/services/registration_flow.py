from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import math
import threading

from impact_core.core.clock import Clock, SystemClock
from impact_core.core.errors import (
    NotificationDeliveryError,
    RegistrationConflictError,
    RegistrationNotFoundError,
    ResendTooSoonError,
)
from impact_core.core.security import generate_code, hash_password
from impact_core.services.notifier import CodeNotifier
from impact_core.services.registrations import PendingRegistrationStore, normalize_identity

logger = logging.getLogger(__name__)

RESEND_COOLDOWN_SECONDS = 60


@dataclass(slots=True, frozen=True)
class VerifiedRegistration:
    email: str
    name: str
    password_hash: str


class RegistrationService:
    """Two-step email registration: issue a one-time code, then confirm it."""

    def __init__(
        self,
        *,
        store: PendingRegistrationStore,
        notifier: CodeNotifier,
        clock: Clock | None = None,
        resend_cooldown_seconds: int = RESEND_COOLDOWN_SECONDS,
        code_factory: Callable[[], str] = generate_code,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self._clock = clock or SystemClock()
        self.resend_cooldown_seconds = max(0, resend_cooldown_seconds)
        self._code_factory = code_factory
        self._lock = threading.Lock()
        self._registered: set[str] = set()

    def is_registered(self, email: str) -> bool:
        with self._lock:
            return normalize_identity(email) in self._registered

    async def register(self, *, name: str, email: str, password: str) -> str:
        identity = normalize_identity(email)
        if self.is_registered(identity):
            raise RegistrationConflictError("email already registered")
        self._check_cooldown(identity)

        code = self._code_factory()
        self.store.put(identity, code, {"name": name, "password": hash_password(password)})
        await self._deliver(identity, code, name)
        return identity

    async def resend(self, *, email: str) -> None:
        identity = normalize_identity(email)
        record = self.store.get(identity)
        if record is None:
            raise RegistrationNotFoundError("no pending registration found")
        self._check_cooldown(identity)

        code = self._code_factory()
        self.store.put(identity, code, record.payload)
        await self._deliver(identity, code, record.payload.get("name"))

    def verify(self, *, email: str, code: str) -> VerifiedRegistration:
        identity = normalize_identity(email)
        payload = self.store.verify(identity, code)
        with self._lock:
            if identity in self._registered:
                raise RegistrationConflictError("email already registered")
            self._registered.add(identity)
        logger.info("registration confirmed for %s", identity)
        return VerifiedRegistration(
            email=identity,
            name=str(payload.get("name", "")),
            password_hash=str(payload.get("password", "")),
        )

    def _check_cooldown(self, identity: str) -> None:
        record = self.store.get(identity)
        if record is None:
            return
        elapsed = (self._clock.now() - record.created_at).total_seconds()
        if elapsed < self.resend_cooldown_seconds:
            wait_seconds = math.ceil(self.resend_cooldown_seconds - elapsed)
            raise ResendTooSoonError(
                f"please wait {wait_seconds} seconds before requesting a new code",
                retry_after_seconds=wait_seconds,
            )

    async def _deliver(self, identity: str, code: str, name: str | None) -> None:
        try:
            await self.notifier.send_code(identity, code, name)
        except NotificationDeliveryError:
            self.store.discard(identity)
            logger.exception("verification code delivery failed for %s", identity)
            raise
