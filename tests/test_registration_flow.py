from __future__ import annotations

import asyncio

import pytest

from conftest import ManualClock
from impact_core.core.errors import (
    CodeMismatchError,
    NotificationDeliveryError,
    RegistrationConflictError,
    RegistrationNotFoundError,
    ResendTooSoonError,
)
from impact_core.core.security import verify_password
from impact_core.services.registration_flow import RegistrationService
from impact_core.services.registrations import PendingRegistrationStore


def _service(notifier, clock: ManualClock, codes: list[str] | None = None) -> RegistrationService:
    issued = iter(codes or ["123456", "654321", "111222"])
    return RegistrationService(
        store=PendingRegistrationStore(clock=clock),
        notifier=notifier,
        clock=clock,
        code_factory=lambda: next(issued),
    )


def test_register_sends_code_and_verify_materializes_payload(recording_notifier) -> None:
    clock = ManualClock()
    service = _service(recording_notifier, clock)

    email = asyncio.run(service.register(name="Ada", email="Ada@Example.com", password="s3cret!"))

    assert email == "ada@example.com"
    assert recording_notifier.sent == [("ada@example.com", "123456", "Ada")]
    stored = service.store.get(email)
    assert stored.payload["password"] != "s3cret!"
    assert verify_password("s3cret!", stored.payload["password"])

    registration = service.verify(email="ada@example.com", code="123456")
    assert registration.name == "Ada"
    assert registration.email == "ada@example.com"
    assert service.is_registered("ADA@example.com")


def test_register_enforces_cooldown(recording_notifier) -> None:
    clock = ManualClock()
    service = _service(recording_notifier, clock)
    asyncio.run(service.register(name="Ada", email="a@x.com", password="s3cret!"))
    asyncio.run(clock.advance(20))

    with pytest.raises(ResendTooSoonError) as excinfo:
        asyncio.run(service.register(name="Ada", email="a@x.com", password="s3cret!"))
    assert excinfo.value.retry_after_seconds == 40

    asyncio.run(clock.advance(40))
    asyncio.run(service.register(name="Ada", email="a@x.com", password="other-pass"))
    assert [code for _, code, _ in recording_notifier.sent] == ["123456", "654321"]


def test_resend_issues_new_code_and_resets_attempts(recording_notifier) -> None:
    clock = ManualClock()
    service = _service(recording_notifier, clock)
    asyncio.run(service.register(name="Ada", email="a@x.com", password="s3cret!"))
    with pytest.raises(CodeMismatchError):
        service.verify(email="a@x.com", code="000000")

    asyncio.run(clock.advance(61))
    asyncio.run(service.resend(email="a@x.com"))

    record = service.store.get("a@x.com")
    assert record.attempts == 0
    assert recording_notifier.sent[-1] == ("a@x.com", "654321", "Ada")
    with pytest.raises(CodeMismatchError):
        service.verify(email="a@x.com", code="123456")
    assert service.verify(email="a@x.com", code="654321").name == "Ada"


def test_resend_without_pending_registration(recording_notifier) -> None:
    service = _service(recording_notifier, ManualClock())
    with pytest.raises(RegistrationNotFoundError):
        asyncio.run(service.resend(email="nobody@x.com"))


def test_register_rejects_already_registered_email(recording_notifier) -> None:
    clock = ManualClock()
    service = _service(recording_notifier, clock)
    asyncio.run(service.register(name="Ada", email="a@x.com", password="s3cret!"))
    service.verify(email="a@x.com", code="123456")

    with pytest.raises(RegistrationConflictError):
        asyncio.run(service.register(name="Ada", email="A@x.com", password="s3cret!"))


def test_delivery_failure_discards_pending_record() -> None:
    class BrokenNotifier:
        async def send_code(self, address: str, code: str, display_name: str | None) -> str:
            raise NotificationDeliveryError("smtp down")

    service = _service(BrokenNotifier(), ManualClock())
    with pytest.raises(NotificationDeliveryError):
        asyncio.run(service.register(name="Ada", email="a@x.com", password="s3cret!"))
    assert service.store.get("a@x.com") is None
