from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import ManualClock
from impact_core.core.errors import (
    AttemptsExceededError,
    CodeMismatchError,
    RegistrationNotFoundError,
)
from impact_core.services.registrations import PendingRegistrationStore

PAYLOAD = {"name": "Ada", "password": "pbkdf2_sha256$1$00$00"}


def _store(clock: ManualClock | None = None, **kwargs) -> PendingRegistrationStore:
    return PendingRegistrationStore(clock=clock or ManualClock(), **kwargs)


def test_mismatch_then_match_then_consumed() -> None:
    store = _store()
    store.put("a@x.com", "123456", PAYLOAD)

    with pytest.raises(CodeMismatchError) as excinfo:
        store.verify("a@x.com", "000000")
    assert excinfo.value.attempts_remaining == 4
    assert store.get("a@x.com").attempts == 1

    assert store.verify("a@x.com", "123456") == PAYLOAD

    with pytest.raises(RegistrationNotFoundError):
        store.verify("a@x.com", "123456")


def test_identity_is_case_insensitive() -> None:
    store = _store()
    record = store.put("  Ada@Example.COM ", "123456", PAYLOAD)

    assert record.identity == "ada@example.com"
    assert store.verify("ADA@example.com", "123456") == PAYLOAD


def test_put_supersedes_previous_record_and_resets_attempts() -> None:
    store = _store()
    store.put("a@x.com", "111111", PAYLOAD)
    with pytest.raises(CodeMismatchError):
        store.verify("a@x.com", "000000")

    store.put("a@x.com", "222222", {"name": "Other", "password": "h"})

    assert store.get("a@x.com").attempts == 0
    with pytest.raises(CodeMismatchError):
        store.verify("a@x.com", "111111")
    assert store.verify("a@x.com", "222222") == {"name": "Other", "password": "h"}
    assert store.count() == 0


def test_record_is_unreadable_after_ttl() -> None:
    clock = ManualClock()
    store = _store(clock)
    record = store.put("a@x.com", "123456", PAYLOAD)
    assert (record.expires_at - record.created_at).total_seconds() == 600

    asyncio.run(clock.advance(600))
    assert store.get("a@x.com") is not None

    asyncio.run(clock.advance(1))
    assert store.get("a@x.com") is None
    with pytest.raises(RegistrationNotFoundError):
        store.verify("a@x.com", "123456")


def test_attempts_exhausted_keeps_record_until_expiry() -> None:
    clock = ManualClock()
    store = _store(clock, max_attempts=3)
    store.put("a@x.com", "123456", PAYLOAD)

    for _ in range(3):
        with pytest.raises(CodeMismatchError):
            store.verify("a@x.com", "000000")

    with pytest.raises(AttemptsExceededError):
        store.verify("a@x.com", "123456")
    with pytest.raises(AttemptsExceededError):
        store.verify("a@x.com", "123456")
    assert store.get("a@x.com").attempts == 3

    asyncio.run(clock.advance(601))
    with pytest.raises(RegistrationNotFoundError):
        store.verify("a@x.com", "123456")


def test_reap_expired_removes_only_stale_records() -> None:
    clock = ManualClock()
    store = _store(clock)
    store.put("old@x.com", "111111", PAYLOAD)
    asyncio.run(clock.advance(300))
    store.put("new@x.com", "222222", PAYLOAD)
    asyncio.run(clock.advance(301))

    assert store.reap_expired() == 1
    assert store.count() == 1
    assert store.get("new@x.com") is not None


def test_get_returns_a_copy() -> None:
    store = _store()
    store.put("a@x.com", "123456", PAYLOAD)
    snapshot = store.get("a@x.com")
    snapshot.attempts = 99

    assert store.get("a@x.com").attempts == 0


def test_concurrent_mismatches_never_exceed_limit() -> None:
    store = _store(max_attempts=5)
    store.put("a@x.com", "123456", PAYLOAD)

    def attempt(_: int) -> str:
        try:
            store.verify("a@x.com", "000000")
        except CodeMismatchError:
            return "mismatch"
        except AttemptsExceededError:
            return "exceeded"
        return "ok"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(20)))

    assert outcomes.count("mismatch") == 5
    assert outcomes.count("exceeded") == 15
    assert store.get("a@x.com").attempts == 5


@pytest.mark.parametrize("max_attempts", [0, -1])
def test_max_attempts_must_be_positive(max_attempts: int) -> None:
    with pytest.raises(ValueError):
        PendingRegistrationStore(max_attempts=max_attempts)
