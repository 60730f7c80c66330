from __future__ import annotations

import asyncio
import logging

from impact_core.core.clock import Clock, SystemClock
from impact_core.services.registrations import PendingRegistrationStore

logger = logging.getLogger(__name__)


async def run_registration_reaper(
    store: PendingRegistrationStore,
    *,
    interval_seconds: float,
    clock: Clock | None = None,
) -> None:
    """Periodically drop expired pending registrations until cancelled."""
    clock = clock or SystemClock()
    while True:
        await clock.sleep(interval_seconds)
        try:
            store.reap_expired()
        except Exception:  # pragma: no cover - keep the loop alive
            logger.exception("registration reaper iteration failed")


async def stop_reaper(task: asyncio.Task[None]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
