"""Keyed delayed-job scheduler with at-most-once firing per key.

A job is a zero-argument coroutine function armed for ``delay_seconds``. The
fire sequence removes the key from the pending map and only then invokes the
action, so a ``cancel`` that loses the race finds nothing and returns False
instead of interrupting an action that already started.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import threading

from opentelemetry import trace

from impact_core.core.clock import Clock, SystemClock
from impact_core.core.errors import SchedulerNotRunningError
from impact_core.core.telemetry import AnalysisMetrics, default_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

JobAction = Callable[[], Awaitable[object]]
ErrorSink = Callable[[str, BaseException], None]

AUTO_ANALYSIS_DELAY_SECONDS = 60.0


@dataclass(slots=True, eq=False)
class ScheduledJob:
    key: str
    delay_seconds: float
    scheduled_at: datetime
    fire_at: datetime
    action: JobAction = field(repr=False)
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class DelayedJobScheduler:
    def __init__(
        self,
        *,
        clock: Clock | None = None,
        default_delay_seconds: float = AUTO_ANALYSIS_DELAY_SECONDS,
        error_sink: ErrorSink | None = None,
        metrics: AnalysisMetrics | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._metrics = metrics or default_metrics()
        self.default_delay_seconds = max(0.0, float(default_delay_seconds))
        self._error_sink = error_sink
        self._lock = threading.Lock()
        self._pending: dict[str, ScheduledJob] = {}
        self._in_flight: set[asyncio.Task[None]] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True

    async def shutdown(self) -> None:
        """Stop accepting jobs, cancel every pending timer and wait for in-flight actions."""
        with self._lock:
            self._running = False
            pending = list(self._pending.values())
            self._pending.clear()
        timers = [job.task for job in pending if job.task is not None]
        for task in timers:
            task.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        if pending:
            logger.info("scheduler shut down; dropped %s pending job(s)", len(pending))

    def schedule(self, key: str, action: JobAction, delay_seconds: float | None = None) -> ScheduledJob:
        loop = asyncio.get_running_loop()
        delay = self.default_delay_seconds if delay_seconds is None else max(0.0, float(delay_seconds))
        now = self._clock.now()
        job = ScheduledJob(
            key=key,
            delay_seconds=delay,
            scheduled_at=now,
            fire_at=now + timedelta(seconds=delay),
            action=action,
        )
        with self._lock:
            if not self._running:
                raise SchedulerNotRunningError("scheduler is not running")
            replaced = self._pending.pop(key, None)
            if replaced is not None and replaced.task is not None:
                replaced.task.cancel()
            job.task = loop.create_task(self._run(job), name=f"delayed-job:{key}")
            self._pending[key] = job

        if replaced is not None:
            logger.info("replaced pending job for key=%s", key)
            self._metrics.record_job("replaced")
        self._metrics.record_job("scheduled")
        logger.info("job scheduled key=%s delay_seconds=%.1f fire_at=%s", key, delay, job.fire_at.isoformat())
        return job

    def cancel(self, key: str) -> bool:
        with self._lock:
            job = self._pending.pop(key, None)
        if job is None:
            return False
        if job.task is not None:
            job.task.cancel()
        logger.info("job cancelled key=%s", key)
        self._metrics.record_job("cancelled")
        return True

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._pending

    def get(self, key: str) -> ScheduledJob | None:
        with self._lock:
            return self._pending.get(key)

    def pending_keys(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    async def _run(self, job: ScheduledJob) -> None:
        try:
            await self._clock.sleep_until(job.fire_at)
        except asyncio.CancelledError:
            return

        with self._lock:
            if self._pending.get(job.key) is not job:
                # Superseded or cancelled after the timer elapsed.
                return
            del self._pending[job.key]
            current = asyncio.current_task()
            if current is not None:
                self._in_flight.add(current)

        logger.info("job fired key=%s", job.key)
        self._metrics.record_job("fired")
        try:
            with tracer.start_as_current_span("scheduler.fire") as span:
                span.set_attribute("scheduler.key", job.key)
                span.set_attribute("scheduler.delay_seconds", job.delay_seconds)
                await job.action()
        except Exception as exc:
            logger.exception("scheduled job failed for key=%s", job.key)
            self._metrics.record_job("failed")
            self._report(job.key, exc)
        finally:
            if current is not None:
                self._in_flight.discard(current)

    def _report(self, key: str, exc: BaseException) -> None:
        if self._error_sink is None:
            return
        try:
            self._error_sink(key, exc)
        except Exception:  # pragma: no cover - sink must not break the scheduler
            logger.exception("scheduler error sink failed for key=%s", key)
