from __future__ import annotations

import asyncio
import os
from collections.abc import Iterator, Sequence
from datetime import datetime, timedelta, timezone

os.environ.setdefault("OTEL_ENABLED", "false")

import pytest  # noqa: E402
from opentelemetry.sdk.metrics import MeterProvider  # noqa: E402
from opentelemetry.sdk.metrics.export import InMemoryMetricReader  # noqa: E402

from impact_core.core.telemetry import AnalysisMetrics  # noqa: E402
from impact_core.schemas.inference import InferenceResult  # noqa: E402

_SETTLE_ROUNDS = 5


class ManualClock:
    """Clock that only moves when advanced; sleepers wake once their deadline is reached."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._sleepers: list[tuple[datetime, asyncio.Future[None]]] = []

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        await self.sleep_until(self._now + timedelta(seconds=max(0.0, seconds)))

    async def sleep_until(self, deadline: datetime) -> None:
        if deadline <= self._now:
            await asyncio.sleep(0)
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        entry = (deadline, future)
        self._sleepers.append(entry)
        try:
            await future
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def advance(self, seconds: float) -> None:
        # Let freshly created tasks register their deadlines before time moves.
        await self._settle()
        self._now += timedelta(seconds=seconds)
        for deadline, future in list(self._sleepers):
            if deadline <= self._now and not future.done():
                future.set_result(None)
        await self._settle()

    @property
    def sleeper_count(self) -> int:
        return len(self._sleepers)

    async def _settle(self) -> None:
        for _ in range(_SETTLE_ROUNDS):
            await asyncio.sleep(0)


class FakePredictor:
    def __init__(self, result: InferenceResult | None = None) -> None:
        self.result = result or InferenceResult(
            risk=30,
            confidence=90,
            impact="low",
            summary="Small change",
            reason="Touches a single helper",
            suggested_tests=["tests/test_helpers.py"],
        )
        self.calls: list[tuple[list[str], str]] = []

    async def predict(self, changed_files: Sequence[str], commit_message: str) -> InferenceResult:
        self.calls.append((list(changed_files), commit_message))
        return self.result


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str | None]] = []

    async def send_code(self, address: str, code: str, display_name: str | None) -> str:
        self.sent.append((address, code, display_name))
        return f"<{len(self.sent)}@test>"


class MetricsRecorder:
    """Analyzer metrics backed by an in-memory reader."""

    def __init__(self) -> None:
        self.reader = InMemoryMetricReader()
        self.provider = MeterProvider(metric_readers=[self.reader])
        self.metrics = AnalysisMetrics(self.provider.get_meter("tests"))

    def points(self, name: str) -> list:
        data = self.reader.get_metrics_data()
        if data is None:
            return []
        return [
            point
            for resource_metrics in data.resource_metrics
            for scope_metrics in resource_metrics.scope_metrics
            for metric in scope_metrics.metrics
            if metric.name == name
            for point in metric.data.data_points
        ]

    def counts(self, name: str, attribute: str) -> dict[str, int]:
        return {point.attributes[attribute]: point.value for point in self.points(name)}


@pytest.fixture
def fake_predictor() -> FakePredictor:
    return FakePredictor()


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def metrics_recorder() -> Iterator[MetricsRecorder]:
    recorder = MetricsRecorder()
    yield recorder
    recorder.provider.shutdown()
