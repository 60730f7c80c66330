"""Races the delayed auto-analysis against manual analysis requests.

A PR-opened event arms the scheduler for the PR id. A manual request cancels
the pending timer before running; if the timer already fired, the store's
``received -> analyzing`` transition rejects the second run, so each PR is
analyzed at most once.
"""

from __future__ import annotations

import logging
from typing import Any

from impact_core.core.errors import PullRequestNotFoundError, SchedulerNotRunningError
from impact_core.jobs.auto_analysis import RiskPredictor, analyze_pull_request
from impact_core.schemas.pull_requests import PullRequestEventIn
from impact_core.services.analysis_logs import AnalysisLogStore
from impact_core.services.scheduler import DelayedJobScheduler
from impact_core.services.store import InMemoryPullRequestStore

logger = logging.getLogger(__name__)

RECENT_LIMIT = 20


class AnalysisCoordinator:
    def __init__(
        self,
        *,
        store: InMemoryPullRequestStore,
        scheduler: DelayedJobScheduler,
        predictor: RiskPredictor,
        logs: AnalysisLogStore | None = None,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.predictor = predictor
        self.logs = logs or AnalysisLogStore()

    def ingest(self, event: PullRequestEventIn) -> dict[str, Any]:
        record = self.store.create(event)
        pr_id = record["pr_id"]
        try:
            job = self.scheduler.schedule(pr_id, lambda: self.analyze(pr_id))
        except SchedulerNotRunningError:
            self.store.delete(pr_id)
            raise
        logger.info("PR ingested: %s auto analysis in %.0fs", pr_id, job.delay_seconds)
        self.logs.add(pr_id, "received", f"PR received; auto analysis in {job.delay_seconds:.0f}s")
        return self.store.update(pr_id, auto_analysis_at=job.fire_at)

    async def analyze(self, pr_id: str) -> dict[str, Any]:
        return await analyze_pull_request(pr_id, store=self.store, predictor=self.predictor, logs=self.logs)

    async def run_manual(self, pr_id: str) -> tuple[dict[str, Any], bool]:
        self._require(pr_id)
        cancelled = self.scheduler.cancel(pr_id)
        if cancelled:
            logger.info("manual analysis requested; cancelled auto timer for %s", pr_id)
        return await self.analyze(pr_id), cancelled

    def list_pull_requests(self, **filters: Any) -> list[dict[str, Any]]:
        return self.store.list_pull_requests(**filters)

    def recent(self, limit: int = RECENT_LIMIT) -> list[dict[str, Any]]:
        return self.store.list_pull_requests(limit=limit)

    def edit(self, pr_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        record = self.store.edit_details(pr_id, changes)
        logger.info("PR %s updated", pr_id)
        return record

    def status(self, pr_id: str) -> dict[str, Any]:
        record = self._require(pr_id)
        job = self.scheduler.get(pr_id)
        return {
            "pr_id": pr_id,
            "status": record["status"],
            "auto_analysis_pending": job is not None,
            "auto_analysis_at": job.fire_at if job is not None else None,
            "logs": self.logs.for_pr(pr_id),
        }

    def delete(self, pr_id: str) -> None:
        record = self._require(pr_id)
        if record["status"] != "analyzing":
            self.scheduler.cancel(pr_id)
        self.store.delete(pr_id)
        self.logs.delete_for_pr(pr_id)
        logger.info("PR %s deleted", pr_id)

    def _require(self, pr_id: str) -> dict[str, Any]:
        record = self.store.get(pr_id)
        if record is None:
            raise PullRequestNotFoundError(f"{pr_id} not found")
        return record
