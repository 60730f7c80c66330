from datetime import datetime, timezone
import threading
from typing import Any
from uuid import uuid4

from impact_core.core.errors import PullRequestConflictError, PullRequestNotFoundError
from impact_core.schemas.inference import InferenceResult
from impact_core.schemas.pull_requests import PullRequestEventIn, PullRequestOut

EDITABLE_FIELDS = ("repo", "author", "branch", "commit_message")


class InMemoryPullRequestStore:
    """Process-local pull request records; dashboards read from here."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.pull_requests: dict[str, dict[str, Any]] = {}

    def create(self, event: PullRequestEventIn, *, received_at: datetime | None = None) -> dict[str, Any]:
        now = received_at or datetime.now(timezone.utc)
        pr_id = event.pr_id or f"PR-{int(now.timestamp() * 1000)}-{uuid4().hex[:6]}"
        record = PullRequestOut(
            pr_id=pr_id,
            repo=event.repo,
            author=event.author,
            branch=event.branch,
            commit_message=event.commit_message,
            files_changed=list(event.files_changed),
            status="received",
            received_at=now,
        ).model_dump()
        with self._lock:
            if pr_id in self.pull_requests:
                raise PullRequestConflictError(f"{pr_id} already exists")
            self.pull_requests[pr_id] = record
        return dict(record)

    def get(self, pr_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self.pull_requests.get(pr_id)
            return dict(record) if record is not None else None

    def list_pull_requests(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        status: str | None = None,
        repo: str | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            ordered = sorted(
                enumerate(self.pull_requests.values()),
                key=lambda item: (item[1]["received_at"], item[0]),
                reverse=True,
            )
            rows = [
                dict(record)
                for _, record in ordered
                if (status is None or record["status"] == status) and (repo is None or record["repo"] == repo)
            ]
        return rows[offset : offset + limit]

    def edit_details(self, pr_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        updates = {field: value for field, value in changes.items() if field in EDITABLE_FIELDS and value not in (None, "")}
        if not updates:
            raise ValueError("no valid fields to update")
        with self._lock:
            record = self._require(pr_id)
            if record["status"] != "received":
                raise PullRequestConflictError(f"{pr_id} can only be edited before analysis (status={record['status']})")
            record.update(updates)
            return dict(record)

    def update(self, pr_id: str, **fields: Any) -> dict[str, Any]:
        with self._lock:
            record = self._require(pr_id)
            record.update(fields)
            return dict(record)

    def begin_analysis(self, pr_id: str) -> dict[str, Any]:
        with self._lock:
            record = self._require(pr_id)
            if record["status"] != "received":
                raise PullRequestConflictError(f"{pr_id} already processed (status={record['status']})")
            record["status"] = "analyzing"
            return dict(record)

    def complete_analysis(self, pr_id: str, result: InferenceResult, *, analyzed_at: datetime | None = None) -> dict[str, Any]:
        return self.update(
            pr_id,
            status="completed",
            analysis=result.model_dump(),
            error=None,
            analyzed_at=analyzed_at or datetime.now(timezone.utc),
            auto_analysis_at=None,
        )

    def fail_analysis(self, pr_id: str, error: str) -> dict[str, Any]:
        return self.update(pr_id, status="failed", error=error, auto_analysis_at=None)

    def delete(self, pr_id: str) -> None:
        with self._lock:
            record = self._require(pr_id)
            if record["status"] == "analyzing":
                raise PullRequestConflictError("cannot delete a PR that is currently being analyzed")
            del self.pull_requests[pr_id]

    def _require(self, pr_id: str) -> dict[str, Any]:
        record = self.pull_requests.get(pr_id)
        if record is None:
            raise PullRequestNotFoundError(f"{pr_id} not found")
        return record
