from datetime import datetime, timezone
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class AnalysisLogStore:
    """Per-PR stage log trail, returned with the PR status for polling clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, list[dict[str, Any]]] = {}

    def add(
        self,
        pr_id: str,
        stage: str,
        message: str,
        *,
        level: str = "info",
        source: str = "analyzer",
    ) -> dict[str, Any]:
        if level not in _LEVELS:
            raise ValueError(f"unsupported log level: {level}")
        entry = {
            "pr_id": pr_id,
            "stage": stage,
            "level": level,
            "message": message,
            "source": source,
            "timestamp": datetime.now(timezone.utc),
        }
        with self._lock:
            self._entries.setdefault(pr_id, []).append(entry)
        logger.log(_LEVELS[level], "pr=%s stage=%s %s", pr_id, stage, message)
        return dict(entry)

    def for_pr(self, pr_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(entry) for entry in self._entries.get(pr_id, [])]

    def delete_for_pr(self, pr_id: str) -> int:
        with self._lock:
            return len(self._entries.pop(pr_id, []))
