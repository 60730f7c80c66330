from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Any, Protocol

from impact_core.schemas.inference import InferenceResult
from impact_core.services.analysis_logs import AnalysisLogStore
from impact_core.services.risk_parsing import is_fallback
from impact_core.services.store import InMemoryPullRequestStore

logger = logging.getLogger(__name__)


class RiskPredictor(Protocol):
    async def predict(self, changed_files: Sequence[str], commit_message: str) -> InferenceResult: ...


async def analyze_pull_request(
    pr_id: str,
    *,
    store: InMemoryPullRequestStore,
    predictor: RiskPredictor,
    logs: AnalysisLogStore,
) -> dict[str, Any]:
    record = store.begin_analysis(pr_id)
    files = record["files_changed"]
    logs.add(pr_id, "fetch_changes", f"Starting analysis for PR {pr_id} - {len(files)} files")
    logs.add(pr_id, "risk_prediction", "Calling AI model for risk analysis...")
    try:
        result = await predictor.predict(files, record["commit_message"])
    except Exception as exc:
        error = str(exc) or exc.__class__.__name__
        store.fail_analysis(pr_id, error)
        logs.add(pr_id, "failed", f"Analysis failed: {error}", level="error")
        raise

    if is_fallback(result):
        logs.add(pr_id, "risk_prediction", "AI model unavailable - using fallback estimate", level="warn")
    else:
        logs.add(pr_id, "risk_prediction", f"AI Reasoning: {result.reason}")
        if result.suggested_tests:
            logs.add(pr_id, "risk_prediction", f"AI Suggestions: {' | '.join(result.suggested_tests)}")
    logs.add(
        pr_id,
        "risk_prediction",
        f"Risk: {result.risk}% ({result.impact}) | Confidence: {result.confidence}%",
    )

    updated = store.complete_analysis(pr_id, result)
    logs.add(pr_id, "completed", "Analysis completed")
    logger.info("analysis completed for %s risk=%s impact=%s", pr_id, result.risk, result.impact)
    return updated
