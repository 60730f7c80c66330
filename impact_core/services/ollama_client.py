from __future__ import annotations

from collections.abc import Sequence
import logging
import time
from typing import Any

import httpx
from opentelemetry import trace

from impact_core.core.config import Settings
from impact_core.core.errors import (
    InferenceError,
    InferenceParseError,
    InferenceTimeoutError,
    InferenceTransportError,
)
from impact_core.core.telemetry import AnalysisMetrics, default_metrics
from impact_core.schemas.inference import InferenceResult
from impact_core.services.prompts import build_risk_prompt
from impact_core.services.risk_parsing import fallback_result, normalize_prediction, parse_model_output

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

GENERATE_OPTIONS = {"temperature": 0.2, "top_p": 0.9, "num_predict": 1024}


class OllamaRiskPredictor:
    """Asks an Ollama model for risk/impact and always returns a well-formed result."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout_seconds: float = 180.0,
        *,
        client: httpx.AsyncClient | None = None,
        metrics: AnalysisMetrics | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._metrics = metrics or default_metrics()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        client: httpx.AsyncClient | None = None,
        metrics: AnalysisMetrics | None = None,
    ) -> "OllamaRiskPredictor":
        return cls(
            base_url=settings.ollama_url,
            model=settings.ollama_model,
            timeout_seconds=settings.ollama_timeout_seconds,
            client=client,
            metrics=metrics,
        )

    async def predict(self, changed_files: Sequence[str], commit_message: str) -> InferenceResult:
        with tracer.start_as_current_span("inference.predict") as span:
            span.set_attribute("inference.model", self.model)
            span.set_attribute("inference.files_changed", len(changed_files))
            started_at = time.perf_counter()
            try:
                text = await self._generate(build_risk_prompt(changed_files, commit_message))
                result = normalize_prediction(parse_model_output(text))
            except InferenceError as exc:
                span.set_attribute("inference.method", "fallback")
                span.set_attribute("inference.fallback_reason", exc.reason)
                logger.warning("ollama prediction fell back reason=%s detail=%s", exc.reason, exc)
                self._metrics.record_prediction("fallback", time.perf_counter() - started_at, fallback_reason=exc.reason)
                return fallback_result()
            except Exception:  # pragma: no cover - predict never raises
                span.set_attribute("inference.method", "fallback")
                span.set_attribute("inference.fallback_reason", "unexpected_error")
                logger.exception("ollama prediction fell back reason=unexpected_error")
                self._metrics.record_prediction(
                    "fallback", time.perf_counter() - started_at, fallback_reason="unexpected_error"
                )
                return fallback_result()

            span.set_attribute("inference.method", "ollama")
            span.set_attribute("inference.risk", result.risk)
            span.set_attribute("inference.confidence", result.confidence)
            span.set_attribute("inference.impact", result.impact)
            self._metrics.record_prediction("ollama", time.perf_counter() - started_at)
            logger.info(
                "ollama prediction method=ollama risk=%s confidence=%s impact=%s",
                result.risk,
                result.confidence,
                result.impact,
            )
            return result

    async def _generate(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": GENERATE_OPTIONS,
        }
        logger.info("calling ollama model=%s for risk+impact prediction", self.model)
        if self._client is not None:
            body = await self._post(self._client, payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                body = await self._post(client, payload)

        text = ""
        if isinstance(body, dict):
            text = body.get("response") or body.get("output") or ""
        if not isinstance(text, str):
            raise InferenceParseError("model output field is not a string")
        logger.info("ollama response length: %s", len(text))
        return text

    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> Any:
        try:
            response = await client.post(
                f"{self.base_url}/api/generate",
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise InferenceTimeoutError(f"ollama call timed out after {self.timeout_seconds:.1f}s") from exc
        except httpx.HTTPError as exc:
            raise InferenceTransportError(f"ollama call failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise InferenceParseError("ollama response body is not JSON") from exc
