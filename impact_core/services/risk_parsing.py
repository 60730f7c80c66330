from __future__ import annotations

import json
import math
import re
from typing import Any

from impact_core.core.errors import InferenceParseError, InferenceValidationError
from impact_core.schemas.inference import MAX_SUGGESTED_TESTS, InferenceResult

IMPACT_LEVELS = {"low", "medium", "high"}
DEFAULT_IMPACT = "medium"
DEFAULT_CONFIDENCE = 50
DEFAULT_SUMMARY = "AI analysis completed"
DEFAULT_REASON = "No specific reason provided"

FALLBACK_SUMMARY = "Fallback analysis - Ollama unavailable"
FALLBACK_REASON = "LLM could not be reached or returned invalid response"

# Greedy: first "{" through the last "}" in the text.
_JSON_SPAN_RE = re.compile(r"\{.*\}", re.DOTALL)


def fallback_result() -> InferenceResult:
    return InferenceResult(
        risk=50,
        confidence=50,
        impact="medium",
        summary=FALLBACK_SUMMARY,
        reason=FALLBACK_REASON,
        suggested_tests=[],
    )


def is_fallback(result: InferenceResult) -> bool:
    return result.summary == FALLBACK_SUMMARY and result.reason == FALLBACK_REASON


def parse_model_output(raw: Any) -> Any:
    """Parse model text as JSON, falling back to the first ``{...}`` span embedded in prose."""
    if not isinstance(raw, str) or not raw.strip():
        raise InferenceParseError("empty model output")
    try:
        return json.loads(raw.strip())
    except ValueError:
        pass

    match = _JSON_SPAN_RE.search(raw)
    if match is None:
        raise InferenceParseError("no JSON object found in model output")
    try:
        return json.loads(match.group(0))
    except ValueError as exc:
        raise InferenceParseError(f"embedded JSON object is malformed: {exc}") from exc


def normalize_prediction(parsed: Any) -> InferenceResult:
    if not isinstance(parsed, dict):
        raise InferenceValidationError("model output is not a JSON object")

    risk = _as_number(parsed.get("risk"))
    if risk is None:
        raise InferenceValidationError("risk is missing or not numeric")

    confidence = _as_number(parsed.get("confidence"))
    if confidence is None:
        confidence = DEFAULT_CONFIDENCE

    impact = parsed.get("impact")
    if not isinstance(impact, str) or impact not in IMPACT_LEVELS:
        impact = DEFAULT_IMPACT

    return InferenceResult(
        risk=clamp_score(risk),
        confidence=clamp_score(confidence),
        impact=impact,
        summary=_as_text(parsed.get("summary")) or DEFAULT_SUMMARY,
        reason=_as_text(parsed.get("reason")) or DEFAULT_REASON,
        suggested_tests=_as_test_list(parsed.get("suggested_tests")),
    )


def clamp_score(value: int | float, *, minimum: int = 0, maximum: int = 100) -> int:
    # Ints are compared exactly; arbitrarily large JSON integers never become floats.
    if isinstance(value, float):
        if math.isinf(value):
            return maximum if value > 0 else minimum
        value = math.floor(value + 0.5)
    return min(maximum, max(minimum, value))


def _as_number(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _as_text(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _as_test_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    if not all(isinstance(item, str) for item in value):
        return []
    return value[:MAX_SUGGESTED_TESTS]
