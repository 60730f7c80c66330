from __future__ import annotations

import json

import pytest

from impact_core.core.errors import InferenceParseError, InferenceValidationError
from impact_core.services.risk_parsing import (
    DEFAULT_REASON,
    DEFAULT_SUMMARY,
    clamp_score,
    fallback_result,
    normalize_prediction,
    parse_model_output,
)


def _prediction(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "risk": 72,
        "confidence": 64,
        "impact": "high",
        "summary": "Payment flow changed",
        "reason": "Billing code is critical",
        "suggested_tests": ["tests/test_billing.py"],
    }
    payload.update(overrides)
    return payload


def test_parse_accepts_plain_json() -> None:
    assert parse_model_output(' {"risk": 10} \n') == {"risk": 10}


def test_parse_recovers_json_wrapped_in_prose() -> None:
    raw = 'Sure! Here you go:\n```json\n{"risk": 40, "impact": "low"}\n```\nHope it helps.'
    assert parse_model_output(raw) == {"risk": 40, "impact": "low"}


def test_parse_span_runs_from_first_to_last_brace() -> None:
    raw = 'prefix {"risk": 1, "nested": {"a": 2}} suffix'
    assert parse_model_output(raw) == {"risk": 1, "nested": {"a": 2}}


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "not json at all",
        "sure! ```json {...} ```",
        '{"risk": 10',
        "first {bad} then {worse}",
        None,
    ],
)
def test_parse_rejects_unrecoverable_output(raw: object) -> None:
    with pytest.raises(InferenceParseError):
        parse_model_output(raw)


def test_in_range_values_pass_through_unchanged() -> None:
    result = normalize_prediction(_prediction())
    assert result.model_dump() == _prediction()


@pytest.mark.parametrize(("raw", "expected"), [(150, 100), (-30, 0), (49.5, 50), (12.4, 12), (100, 100), (0, 0)])
def test_risk_is_rounded_and_clamped(raw: float, expected: int) -> None:
    assert normalize_prediction(_prediction(risk=raw)).risk == expected


@pytest.mark.parametrize("risk", [None, "80", True, [], {"value": 3}, float("nan")])
def test_non_numeric_risk_is_invalid(risk: object) -> None:
    with pytest.raises(InferenceValidationError):
        normalize_prediction(_prediction(risk=risk))


def test_missing_risk_is_invalid() -> None:
    payload = _prediction()
    del payload["risk"]
    with pytest.raises(InferenceValidationError):
        normalize_prediction(payload)


def test_non_object_payload_is_invalid() -> None:
    with pytest.raises(InferenceValidationError):
        normalize_prediction([{"risk": 1}])


@pytest.mark.parametrize("confidence", [None, "high", False])
def test_bad_confidence_defaults_to_fifty(confidence: object) -> None:
    assert normalize_prediction(_prediction(confidence=confidence)).confidence == 50


def test_zero_confidence_is_kept() -> None:
    assert normalize_prediction(_prediction(confidence=0)).confidence == 0


def test_confidence_is_clamped() -> None:
    assert normalize_prediction(_prediction(confidence=250)).confidence == 100


@pytest.mark.parametrize("impact", ["critical", "HIGH", "", None, 3])
def test_unknown_impact_becomes_medium(impact: object) -> None:
    assert normalize_prediction(_prediction(impact=impact)).impact == "medium"


@pytest.mark.parametrize("value", [None, "", 42])
def test_missing_text_fields_get_defaults(value: object) -> None:
    result = normalize_prediction(_prediction(summary=value, reason=value))
    assert result.summary == DEFAULT_SUMMARY
    assert result.reason == DEFAULT_REASON


def test_suggested_tests_are_truncated_to_fifteen() -> None:
    tests = [f"tests/test_{index}.py" for index in range(20)]
    result = normalize_prediction(_prediction(suggested_tests=tests))
    assert result.suggested_tests == tests[:15]


@pytest.mark.parametrize("value", ["tests/test_a.py", None, {"a": 1}, ["ok.py", 3]])
def test_malformed_suggested_tests_become_empty(value: object) -> None:
    assert normalize_prediction(_prediction(suggested_tests=value)).suggested_tests == []


def test_fallback_tuple() -> None:
    result = fallback_result()
    assert (result.risk, result.confidence, result.impact, result.suggested_tests) == (50, 50, "medium", [])
    assert result.summary
    assert result.reason


def test_clamp_rounds_half_up() -> None:
    assert clamp_score(0.5) == 1
    assert clamp_score(-0.5) == 0
    assert clamp_score(99.5) == 100


def test_prose_round_trip_through_normalization() -> None:
    raw = "Analysis:\n" + json.dumps(_prediction(risk=150, impact="critical")) + "\nDone."
    result = normalize_prediction(parse_model_output(raw))
    assert result.risk == 100
    assert result.impact == "medium"


def test_whitespace_text_is_kept_verbatim() -> None:
    result = normalize_prediction(_prediction(summary="   ", reason=" \n"))
    assert (result.summary, result.reason) == ("   ", " \n")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"risk": 1' + "0" * 400 + ', "impact": "high"}', 100),
        ('{"risk": -1' + "0" * 400 + "}", 0),
        ('{"risk": 1e400}', 100),
        ('{"risk": -1e400}', 0),
    ],
)
def test_out_of_float_range_risk_is_clamped(raw: str, expected: int) -> None:
    assert normalize_prediction(parse_model_output(raw)).risk == expected


def test_infinite_confidence_is_clamped() -> None:
    assert normalize_prediction(parse_model_output('{"risk": 10, "confidence": 1e400}')).confidence == 100
