from typing import Literal

from pydantic import BaseModel, Field

Impact = Literal["low", "medium", "high"]

MAX_SUGGESTED_TESTS = 15


class InferenceResult(BaseModel):
    risk: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    impact: Impact
    summary: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    suggested_tests: list[str] = Field(default_factory=list, max_length=MAX_SUGGESTED_TESTS)
