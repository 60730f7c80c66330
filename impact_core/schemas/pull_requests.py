from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from impact_core.schemas.inference import InferenceResult

PullRequestStatus = Literal["received", "analyzing", "completed", "failed"]
LogLevel = Literal["info", "warn", "error", "debug"]


class PullRequestEventIn(BaseModel):
    repo: str = Field(min_length=1)
    author: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    commit_message: str = ""
    files_changed: list[str] = Field(min_length=1)
    pr_id: str | None = None


class PullRequestOut(BaseModel):
    pr_id: str
    repo: str
    author: str
    branch: str
    commit_message: str = ""
    files_changed: list[str] = Field(default_factory=list)
    status: PullRequestStatus
    analysis: InferenceResult | None = None
    error: str | None = None
    received_at: datetime
    analyzed_at: datetime | None = None
    auto_analysis_at: datetime | None = None


class PullRequestReceivedOut(BaseModel):
    message: str = "PR received successfully"
    pr_id: str
    status: PullRequestStatus
    auto_analysis_at: datetime | None = None


class PullRequestPatchRequest(BaseModel):
    repo: str | None = None
    author: str | None = None
    branch: str | None = None
    commit_message: str | None = None


class PullRequestUpdatedOut(BaseModel):
    message: str = "PR updated successfully"
    pr: PullRequestOut


class AnalysisLogOut(BaseModel):
    pr_id: str
    stage: str
    level: LogLevel = "info"
    message: str
    source: str = "analyzer"
    timestamp: datetime


class PullRequestStatusOut(BaseModel):
    pr_id: str
    status: PullRequestStatus
    auto_analysis_pending: bool
    auto_analysis_at: datetime | None = None
    logs: list[AnalysisLogOut] = Field(default_factory=list)


class AnalyzeOut(BaseModel):
    message: str = "Analysis complete"
    auto_analysis_cancelled: bool
    pr: PullRequestOut
