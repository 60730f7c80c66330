from fastapi import APIRouter, Depends, HTTPException, Query, status

from impact_core.api.deps import get_coordinator
from impact_core.core.errors import PullRequestConflictError, PullRequestNotFoundError
from impact_core.schemas.pull_requests import (
    AnalyzeOut,
    PullRequestOut,
    PullRequestPatchRequest,
    PullRequestStatus,
    PullRequestStatusOut,
    PullRequestUpdatedOut,
)
from impact_core.services.analysis import RECENT_LIMIT, AnalysisCoordinator

router = APIRouter()


@router.get("", response_model=list[PullRequestOut])
async def list_pull_requests(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    pr_status: PullRequestStatus | None = Query(default=None, alias="status"),
    repo: str | None = Query(default=None, min_length=1),
    coordinator: AnalysisCoordinator = Depends(get_coordinator),
) -> list[PullRequestOut]:
    rows = coordinator.list_pull_requests(limit=limit, offset=offset, status=pr_status, repo=repo)
    return [PullRequestOut(**row) for row in rows]


@router.get("/recent", response_model=list[PullRequestOut])
async def recent_pull_requests(
    limit: int = Query(default=RECENT_LIMIT, ge=1, le=100),
    coordinator: AnalysisCoordinator = Depends(get_coordinator),
) -> list[PullRequestOut]:
    return [PullRequestOut(**row) for row in coordinator.recent(limit)]


@router.get("/{pr_id}", response_model=PullRequestOut)
async def get_pull_request(pr_id: str, coordinator: AnalysisCoordinator = Depends(get_coordinator)) -> PullRequestOut:
    record = coordinator.store.get(pr_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="PR not found")
    return PullRequestOut(**record)


@router.get("/{pr_id}/status", response_model=PullRequestStatusOut)
async def get_pull_request_status(
    pr_id: str,
    coordinator: AnalysisCoordinator = Depends(get_coordinator),
) -> PullRequestStatusOut:
    try:
        return PullRequestStatusOut(**coordinator.status(pr_id))
    except PullRequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/{pr_id}/analyze", response_model=AnalyzeOut)
async def analyze_pull_request(pr_id: str, coordinator: AnalysisCoordinator = Depends(get_coordinator)) -> AnalyzeOut:
    try:
        record, cancelled = await coordinator.run_manual(pr_id)
    except PullRequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PullRequestConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return AnalyzeOut(auto_analysis_cancelled=cancelled, pr=PullRequestOut(**record))


@router.delete("/{pr_id}")
async def delete_pull_request(pr_id: str, coordinator: AnalysisCoordinator = Depends(get_coordinator)) -> dict[str, str]:
    try:
        coordinator.delete(pr_id)
    except PullRequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PullRequestConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return {"message": "PR deleted successfully", "pr_id": pr_id}


@router.patch("/{pr_id}", response_model=PullRequestUpdatedOut)
async def update_pull_request(
    pr_id: str,
    payload: PullRequestPatchRequest,
    coordinator: AnalysisCoordinator = Depends(get_coordinator),
) -> PullRequestUpdatedOut:
    try:
        record = coordinator.edit(pr_id, payload.model_dump(exclude_unset=True))
    except PullRequestNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PullRequestConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return PullRequestUpdatedOut(pr=PullRequestOut(**record))
