from fastapi import APIRouter, Depends, HTTPException, status

from impact_core.api.deps import get_coordinator
from impact_core.core.errors import PullRequestConflictError, SchedulerNotRunningError
from impact_core.schemas.pull_requests import PullRequestEventIn, PullRequestReceivedOut
from impact_core.services.analysis import AnalysisCoordinator

router = APIRouter()


@router.post("/simulate", response_model=PullRequestReceivedOut, status_code=status.HTTP_201_CREATED)
async def simulate_pull_request(
    payload: PullRequestEventIn,
    coordinator: AnalysisCoordinator = Depends(get_coordinator),
) -> PullRequestReceivedOut:
    try:
        record = coordinator.ingest(payload)
    except PullRequestConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SchedulerNotRunningError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return PullRequestReceivedOut(
        pr_id=record["pr_id"],
        status=record["status"],
        auto_analysis_at=record["auto_analysis_at"],
    )
