from typing import Any

from fastapi import APIRouter, Depends

from impact_core.api.deps import get_scheduler
from impact_core.services.scheduler import DelayedJobScheduler

router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/healthz")
async def healthz(scheduler: DelayedJobScheduler = Depends(get_scheduler)) -> dict[str, Any]:
    return {
        "status": "ok",
        "scheduler": "running" if scheduler.running else "stopped",
        "pending_jobs": len(scheduler.pending_keys()),
    }
