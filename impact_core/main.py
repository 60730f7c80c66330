import asyncio
from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from impact_core.api.deps import get_registration_store, get_scheduler, reset_dependencies
from impact_core.api.router import api_router
from impact_core.core.config import get_settings
from impact_core.core.telemetry import (
    TelemetryRuntime,
    configure_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from impact_core.jobs.registration_reaper import run_registration_reaper, stop_reaper

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    scheduler = get_scheduler()
    scheduler.start()
    reaper = asyncio.create_task(
        run_registration_reaper(
            get_registration_store(),
            interval_seconds=settings.otp_reaper_interval_seconds,
        ),
        name="registration-reaper",
    )
    try:
        yield
    finally:
        await stop_reaper(reaper)
        # Pending auto-analysis timers do not survive a restart.
        await scheduler.shutdown()
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        reset_dependencies()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
