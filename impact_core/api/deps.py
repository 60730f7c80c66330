from functools import lru_cache

from fastapi import Depends

from impact_core.core.config import Settings, get_settings
from impact_core.services.analysis import AnalysisCoordinator
from impact_core.services.analysis_logs import AnalysisLogStore
from impact_core.services.notifier import CodeNotifier, build_notifier
from impact_core.services.ollama_client import OllamaRiskPredictor
from impact_core.services.registration_flow import RegistrationService
from impact_core.services.registrations import PendingRegistrationStore
from impact_core.services.scheduler import DelayedJobScheduler
from impact_core.services.store import InMemoryPullRequestStore


@lru_cache
def get_scheduler() -> DelayedJobScheduler:
    settings = get_settings()
    return DelayedJobScheduler(default_delay_seconds=settings.auto_analysis_delay_seconds)


@lru_cache
def get_pull_request_store() -> InMemoryPullRequestStore:
    return InMemoryPullRequestStore()


@lru_cache
def get_analysis_log_store() -> AnalysisLogStore:
    return AnalysisLogStore()


def get_predictor(settings: Settings = Depends(get_settings)) -> OllamaRiskPredictor:
    return OllamaRiskPredictor.from_settings(settings)


def get_coordinator(
    store: InMemoryPullRequestStore = Depends(get_pull_request_store),
    scheduler: DelayedJobScheduler = Depends(get_scheduler),
    predictor: OllamaRiskPredictor = Depends(get_predictor),
    logs: AnalysisLogStore = Depends(get_analysis_log_store),
) -> AnalysisCoordinator:
    return AnalysisCoordinator(store=store, scheduler=scheduler, predictor=predictor, logs=logs)


@lru_cache
def get_registration_store() -> PendingRegistrationStore:
    settings = get_settings()
    return PendingRegistrationStore(
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
    )


@lru_cache
def get_notifier() -> CodeNotifier:
    return build_notifier(get_settings())


@lru_cache
def get_registration_service() -> RegistrationService:
    settings = get_settings()
    return RegistrationService(
        store=get_registration_store(),
        notifier=get_notifier(),
        resend_cooldown_seconds=settings.otp_resend_cooldown_seconds,
    )


def reset_dependencies() -> None:
    for factory in (
        get_scheduler,
        get_pull_request_store,
        get_analysis_log_store,
        get_registration_store,
        get_notifier,
        get_registration_service,
    ):
        factory.cache_clear()
