from fastapi import APIRouter

from impact_core.api.routes import auth, health, pull_requests, webhooks

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(pull_requests.router, prefix="/prs", tags=["pull-requests"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
