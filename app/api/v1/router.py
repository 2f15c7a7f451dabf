"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import health, monitoring

api_router = APIRouter()

# Health
api_router.include_router(health.router, prefix="/health", tags=["Health"])

# Error monitoring
api_router.include_router(monitoring.router, prefix="/monitoring", tags=["Monitoring"])
