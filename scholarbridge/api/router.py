from fastapi import APIRouter

from scholarbridge.api.routes import admin, fetch_runs, health, scholarships, stats

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(scholarships.router, prefix="/scholarships", tags=["public"])
api_router.include_router(stats.router, prefix="/stats", tags=["public"])
api_router.include_router(fetch_runs.router, prefix="/fetch-runs", tags=["ingestion"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
