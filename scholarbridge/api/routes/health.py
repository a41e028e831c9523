from typing import Any

from fastapi import APIRouter, Depends

from scholarbridge.core.config import Settings, get_settings
from scholarbridge.services.providers.registry import ProviderConfig, available_providers
from scholarbridge.services.repository import get_repository

router = APIRouter()


@router.get("/")
async def root(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> dict[str, Any]:
    return {
        "service": settings.app_name,
        "environment": settings.environment,
        "storage": repository.backend,
        "providers": available_providers(ProviderConfig.from_settings(settings)),
    }


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(repository=Depends(get_repository)) -> dict[str, Any]:
    # RepositoryUnavailableError is turned into a 503 by the app-wide handler.
    return {"status": "ready", "storage": repository.backend, "listed": await repository.count_scholarships()}
