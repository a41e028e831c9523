from fastapi import APIRouter, Depends, HTTPException, status as http_status

from scholarbridge.schemas.fetch_runs import StatsOut
from scholarbridge.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("", response_model=StatsOut)
async def get_stats(repository=Depends(get_repository)) -> StatsOut:
    try:
        return await repository.get_stats()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
