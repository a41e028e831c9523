from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status as http_status

from scholarbridge.jobs.fetch_cycle import FetchCycleController, get_fetch_cycle_controller
from scholarbridge.schemas.fetch_runs import FetchRunAccepted, FetchRunOut
from scholarbridge.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("", response_model=list[FetchRunOut])
async def list_fetch_runs(
    limit: int = Query(default=20, ge=1, le=100),
    repository=Depends(get_repository),
) -> list[FetchRunOut]:
    try:
        return await repository.list_fetch_runs(limit=limit)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("", response_model=FetchRunAccepted, status_code=http_status.HTTP_202_ACCEPTED)
async def trigger_fetch_run(
    background_tasks: BackgroundTasks,
    controller: FetchCycleController = Depends(get_fetch_cycle_controller),
) -> FetchRunAccepted:
    # The cycle records its own outcome; the caller polls GET /fetch-runs.
    background_tasks.add_task(controller.run_fetch_cycle)
    return FetchRunAccepted(message="fetch cycle started")
