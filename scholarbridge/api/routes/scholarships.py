from fastapi import APIRouter, Depends, HTTPException, Query, status as http_status

from scholarbridge.schemas.scholarships import ScholarshipListOut, ScholarshipRecord
from scholarbridge.services.repository import (
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    get_repository,
)

router = APIRouter()


@router.get("", response_model=ScholarshipListOut)
async def list_scholarships(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    repository=Depends(get_repository),
) -> ScholarshipListOut:
    try:
        records = await repository.list_scholarships(limit=limit, offset=offset)
        total = await repository.count_scholarships()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return ScholarshipListOut(data=records, total=total, limit=limit, offset=offset)


@router.get("/{scholarship_id}", response_model=ScholarshipRecord)
async def get_scholarship(scholarship_id: str, repository=Depends(get_repository)) -> ScholarshipRecord:
    try:
        return await repository.get_scholarship(scholarship_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
