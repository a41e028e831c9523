from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status as http_status

from scholarbridge.schemas.admin import ScholarshipCreatedOut, ScholarshipPatchRequest, VerificationRequest
from scholarbridge.schemas.scholarships import ScholarshipRecord, ValidatedCandidate
from scholarbridge.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from scholarbridge.services.validation import deadline_window_violation

router = APIRouter()

MANUAL_SOURCE = "manual"


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RepositoryValidationError):
        code = http_status.HTTP_422_UNPROCESSABLE_CONTENT
    elif isinstance(exc, RepositoryConflictError):
        code = http_status.HTTP_409_CONFLICT
    elif isinstance(exc, RepositoryNotFoundError):
        code = http_status.HTTP_404_NOT_FOUND
    else:
        code = http_status.HTTP_503_SERVICE_UNAVAILABLE
    return HTTPException(status_code=code, detail=str(exc))


_HANDLED = (
    RepositoryValidationError,
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
)


@router.post("/scholarships", response_model=ScholarshipCreatedOut, status_code=http_status.HTTP_201_CREATED)
async def create_scholarship(payload: ValidatedCandidate, repository=Depends(get_repository)) -> ScholarshipCreatedOut:
    violation = deadline_window_violation(payload.deadline, now=datetime.now(timezone.utc))
    if violation:
        raise HTTPException(status_code=http_status.HTTP_422_UNPROCESSABLE_CONTENT, detail=violation)
    try:
        record_id = await repository.insert_scholarship(payload, source=MANUAL_SOURCE)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return ScholarshipCreatedOut(id=record_id)


@router.patch("/scholarships/{scholarship_id}", response_model=ScholarshipRecord)
async def patch_scholarship(
    scholarship_id: str,
    payload: ScholarshipPatchRequest,
    repository=Depends(get_repository),
) -> ScholarshipRecord:
    try:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        return await repository.update_scholarship(scholarship_id, changes)
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@router.post("/scholarships/{scholarship_id}/verification", response_model=ScholarshipRecord)
async def set_verification(
    scholarship_id: str,
    payload: VerificationRequest,
    repository=Depends(get_repository),
) -> ScholarshipRecord:
    try:
        return await repository.set_scholarship_verified(scholarship_id, verified=payload.verified, notes=payload.notes)
    except _HANDLED as exc:
        raise _http_error(exc) from exc


@router.delete("/scholarships/{scholarship_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_scholarship(scholarship_id: str, repository=Depends(get_repository)) -> Response:
    try:
        await repository.delete_scholarship(scholarship_id)
    except _HANDLED as exc:
        raise _http_error(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)
