"""Admin job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, status

from audiobook_processing.routes.dependencies import get_job_service
from audiobook_processing.schemas.error import (
    AudiobookFileMissingError,
    FsmTransitionError,
    JobStateConflictError,
    NotFoundError,
)
from audiobook_processing.schemas.job import (
    CreateJobRequest,
    CreateJobResponse,
    Job,
    JobListResponse,
    JobStatus,
    RetryJobResponse,
)
from audiobook_processing.services.jobs import JobService

router = APIRouter(tags=["Jobs"])


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
    service: Annotated[JobService, Depends(get_job_service)],
    job_status: Annotated[JobStatus | None, Query(alias="status")] = None,
    audiobook_id: Annotated[str | None, Query(alias="audiobookId")] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> JobListResponse:
    return service.list_jobs(status=job_status, audiobook_id=audiobook_id, limit=limit, offset=offset)


@router.post(
    "/jobs",
    response_model=CreateJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"model": NotFoundError},
        409: {"model": JobStateConflictError | AudiobookFileMissingError},
    },
)
async def create_job(
    payload: CreateJobRequest,
    service: Annotated[JobService, Depends(get_job_service)],
) -> CreateJobResponse:
    return service.create_job(audiobook_id=payload.audiobook_id, force=payload.force)


@router.get(
    "/jobs/{jobId}",
    response_model=Job,
    responses={404: {"model": NotFoundError}},
)
async def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Job:
    return service.get_job(job_id=job_id)


@router.post(
    "/jobs/{jobId}/retry",
    response_model=RetryJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"model": NotFoundError},
        409: {"model": JobStateConflictError},
    },
)
async def retry_job(
    job_id: Annotated[str, Path(alias="jobId")],
    service: Annotated[JobService, Depends(get_job_service)],
) -> RetryJobResponse:
    return service.retry_job(job_id=job_id)


@router.post(
    "/jobs/{jobId}/cancel",
    response_model=Job,
    responses={
        404: {"model": NotFoundError},
        409: {"model": JobStateConflictError | FsmTransitionError},
    },
)
async def cancel_job(
    job_id: Annotated[str, Path(alias="jobId")],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Job:
    return service.cancel_job(job_id=job_id)
