"""Audiobook upload and playback routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from audiobook_processing.routes.dependencies import get_job_service
from audiobook_processing.schemas.audiobook import AudioUrlResponse, UploadCompleteRequest, UploadCompleteResponse
from audiobook_processing.schemas.error import AudiobookFileMissingError, NotFoundError
from audiobook_processing.services.jobs import JobService

router = APIRouter(tags=["Audiobooks"])


@router.post(
    "/audiobooks/uploads/complete",
    response_model=UploadCompleteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def complete_upload(
    payload: UploadCompleteRequest,
    service: Annotated[JobService, Depends(get_job_service)],
) -> UploadCompleteResponse:
    return service.complete_upload(payload)


@router.get(
    "/audiobooks/{audiobookId}/audio-url",
    response_model=AudioUrlResponse,
    responses={404: {"model": NotFoundError}, 409: {"model": AudiobookFileMissingError}},
)
async def get_audio_url(
    audiobook_id: Annotated[str, Path(alias="audiobookId")],
    service: Annotated[JobService, Depends(get_job_service)],
) -> AudioUrlResponse:
    return service.get_audio_url(audiobook_id=audiobook_id)
