"""Transcription read routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from audiobook_processing.routes.dependencies import get_job_service
from audiobook_processing.schemas.audiobook import Transcription
from audiobook_processing.schemas.error import NotFoundError
from audiobook_processing.services.jobs import JobService

router = APIRouter(tags=["Transcriptions"])


@router.get(
    "/transcriptions/{transcriptionId}",
    response_model=Transcription,
    responses={404: {"model": NotFoundError}},
)
async def get_transcription(
    transcription_id: Annotated[str, Path(alias="transcriptionId")],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Transcription:
    return service.get_transcription(transcription_id=transcription_id)
