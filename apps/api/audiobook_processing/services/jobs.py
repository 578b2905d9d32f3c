"""Admin job service layer."""

from __future__ import annotations

from datetime import UTC, datetime
import logging
import os
from typing import Callable

from pydantic import BaseModel

from audiobook_processing.adapters.storage.base import ObjectStore, normalize_object_key, storage_key_from_url
from audiobook_processing.core.logging_setup import safe_log_identifier
from audiobook_processing.errors import ApiError
from audiobook_processing.repositories.memory import AudiobookRecord, InMemoryStore, JobRecord
from audiobook_processing.schemas.audiobook import (
    AudioUrlResponse,
    Audiobook,
    AudiobookStatus,
    Transcription,
    UploadCompleteRequest,
    UploadCompleteResponse,
)
from audiobook_processing.schemas.events import AUDIOBOOK_UPLOADED, RETRY_PROCESSING, RetryProcessingEvent, UploadedEvent
from audiobook_processing.schemas.job import (
    AudiobookSummary,
    CreateJobResponse,
    Job,
    JobListResponse,
    JobStatus,
    Pagination,
    RetryJobResponse,
)
from audiobook_processing.services.transcription import TranscriptionOrchestrator

logger = logging.getLogger(__name__)

CANCEL_MESSAGE = "Job cancelled by admin"
SUPERSEDED_MESSAGE = "Superseded by forced reprocessing"
_LIST_LIMIT_MAX = 100

Dispatch = Callable[[str, BaseModel], None]


def _not_found() -> ApiError:
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


class JobService:
    """Admin operations over processing jobs.

    ``dispatch`` hands an event to the pipeline; routes bind it to a background
    task so requests return before processing runs.
    """

    def __init__(
        self,
        store: InMemoryStore,
        *,
        object_store: ObjectStore,
        bucket: str,
        dispatch: Dispatch,
        signed_url_ttl_seconds: int = 3600,
    ) -> None:
        self._store = store
        self._object_store = object_store
        self._bucket = bucket
        self._signed_url_ttl_seconds = signed_url_ttl_seconds
        self._dispatch = dispatch

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        audiobook_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> JobListResponse:
        limit = max(1, min(limit, _LIST_LIMIT_MAX))
        offset = max(0, offset)
        records, total = self._store.list_jobs(status=status, audiobook_id=audiobook_id, limit=limit, offset=offset)
        return JobListResponse(
            jobs=[self._to_job(record) for record in records],
            pagination=Pagination(total=total, limit=limit, offset=offset, has_more=offset + len(records) < total),
            statistics=self._store.count_jobs_by_status(),
        )

    def get_job(self, *, job_id: str) -> Job:
        record = self._store.get_job(job_id)
        if record is None:
            raise _not_found()
        return self._to_job(record)

    def create_job(self, *, audiobook_id: str, force: bool = False) -> CreateJobResponse:
        audiobook = self._store.get_audiobook(audiobook_id)
        if audiobook is None:
            raise _not_found()
        if not audiobook.file_url:
            raise ApiError(
                status_code=409,
                code="AUDIOBOOK_FILE_MISSING",
                message="Audiobook has no uploaded audio file",
            )

        superseded_job_id: str | None = None
        existing = self._store.find_active_job(audiobook.id)
        if existing is not None and force:
            self._store.fail_job(
                job=existing,
                error_message=SUPERSEDED_MESSAGE,
                metadata={"supersededAt": datetime.now(UTC).isoformat()},
            )
            superseded_job_id = existing.id
            logger.info("job.superseded job_id=%s audiobook_id=%s", existing.id, audiobook.id)

        file_path = storage_key_from_url(audiobook.file_url, self._bucket)
        record = self._store.create_job(
            audiobook_id=audiobook.id,
            metadata={"fileName": os.path.basename(file_path), "filePath": file_path, "force": force},
        )
        if audiobook.status is not AudiobookStatus.PROCESSING:
            self._store.set_audiobook_status(audiobook=audiobook, status=AudiobookStatus.PROCESSING)

        self._dispatch(
            AUDIOBOOK_UPLOADED,
            UploadedEvent(
                audiobook_id=audiobook.id,
                file_name=os.path.basename(file_path),
                file_size=int(audiobook.file_size_bytes or 0),
                file_path=file_path,
                job_id=record.id,
            ),
        )
        logger.info(
            "job.requested job_id=%s audiobook_id=%s force=%s key=%s",
            record.id,
            audiobook.id,
            force,
            safe_log_identifier(file_path, prefix="key"),
        )
        return CreateJobResponse(
            audiobook_id=audiobook.id,
            job_id=record.id,
            status=record.status,
            superseded_job_id=superseded_job_id,
        )

    def retry_job(self, *, job_id: str) -> RetryJobResponse:
        record = self._store.get_job(job_id)
        if record is None:
            raise _not_found()

        active = self._store.find_active_job(record.audiobook_id)
        if active is not None and active.id != record.id:
            raise ApiError(
                status_code=409,
                code="JOB_ALREADY_RUNNING",
                message="Processing job already exists for this audiobook",
                details={"current_status": active.status, "existing_job_id": active.id},
            )

        try:
            self._store.reset_job_for_retry(job=record)
        except ApiError as exc:
            logger.warning(
                "retry.rejected job_id=%s code=%s current_status=%s",
                record.id,
                exc.payload.code,
                record.status.value,
            )
            raise

        audiobook = self._store.get_audiobook(record.audiobook_id)
        if audiobook is not None:
            self._store.set_audiobook_status(audiobook=audiobook, status=AudiobookStatus.PROCESSING)

        self._dispatch(
            RETRY_PROCESSING,
            RetryProcessingEvent(audiobook_id=record.audiobook_id, original_job_id=record.id),
        )
        logger.info(
            "retry.dispatched job_id=%s audiobook_id=%s retry_count=%s",
            record.id,
            record.audiobook_id,
            record.metadata.get("retryCount"),
        )
        return RetryJobResponse(
            job_id=record.id,
            audiobook_id=record.audiobook_id,
            status=record.status,
            progress=record.progress,
        )

    def cancel_job(self, *, job_id: str) -> Job:
        record = self._store.get_job(job_id)
        if record is None:
            raise _not_found()

        try:
            previous_status = self._store.cancel_job(
                job=record,
                error_message=CANCEL_MESSAGE,
                metadata={"cancelledAt": datetime.now(UTC).isoformat()},
            )
        except ApiError as exc:
            logger.warning(
                "cancel.rejected job_id=%s code=%s current_status=%s",
                record.id,
                exc.payload.code,
                record.status.value,
            )
            raise

        logger.info(
            "cancel.applied job_id=%s prev_status=%s new_status=%s",
            record.id,
            previous_status.value,
            record.status.value,
        )
        return self._to_job(record)

    def complete_upload(self, payload: UploadCompleteRequest) -> UploadCompleteResponse:
        """Register an uploaded audio object and fire the upload trigger."""
        key = normalize_object_key(self._bucket, payload.file_path)
        audiobook = self._store.create_audiobook(
            title=payload.title,
            author=payload.author,
            description=payload.description,
            file_url=self._object_store.get_public_url(self._bucket, key),
            file_size_bytes=payload.file_size,
        )
        self._dispatch(
            AUDIOBOOK_UPLOADED,
            UploadedEvent(
                audiobook_id=audiobook.id,
                file_name=os.path.basename(key),
                file_size=payload.file_size,
                file_path=key,
            ),
        )
        minutes = TranscriptionOrchestrator.estimate_processing_minutes(payload.file_size)
        logger.info(
            "upload.completed audiobook_id=%s key=%s size=%d",
            audiobook.id,
            safe_log_identifier(key, prefix="key"),
            payload.file_size,
        )
        return UploadCompleteResponse(
            audiobook=self._to_audiobook(audiobook),
            estimated_processing_minutes=minutes,
            estimated_cost_usd=TranscriptionOrchestrator.estimate_cost(minutes),
        )

    def get_audio_url(self, *, audiobook_id: str) -> AudioUrlResponse:
        audiobook = self._store.get_audiobook(audiobook_id)
        if audiobook is None:
            raise _not_found()
        if not audiobook.file_url:
            raise ApiError(
                status_code=409,
                code="AUDIOBOOK_FILE_MISSING",
                message="Audiobook has no uploaded audio file",
            )
        key = storage_key_from_url(audiobook.file_url, self._bucket)
        return AudioUrlResponse(
            audiobook_id=audiobook.id,
            url=self._object_store.get_signed_url(self._bucket, key, self._signed_url_ttl_seconds),
            expires_in=self._signed_url_ttl_seconds,
        )

    def get_transcription(self, *, transcription_id: str) -> Transcription:
        record = self._store.get_transcription(transcription_id)
        if record is None:
            raise _not_found()
        return Transcription(
            id=record.id,
            audiobook_id=record.audiobook_id,
            full_text=record.full_text,
            word_count=record.word_count,
            confidence_score=record.confidence_score,
            processing_time_ms=record.processing_time_ms,
            created_at=record.created_at,
        )

    def _to_job(self, record: JobRecord) -> Job:
        audiobook = self._store.get_audiobook(record.audiobook_id)
        return Job(
            id=record.id,
            audiobook_id=record.audiobook_id,
            job_type=record.job_type,
            status=record.status,
            progress=record.progress,
            error_message=record.error_message,
            metadata=dict(record.metadata),
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at,
            audiobook=None
            if audiobook is None
            else AudiobookSummary(
                id=audiobook.id,
                title=audiobook.title,
                author=audiobook.author,
                status=audiobook.status,
                description=audiobook.description,
                categories=list(audiobook.categories),
            ),
        )

    @staticmethod
    def _to_audiobook(record: AudiobookRecord) -> Audiobook:
        return Audiobook(
            id=record.id,
            title=record.title,
            author=record.author,
            status=record.status,
            description=record.description,
            ai_summary=record.ai_summary,
            categories=list(record.categories),
            file_url=record.file_url,
            file_size_bytes=record.file_size_bytes,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


__all__ = ["CANCEL_MESSAGE", "JobService", "SUPERSEDED_MESSAGE"]
