"""Processing job coordinator: the durable state machine behind each upload.

A run moves a job through::

    pending(0) -> downloading(5) -> chunking/transcribing(5..65) -> processing(70)
    -> generating_content(75) -> processing(90) -> completed(100)

and any failure ends in ``failed`` with the last progress retained. The job is
persisted after every transition. Recognised metadata keys:

- trigger: ``fileName``, ``fileSize``, ``filePath``, ``startTime``
- per phase: ``phase``, ``message``, ``attempt``, ``lastUpdated``
- retry: ``retryCount``, ``retriedAt``
- completion: ``endTime``, ``totalTimeMs``, ``transcriptionId``, ``wordCount``,
  ``confidence``, ``categoriesGenerated``, ``keywords``, ``contentConfidence``
- failure: ``errorType``, ``failedAt``, ``attempts``; cancel: ``cancelledAt``
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
import logging
import math
import os
from typing import Callable

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt

from audiobook_processing.adapters.storage.base import storage_key_from_url
from audiobook_processing.core.logging_setup import safe_log_identifier
from audiobook_processing.domain.job_fsm import is_active
from audiobook_processing.errors import (
    ApiError,
    AudiobookNotFoundError,
    JobCancelledError,
    ProcessingError,
)
from audiobook_processing.repositories.memory import InMemoryStore, JobRecord
from audiobook_processing.schemas.audiobook import AudiobookStatus
from audiobook_processing.schemas.events import (
    AUDIOBOOK_UPLOADED,
    PROCESSING_COMPLETE,
    RETRY_PROCESSING,
    ProcessingCompleteEvent,
    RetryProcessingEvent,
    UploadedEvent,
)
from audiobook_processing.schemas.job import JobStatus
from audiobook_processing.schemas.pipeline import ContentGenerationOptions, ProgressObserver, TranscriptionPhase
from audiobook_processing.services.content_generation import ContentGenerationService
from audiobook_processing.services.events import EventBus
from audiobook_processing.services.transcription import TranscriptionOrchestrator

logger = logging.getLogger(__name__)

_TRANSCRIPTION_BAND_START = 5
_TRANSCRIPTION_BAND_WIDTH = 60

_PHASE_STATUS: dict[TranscriptionPhase, JobStatus] = {
    TranscriptionPhase.DOWNLOADING: JobStatus.DOWNLOADING,
    TranscriptionPhase.VALIDATING: JobStatus.CHUNKING,
    TranscriptionPhase.TRANSCRIBING: JobStatus.TRANSCRIBING,
}


@dataclass(slots=True, frozen=True)
class ProcessingOutcome:
    job_id: str
    audiobook_id: str
    success: bool
    transcription_id: str | None = None
    error: str | None = None
    cancelled: bool = False


def remap_transcription_progress(percent: int) -> int:
    """Map the orchestrator's 0..100 scale into the job's 5..65 band."""
    return math.floor(_TRANSCRIPTION_BAND_START + percent * _TRANSCRIPTION_BAND_WIDTH / 100)


class ProcessingCoordinator:
    def __init__(
        self,
        *,
        store: InMemoryStore,
        event_bus: EventBus,
        orchestrator: TranscriptionOrchestrator,
        content_service: ContentGenerationService,
        bucket: str,
        workflow_max_attempts: int = 3,
        content_options: ContentGenerationOptions | None = None,
    ) -> None:
        self._store = store
        self._events = event_bus
        self._orchestrator = orchestrator
        self._content = content_service
        self._bucket = bucket
        self._max_attempts = max(1, workflow_max_attempts)
        self._content_options = content_options

    def register(self) -> None:
        self._events.subscribe(AUDIOBOOK_UPLOADED, self.handle_uploaded)
        self._events.subscribe(RETRY_PROCESSING, self.handle_retry_processing)

    def handle_uploaded(self, event: UploadedEvent) -> ProcessingOutcome | None:
        job = self._open_job(event)
        if job is None:
            return None
        return self.run_job(job, event)

    def handle_retry_processing(self, event: RetryProcessingEvent) -> None:
        """Re-fire the upload trigger for a reset job; the whole pipeline restarts."""
        audiobook = self._store.get_audiobook(event.audiobook_id)
        if audiobook is None or not audiobook.file_url:
            job = self._store.get_job(event.original_job_id)
            error = AudiobookNotFoundError(event.audiobook_id)
            if job is not None and is_active(job.status):
                self._store.fail_job(job=job, error_message=str(error), metadata={"errorType": type(error).__name__})
            self._publish_complete(
                ProcessingCompleteEvent(
                    audiobook_id=event.audiobook_id,
                    job_id=event.original_job_id,
                    success=False,
                    error=str(error),
                )
            )
            return

        file_path = storage_key_from_url(audiobook.file_url, self._bucket)
        logger.info(
            "retry.retriggered job_id=%s audiobook_id=%s key=%s",
            event.original_job_id,
            event.audiobook_id,
            safe_log_identifier(file_path, prefix="key"),
        )
        self._events.publish(
            AUDIOBOOK_UPLOADED,
            UploadedEvent(
                audiobook_id=audiobook.id,
                file_name=os.path.basename(file_path),
                file_size=int(audiobook.file_size_bytes or 0),
                file_path=file_path,
                job_id=event.original_job_id,
            ),
        )

    def run_job(self, job: JobRecord, event: UploadedEvent) -> ProcessingOutcome:
        """Run the pipeline, re-attempting retryable failures up to the workflow limit.

        This is the single catch point for pipeline failures: the job is
        persisted as failed and a completion event is emitted before returning.
        """
        run_started = datetime.now(UTC)
        attempt = 1
        supervisor = Retrying(
            retry=retry_if_exception(lambda exc: _is_retryable(exc) and not self._was_finalized_elsewhere(job)),
            stop=stop_after_attempt(self._max_attempts),
            before_sleep=self._log_reattempt(job),
            reraise=True,
        )
        try:
            for attempt_state in supervisor:
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    return self._execute(job, event, attempt=attempt, run_started=run_started)
        except Exception as exc:
            if self._was_finalized_elsewhere(job):
                return self._finish_cancelled(job)
            return self._fail(job, event, exc, attempts=attempt)

    def _log_reattempt(self, job: JobRecord) -> Callable[[RetryCallState], None]:
        def log(state: RetryCallState) -> None:
            logger.warning(
                "job.attempt_failed job_id=%s attempt=%d max_attempts=%d error=%s retrying=true",
                job.id,
                state.attempt_number,
                self._max_attempts,
                type(state.outcome.exception()).__name__,
            )

        return log

    def _open_job(self, event: UploadedEvent) -> JobRecord | None:
        trigger_metadata = {
            "fileName": event.file_name,
            "fileSize": event.file_size,
            "filePath": event.file_path,
            "startTime": datetime.now(UTC).isoformat(),
        }
        if event.job_id is not None:
            job = self._store.get_job(event.job_id)
            if job is not None:
                if job.status is not JobStatus.PENDING:
                    logger.warning(
                        "job.retrigger_skipped job_id=%s status=%s reason=not_pending",
                        job.id,
                        job.status.value,
                    )
                    return None
                self._store.merge_job_metadata(job=job, metadata=trigger_metadata)
                return job

        try:
            job = self._store.create_job(audiobook_id=event.audiobook_id, metadata=trigger_metadata)
        except ApiError as exc:
            logger.warning(
                "job.create_skipped audiobook_id=%s code=%s",
                event.audiobook_id,
                exc.payload.code,
            )
            return None
        logger.info(
            "job.created job_id=%s audiobook_id=%s file=%s size=%d",
            job.id,
            job.audiobook_id,
            safe_log_identifier(event.file_name, prefix="file"),
            event.file_size,
        )
        return job

    def _execute(self, job: JobRecord, event: UploadedEvent, *, attempt: int, run_started: datetime) -> ProcessingOutcome:
        audiobook = self._store.get_audiobook(event.audiobook_id)
        if audiobook is None:
            raise AudiobookNotFoundError(event.audiobook_id)

        self._advance(
            job,
            JobStatus.DOWNLOADING,
            _TRANSCRIPTION_BAND_START,
            phase="downloading",
            message="Starting download from storage...",
            attempt=attempt,
        )
        transcription = self._orchestrator.transcribe_from_storage(
            self._bucket,
            event.file_path,
            job.id,
            on_progress=self._progress_observer(job),
        )

        self._advance(job, JobStatus.PROCESSING, 70, phase="saving", message="Saving transcription...")
        transcription_record = self._store.create_transcription(
            audiobook_id=audiobook.id,
            full_text=transcription.text,
            word_count=transcription.word_count,
            confidence_score=transcription.confidence,
            processing_time_ms=transcription.metadata.processing_time_ms,
        )

        self._advance(
            job,
            JobStatus.GENERATING_CONTENT,
            75,
            phase="generating_content",
            message="Generating description and categories with AI...",
        )
        content = self._content.generate_from_transcription(
            transcription,
            audiobook.title,
            audiobook.author,
            self._content_options,
        )

        self._advance(job, JobStatus.PROCESSING, 90, phase="updating", message="Updating audiobook with generated content...")
        self._store.apply_generated_content(
            job=job,
            audiobook=audiobook,
            description=content.description,
            ai_summary=content.summary,
            categories=content.categories,
        )

        ended = datetime.now(UTC)
        total_time_ms = int((ended - run_started).total_seconds() * 1000)
        self._store.complete_job(
            job=job,
            metadata={
                "phase": "complete",
                "message": "Processing complete",
                "endTime": ended.isoformat(),
                "totalTimeMs": total_time_ms,
                "transcriptionId": transcription_record.id,
                "wordCount": transcription.word_count,
                "confidence": transcription.confidence,
                "categoriesGenerated": list(content.categories),
                "keywords": list(content.keywords),
                "contentConfidence": content.metadata.confidence,
            },
        )
        logger.info(
            "job.completed job_id=%s audiobook_id=%s attempt=%d total_ms=%d words=%d",
            job.id,
            audiobook.id,
            attempt,
            total_time_ms,
            transcription.word_count,
        )

        self._publish_complete(
            ProcessingCompleteEvent(
                audiobook_id=audiobook.id,
                job_id=job.id,
                success=True,
                transcription_id=transcription_record.id,
                processing_time_ms=transcription.metadata.processing_time_ms,
            )
        )
        return ProcessingOutcome(
            job_id=job.id,
            audiobook_id=audiobook.id,
            success=True,
            transcription_id=transcription_record.id,
        )

    def _advance(self, job: JobRecord, status: JobStatus, progress: int, **metadata) -> None:
        self._ensure_active(job)
        previous = job.status
        self._store.update_job_progress(job=job, status=status, progress=progress, metadata=metadata)
        if previous is not status:
            logger.info(
                "job.transition job_id=%s prev_status=%s new_status=%s progress=%d",
                job.id,
                previous.value,
                status.value,
                job.progress,
            )

    def _progress_observer(self, job: JobRecord) -> ProgressObserver:
        def observe(phase: TranscriptionPhase, message: str, percent: int) -> None:
            if phase is TranscriptionPhase.ERROR:
                # The failure itself is recorded by the coordinator's catch point.
                if is_active(job.status):
                    self._store.merge_job_metadata(job=job, metadata={"phase": phase.value, "message": message})
                return
            self._advance(
                job,
                _PHASE_STATUS.get(phase, JobStatus.PROCESSING),
                remap_transcription_progress(percent),
                phase=phase.value,
                message=message,
            )

        return observe

    def _ensure_active(self, job: JobRecord) -> None:
        current = self._store.get_job(job.id) or job
        if not is_active(current.status):
            raise JobCancelledError(job.id)

    def _was_finalized_elsewhere(self, job: JobRecord) -> bool:
        current = self._store.get_job(job.id) or job
        return not is_active(current.status)

    def _fail(self, job: JobRecord, event: UploadedEvent, exc: Exception, *, attempts: int) -> ProcessingOutcome:
        message = str(exc) or type(exc).__name__
        if isinstance(exc, ProcessingError):
            logger.warning(
                "job.failed job_id=%s audiobook_id=%s attempts=%d error=%s retryable=%s",
                job.id,
                event.audiobook_id,
                attempts,
                type(exc).__name__,
                exc.retryable,
            )
        else:
            logger.exception("job.crashed job_id=%s audiobook_id=%s attempts=%d", job.id, event.audiobook_id, attempts)

        try:
            self._store.fail_job(
                job=job,
                error_message=message,
                metadata={
                    "phase": "failed",
                    "errorType": type(exc).__name__,
                    "failedAt": datetime.now(UTC).isoformat(),
                    "attempts": attempts,
                },
            )
        except ApiError:
            # Cancelled between the finalised check and this write.
            return self._finish_cancelled(job)
        audiobook = self._store.get_audiobook(event.audiobook_id)
        if audiobook is not None and audiobook.status is not AudiobookStatus.PROCESSING:
            # A failed run leaves the audiobook in processing.
            self._store.set_audiobook_status(audiobook=audiobook, status=AudiobookStatus.PROCESSING)

        self._publish_complete(
            ProcessingCompleteEvent(audiobook_id=event.audiobook_id, job_id=job.id, success=False, error=message)
        )
        return ProcessingOutcome(job_id=job.id, audiobook_id=event.audiobook_id, success=False, error=message)

    def _finish_cancelled(self, job: JobRecord) -> ProcessingOutcome:
        error = job.error_message or str(JobCancelledError(job.id))
        logger.info("job.cancel_observed job_id=%s status=%s", job.id, job.status.value)
        self._publish_complete(
            ProcessingCompleteEvent(audiobook_id=job.audiobook_id, job_id=job.id, success=False, error=error)
        )
        return ProcessingOutcome(
            job_id=job.id,
            audiobook_id=job.audiobook_id,
            success=False,
            error=error,
            cancelled=True,
        )

    def _publish_complete(self, event: ProcessingCompleteEvent) -> None:
        self._events.publish(PROCESSING_COMPLETE, event)


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, ProcessingError):
        return exc.retryable
    # FSM violations are never replayed.
    return not isinstance(exc, ApiError)


__all__ = ["ProcessingCoordinator", "ProcessingOutcome", "remap_transcription_progress"]
