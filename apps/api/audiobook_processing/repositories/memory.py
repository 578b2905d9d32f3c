"""In-memory catalog and job store used by the service and tests."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from itertools import count
from threading import RLock
from typing import Any
from uuid import uuid4

from audiobook_processing.domain.job_fsm import ensure_transition, is_active, is_cancellable
from audiobook_processing.errors import ApiError, JobCancelledError
from audiobook_processing.schemas.audiobook import AudiobookStatus
from audiobook_processing.schemas.job import JobStatus

JOB_TYPE_TRANSCRIPTION = "transcription"

_sequence = count()


def _clamp_progress(value: int) -> int:
    return max(0, min(100, int(value)))


@dataclass(slots=True)
class AudiobookRecord:
    id: str
    title: str
    author: str
    status: AudiobookStatus
    created_at: datetime
    description: str | None = None
    ai_summary: str | None = None
    categories: list[str] = field(default_factory=list)
    file_url: str | None = None
    file_size_bytes: int | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class JobRecord:
    id: str
    audiobook_id: str
    job_type: str
    status: JobStatus
    progress: int
    created_at: datetime
    sequence: int
    metadata: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class TranscriptionRecord:
    id: str
    audiobook_id: str
    full_text: str
    word_count: int
    confidence_score: float
    processing_time_ms: int
    created_at: datetime


@dataclass(slots=True)
class InMemoryStore:
    """Deterministic persistence layer with atomic per-row updates.

    Every mutation runs under one re-entrant lock so concurrently running jobs
    observe whole writes only. Metadata writes are merges; progress writes are
    clamped to 0..100 and never move backwards while a job is active.
    """

    audiobooks: dict[str, AudiobookRecord] = field(default_factory=dict)
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    transcriptions: dict[str, TranscriptionRecord] = field(default_factory=dict)
    audiobook_write_count: int = 0
    job_write_count: int = 0
    transcription_write_count: int = 0
    _lock: RLock = field(default_factory=RLock, repr=False)

    # Audiobooks

    def create_audiobook(
        self,
        *,
        title: str,
        author: str,
        file_url: str | None = None,
        file_size_bytes: int | None = None,
        description: str | None = None,
        status: AudiobookStatus = AudiobookStatus.PROCESSING,
    ) -> AudiobookRecord:
        now = datetime.now(UTC)
        audiobook = AudiobookRecord(
            id=str(uuid4()),
            title=title,
            author=author,
            status=status,
            description=description,
            file_url=file_url,
            file_size_bytes=file_size_bytes,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.audiobooks[audiobook.id] = audiobook
            self.audiobook_write_count += 1
        return audiobook

    def get_audiobook(self, audiobook_id: str) -> AudiobookRecord | None:
        return self.audiobooks.get(audiobook_id)

    def set_audiobook_status(self, *, audiobook: AudiobookRecord, status: AudiobookStatus) -> None:
        with self._lock:
            audiobook.status = status
            audiobook.updated_at = datetime.now(UTC)
            self.audiobook_write_count += 1

    def apply_generated_content(
        self,
        *,
        job: JobRecord,
        audiobook: AudiobookRecord,
        description: str,
        ai_summary: str,
        categories: list[str],
    ) -> None:
        """Fold AI-derived fields into the catalog entry and publish it.

        Refused once ``job`` is no longer active, so a cancelled run never
        publishes its audiobook.
        """
        with self._lock:
            if not is_active(job.status):
                raise JobCancelledError(job.id)
            audiobook.description = description
            audiobook.ai_summary = ai_summary
            audiobook.categories = list(categories)
            audiobook.status = AudiobookStatus.ACTIVE
            audiobook.updated_at = datetime.now(UTC)
            self.audiobook_write_count += 1

    # Jobs

    def create_job(
        self,
        *,
        audiobook_id: str,
        metadata: dict[str, Any] | None = None,
        job_type: str = JOB_TYPE_TRANSCRIPTION,
    ) -> JobRecord:
        """Create a pending job; at most one active job may exist per audiobook."""
        with self._lock:
            existing = self.find_active_job(audiobook_id)
            if existing is not None:
                raise ApiError(
                    status_code=409,
                    code="JOB_ALREADY_RUNNING",
                    message="Processing job already exists for this audiobook",
                    details={"current_status": existing.status, "existing_job_id": existing.id},
                )

            now = datetime.now(UTC)
            job = JobRecord(
                id=str(uuid4()),
                audiobook_id=audiobook_id,
                job_type=job_type,
                status=JobStatus.PENDING,
                progress=0,
                metadata=dict(metadata or {}),
                created_at=now,
                updated_at=now,
                sequence=next(_sequence),
            )
            self.jobs[job.id] = job
            self.job_write_count += 1
            return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def find_active_job(self, audiobook_id: str) -> JobRecord | None:
        with self._lock:
            for job in self.jobs.values():
                if job.audiobook_id == audiobook_id and is_active(job.status):
                    return job
        return None

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        audiobook_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        """Return one page of jobs, newest first, plus the filtered total."""
        with self._lock:
            matching = [
                job
                for job in self.jobs.values()
                if (status is None or job.status is status)
                and (audiobook_id is None or job.audiobook_id == audiobook_id)
            ]
        matching.sort(key=lambda job: (job.created_at, job.sequence), reverse=True)
        start = max(0, offset)
        return matching[start : start + max(0, limit)], len(matching)

    def count_jobs_by_status(self) -> dict[str, int]:
        with self._lock:
            counts = Counter(job.status.value for job in self.jobs.values())
        return dict(sorted(counts.items()))

    def update_job_progress(
        self,
        *,
        job: JobRecord,
        status: JobStatus,
        progress: int,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Apply an FSM-validated status/progress mutation with a metadata merge."""
        with self._lock:
            ensure_transition(job.status, status)
            now = datetime.now(UTC)
            job.status = status
            job.progress = max(job.progress, _clamp_progress(progress))
            job.metadata = self._merge_metadata(job.metadata, metadata, now)
            job.updated_at = now
            self.job_write_count += 1

    def merge_job_metadata(self, *, job: JobRecord, metadata: dict[str, Any]) -> None:
        with self._lock:
            now = datetime.now(UTC)
            job.metadata = self._merge_metadata(job.metadata, metadata, now)
            job.updated_at = now
            self.job_write_count += 1

    def complete_job(self, *, job: JobRecord, metadata: dict[str, Any] | None = None) -> None:
        with self._lock:
            ensure_transition(job.status, JobStatus.COMPLETED)
            now = datetime.now(UTC)
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.completed_at = now
            job.metadata = self._merge_metadata(job.metadata, metadata, now)
            job.updated_at = now
            self.job_write_count += 1

    def fail_job(self, *, job: JobRecord, error_message: str, metadata: dict[str, Any] | None = None) -> None:
        """Mark a job failed; the last progress value is retained."""
        with self._lock:
            ensure_transition(job.status, JobStatus.FAILED)
            now = datetime.now(UTC)
            job.status = JobStatus.FAILED
            job.error_message = error_message
            job.completed_at = now
            job.metadata = self._merge_metadata(job.metadata, metadata, now)
            job.updated_at = now
            self.job_write_count += 1

    def cancel_job(self, *, job: JobRecord, error_message: str, metadata: dict[str, Any] | None = None) -> JobStatus:
        """Fail a cancellable job and return its audiobook to draft in one write.

        Returns the status the job was cancelled from.
        """
        with self._lock:
            previous = job.status
            if not is_cancellable(previous):
                raise ApiError(
                    status_code=409,
                    code="CANCEL_NOT_ALLOWED_STATE",
                    message="Job can only be cancelled before results are persisted",
                    details={"current_status": previous},
                )
            self.fail_job(job=job, error_message=error_message, metadata=metadata)
            audiobook = self.audiobooks.get(job.audiobook_id)
            if audiobook is not None:
                self.set_audiobook_status(audiobook=audiobook, status=AudiobookStatus.DRAFT)
            return previous

    def reset_job_for_retry(self, *, job: JobRecord) -> None:
        """Return a failed job to PENDING with progress 0; the only backwards progress write."""
        with self._lock:
            if job.status is not JobStatus.FAILED:
                raise ApiError(
                    status_code=409,
                    code="RETRY_NOT_ALLOWED_STATE",
                    message="Only failed jobs can be retried",
                    details={"current_status": job.status},
                )
            now = datetime.now(UTC)
            retry_count = int(job.metadata.get("retryCount", 0)) + 1
            job.status = JobStatus.PENDING
            job.progress = 0
            job.error_message = None
            job.completed_at = None
            job.metadata = self._merge_metadata(
                job.metadata,
                {"retryCount": retry_count, "retriedAt": now.isoformat()},
                now,
            )
            job.updated_at = now
            self.job_write_count += 1

    @staticmethod
    def _merge_metadata(
        current: dict[str, Any],
        updates: dict[str, Any] | None,
        now: datetime,
    ) -> dict[str, Any]:
        merged = dict(current)
        if updates:
            # None values never clear recorded phase history.
            merged.update({key: value for key, value in updates.items() if value is not None})
        merged["lastUpdated"] = now.isoformat()
        return merged

    # Transcriptions

    def create_transcription(
        self,
        *,
        audiobook_id: str,
        full_text: str,
        word_count: int,
        confidence_score: float,
        processing_time_ms: int,
    ) -> TranscriptionRecord:
        """Store the transcription for an audiobook, replacing one from an earlier run."""
        record = TranscriptionRecord(
            id=str(uuid4()),
            audiobook_id=audiobook_id,
            full_text=full_text,
            word_count=word_count,
            confidence_score=confidence_score,
            processing_time_ms=processing_time_ms,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            stale = [key for key, value in self.transcriptions.items() if value.audiobook_id == audiobook_id]
            for key in stale:
                del self.transcriptions[key]
            self.transcriptions[record.id] = record
            self.transcription_write_count += 1
        return record

    def get_transcription(self, transcription_id: str) -> TranscriptionRecord | None:
        return self.transcriptions.get(transcription_id)

    def get_transcription_for_audiobook(self, audiobook_id: str) -> TranscriptionRecord | None:
        for record in self.transcriptions.values():
            if record.audiobook_id == audiobook_id:
                return record
        return None
