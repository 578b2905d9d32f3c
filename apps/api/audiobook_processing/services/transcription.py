"""Download, validate and transcribe an uploaded audio object."""

from __future__ import annotations

import logging
import math
import os
import shutil
import tempfile
import time

from audiobook_processing.adapters.ai.transcription import TranscriptionClient
from audiobook_processing.adapters.storage.base import ObjectStore, normalize_object_key
from audiobook_processing.core.logging_setup import safe_log_identifier, timed
from audiobook_processing.errors import StorageDownloadError, TranscriptionFailedError
from audiobook_processing.schemas.pipeline import (
    ProgressObserver,
    TranscriptionMetadata,
    TranscriptionPhase,
    TranscriptionResult,
)
from audiobook_processing.services.audio_validator import AudioValidator

logger = logging.getLogger(__name__)

_BYTES_PER_MB = 1024 * 1024
_FALLBACK_FILE_NAME = "original_audio"
_SINGLE_FILE_CONFIDENCE = 1.0
_WHISPER_USD_PER_MINUTE = 0.006


def count_words(text: str) -> int:
    return len(text.split())


class TranscriptionOrchestrator:
    """Runs one transcription attempt inside an isolated scratch directory.

    Phases are reported in order: downloading (10, 20), validating (25, 30),
    transcribing (50, 90), complete (100). Any failure reports the error
    phase and is raised as ``TranscriptionFailedError`` chained to its cause.
    """

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        client: TranscriptionClient,
        validator: AudioValidator,
        scratch_root: str,
    ) -> None:
        self._object_store = object_store
        self._client = client
        self._validator = validator
        self._scratch_root = scratch_root

    def transcribe_from_storage(
        self,
        bucket: str,
        remote_key: str,
        job_id: str,
        on_progress: ProgressObserver | None = None,
    ) -> TranscriptionResult:
        started = time.perf_counter()
        report = on_progress or _log_only
        scratch_dir: str | None = None
        try:
            scratch_dir = self._create_scratch_dir(job_id)
            key = normalize_object_key(bucket, remote_key)
            local_path = os.path.join(scratch_dir, os.path.basename(key) or _FALLBACK_FILE_NAME)

            self._download(bucket, key, local_path, report)

            report(TranscriptionPhase.VALIDATING, "Validating audio file...", 25)
            audio = self._validator.validate(local_path)
            report(
                TranscriptionPhase.VALIDATING,
                f"Audio validated: format={audio.format} size={audio.size_bytes / _BYTES_PER_MB:.2f}MB",
                30,
            )

            report(TranscriptionPhase.TRANSCRIBING, "Transcribing audio...", 50)
            raw = self._client.transcribe(local_path)
            report(TranscriptionPhase.TRANSCRIBING, f"Transcription received ({len(raw.text)} characters)", 90)

            word_count = count_words(raw.text)
            result = TranscriptionResult(
                text=raw.text,
                duration=raw.duration,
                word_count=word_count,
                confidence=_SINGLE_FILE_CONFIDENCE,
                metadata=TranscriptionMetadata(
                    original_file_size=audio.size_bytes,
                    processing_time_ms=int((time.perf_counter() - started) * 1000),
                ),
            )
            report(
                TranscriptionPhase.COMPLETE,
                f"Transcription complete: {word_count} words, {result.confidence * 100:.1f}% confidence",
                100,
            )
            return result
        except Exception as exc:
            report(TranscriptionPhase.ERROR, f"Transcription failed: {exc}", 0)
            raise TranscriptionFailedError(f"Transcription failed: {exc}") from exc
        finally:
            if scratch_dir is not None:
                self._cleanup(scratch_dir)

    def _create_scratch_dir(self, job_id: str) -> str:
        os.makedirs(self._scratch_root, exist_ok=True)
        # mkdtemp adds a random suffix, so concurrent or retried runs never share a directory.
        prefix = f"job-{job_id}-{int(time.time() * 1000)}-"
        return tempfile.mkdtemp(prefix=prefix, dir=self._scratch_root)

    def _download(self, bucket: str, key: str, local_path: str, report: ProgressObserver) -> None:
        file_name = os.path.basename(key)
        safe_key = safe_log_identifier(key, prefix="key")
        report(TranscriptionPhase.DOWNLOADING, f"Downloading {file_name}...", 10)
        try:
            with timed(logger, "storage.download", bucket=bucket, key=safe_key):
                data = self._object_store.download(bucket, key)
            with open(local_path, "wb") as handle:
                handle.write(data)
        except Exception as exc:
            logger.warning("storage.download_failed bucket=%s key=%s reason=%s", bucket, safe_key, type(exc).__name__)
            raise StorageDownloadError(f"Failed to download audio file: {exc}") from exc
        report(
            TranscriptionPhase.DOWNLOADING,
            f"Downloaded {file_name} ({len(data) / _BYTES_PER_MB:.2f}MB)",
            20,
        )

    @staticmethod
    def _cleanup(scratch_dir: str) -> None:
        try:
            shutil.rmtree(scratch_dir)
        except OSError as exc:
            logger.warning("scratch.cleanup_failed path=%s reason=%s", scratch_dir, exc)
        else:
            logger.debug("scratch.cleaned path=%s", scratch_dir)

    @staticmethod
    def estimate_processing_minutes(file_size_bytes: int) -> int:
        """Rough wall-clock estimate: about 45 seconds per MB."""
        return math.ceil(file_size_bytes / _BYTES_PER_MB * 0.75)

    @staticmethod
    def estimate_cost(duration_minutes: float) -> float:
        return round(duration_minutes * _WHISPER_USD_PER_MINUTE, 4)


def _log_only(phase: TranscriptionPhase, message: str, percent: int) -> None:
    logger.info("transcription.progress phase=%s percent=%d message=%s", phase.value, percent, message)


__all__ = ["TranscriptionOrchestrator", "count_words"]
