"""Speech-to-text client over the OpenAI audio transcription endpoint."""

from __future__ import annotations

import logging
import os
import time
from typing import Callable

from openai import OpenAI

from audiobook_processing.adapters.ai.retry import call_with_retry
from audiobook_processing.core.logging_setup import timed
from audiobook_processing.errors import AudioFileNotFoundError, FileTooLargeError
from audiobook_processing.schemas.pipeline import RawTranscription

logger = logging.getLogger(__name__)

_BYTES_PER_MB = 1024 * 1024


class TranscriptionClient:
    def __init__(
        self,
        client: OpenAI,
        *,
        model: str = "whisper-1",
        max_file_mb: float = 25,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._model = model
        self._max_file_mb = max_file_mb
        self._max_attempts = max_attempts
        self._sleep = sleep

    def transcribe(self, local_path: str) -> RawTranscription:
        """Transcribe a local audio file no larger than the API's size ceiling."""
        if not os.path.isfile(local_path):
            raise AudioFileNotFoundError(local_path)
        size_mb = os.path.getsize(local_path) / _BYTES_PER_MB
        if size_mb > self._max_file_mb:
            raise FileTooLargeError(size_mb, self._max_file_mb)

        def _request() -> RawTranscription:
            with open(local_path, "rb") as audio_file:
                response = self._client.audio.transcriptions.create(
                    model=self._model,
                    file=audio_file,
                    response_format="verbose_json",
                )
            text = getattr(response, "text", None) or ""
            duration = getattr(response, "duration", None) or 0
            return RawTranscription(text=text, duration=float(duration))

        with timed(logger, "ai.transcribe", model=self._model, size_mb=f"{size_mb:.2f}"):
            return call_with_retry(
                _request,
                name="ai.transcribe",
                max_attempts=self._max_attempts,
                sleep=self._sleep,
            )


__all__ = ["TranscriptionClient"]
