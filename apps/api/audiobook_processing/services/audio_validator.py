"""Local audio file checks that gate transcription."""

from __future__ import annotations

import os

from audiobook_processing.errors import AudioFileNotFoundError, AudioProcessingError, FileTooLargeError
from audiobook_processing.schemas.pipeline import AudioMetadata

_BYTES_PER_MB = 1024 * 1024

# Extensions accepted by the transcription API, mapped to the reported format.
SUPPORTED_FORMATS: dict[str, str] = {
    ".mp3": "mp3",
    ".mpga": "mp3",
    ".mpeg": "mp3",
    ".m4a": "m4a",
    ".m4b": "m4a",
    ".mp4": "mp4",
    ".wav": "wav",
    ".webm": "webm",
    ".ogg": "ogg",
    ".oga": "ogg",
    ".flac": "flac",
    ".aac": "aac",
}
UNKNOWN_FORMAT = "unknown"


class AudioValidator:
    def __init__(self, max_size_mb: float = 25) -> None:
        self._max_size_mb = max_size_mb

    def validate(self, path: str) -> AudioMetadata:
        """Stat a local file and enforce the size ceiling.

        Unknown extensions are reported as ``unknown``, not rejected.
        """
        try:
            stats = os.stat(path)
        except FileNotFoundError as exc:
            raise AudioFileNotFoundError(path) from exc
        except OSError as exc:
            raise AudioProcessingError(f"Failed to analyze audio file: {exc}") from exc

        if not os.path.isfile(path):
            raise AudioProcessingError(f"Not a regular file: {path}")

        size_mb = stats.st_size / _BYTES_PER_MB
        if size_mb > self._max_size_mb:
            raise FileTooLargeError(size_mb, self._max_size_mb)

        return AudioMetadata(size_bytes=stats.st_size, format=detect_format(path))


def detect_format(name: str) -> str:
    _, extension = os.path.splitext(name)
    return SUPPORTED_FORMATS.get(extension.lower(), UNKNOWN_FORMAT)


__all__ = ["AudioValidator", "SUPPORTED_FORMATS", "UNKNOWN_FORMAT", "detect_format"]
