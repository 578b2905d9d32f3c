"""Application exception types."""

from __future__ import annotations

from audiobook_processing.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class ProcessingError(Exception):
    """Base class for failures raised while a processing job runs.

    ``retryable`` is true when the class itself is retryable or when the
    chained ``__cause__`` is, so step wrappers inherit the classification of
    the fault they wrap.
    """

    _retryable: bool = False

    @property
    def retryable(self) -> bool:
        if self._retryable:
            return True
        cause = self.__cause__
        return isinstance(cause, ProcessingError) and cause.retryable


class AudioProcessingError(ProcessingError):
    """Local audio handling failed."""


class AudioFileNotFoundError(AudioProcessingError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Audio file not found: {path}")


class FileTooLargeError(AudioProcessingError):
    def __init__(self, size_mb: float, limit_mb: float) -> None:
        self.size_mb = size_mb
        self.limit_mb = limit_mb
        super().__init__(
            f"File size {size_mb:.2f}MB exceeds maximum limit of {limit_mb:g}MB. "
            "Chunked transcription is not supported."
        )


class StorageDownloadError(AudioProcessingError):
    """Object store download failed; the origin error is the ``__cause__``."""


class AudiobookNotFoundError(ProcessingError):
    def __init__(self, audiobook_id: str) -> None:
        self.audiobook_id = audiobook_id
        super().__init__(f"Audiobook not found: {audiobook_id}")


class RemoteServiceError(ProcessingError):
    """A remote AI service call failed."""

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class RateLimitError(RemoteServiceError):
    _retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=429, code="rate_limit_exceeded")


class QuotaExceededError(RemoteServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(f"OpenAI quota exceeded: {message}", status_code=429, code="quota_exceeded")


class RemoteClientError(RemoteServiceError):
    """Non rate-limit 4xx response; the request itself is wrong."""


class TransientServiceError(RemoteServiceError):
    _retryable = True


class InvalidResponseError(RemoteServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid_response")


class TranscriptionFailedError(ProcessingError):
    pass


class ContentGenerationError(ProcessingError):
    pass


class JobCancelledError(ProcessingError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled before results were persisted")


__all__ = [
    "ApiError",
    "AudioFileNotFoundError",
    "AudioProcessingError",
    "AudiobookNotFoundError",
    "ContentGenerationError",
    "FileTooLargeError",
    "InvalidResponseError",
    "JobCancelledError",
    "ProcessingError",
    "QuotaExceededError",
    "RateLimitError",
    "RemoteClientError",
    "RemoteServiceError",
    "StorageDownloadError",
    "TranscriptionFailedError",
    "TransientServiceError",
]
