"""Pipeline event payloads."""

from pydantic import BaseModel

AUDIOBOOK_UPLOADED = "audiobook/uploaded"
RETRY_PROCESSING = "audiobook/retry-processing"
PROCESSING_COMPLETE = "audiobook/processing-complete"


class UploadedEvent(BaseModel):
    audiobook_id: str
    file_name: str
    file_size: int
    file_path: str
    # Set when a retried job is re-triggered so the same job record is reused.
    job_id: str | None = None


class RetryProcessingEvent(BaseModel):
    audiobook_id: str
    original_job_id: str


class ProcessingCompleteEvent(BaseModel):
    audiobook_id: str
    success: bool
    job_id: str | None = None
    transcription_id: str | None = None
    processing_time_ms: int | None = None
    error: str | None = None
