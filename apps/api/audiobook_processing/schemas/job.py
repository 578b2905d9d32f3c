"""Processing job API schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from audiobook_processing.schemas.audiobook import AudiobookStatus


class JobStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    CHUNKING = "chunking"
    TRANSCRIBING = "transcribing"
    GENERATING_CONTENT = "generating_content"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AudiobookSummary(BaseModel):
    id: str
    title: str
    author: str
    status: AudiobookStatus
    description: str | None = None
    categories: list[str] = Field(default_factory=list)


class Job(BaseModel):
    id: str
    audiobook_id: str
    job_type: str
    status: JobStatus
    progress: int
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    audiobook: AudiobookSummary | None = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class JobListResponse(BaseModel):
    jobs: list[Job]
    pagination: Pagination
    statistics: dict[str, int]


class CreateJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audiobook_id: str = Field(min_length=1, alias="audiobookId")
    force: bool = False


class CreateJobResponse(BaseModel):
    audiobook_id: str
    job_id: str
    status: JobStatus
    superseded_job_id: str | None = None


class RetryJobResponse(BaseModel):
    job_id: str
    audiobook_id: str
    status: JobStatus
    progress: int
