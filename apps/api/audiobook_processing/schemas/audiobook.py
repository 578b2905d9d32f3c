"""Audiobook catalog schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AudiobookStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    ACTIVE = "active"
    INACTIVE = "inactive"


class UploadCompleteRequest(BaseModel):
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    file_path: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    description: str | None = None


class Audiobook(BaseModel):
    id: str
    title: str
    author: str
    status: AudiobookStatus
    description: str | None = None
    ai_summary: str | None = None
    categories: list[str] = Field(default_factory=list)
    file_url: str | None = None
    file_size_bytes: int | None = None
    created_at: datetime
    updated_at: datetime | None = None


class UploadCompleteResponse(BaseModel):
    audiobook: Audiobook
    estimated_processing_minutes: int
    estimated_cost_usd: float


class Transcription(BaseModel):
    id: str
    audiobook_id: str
    full_text: str
    word_count: int
    confidence_score: float
    processing_time_ms: int
    created_at: datetime


class AudioUrlResponse(BaseModel):
    audiobook_id: str
    url: str
    expires_in: int
