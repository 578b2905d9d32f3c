"""Value objects passed between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Protocol


class TranscriptionPhase(str, Enum):
    DOWNLOADING = "downloading"
    VALIDATING = "validating"
    TRANSCRIBING = "transcribing"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressObserver(Protocol):
    """Receives orchestrator progress synchronously, on the calling thread."""

    def __call__(self, phase: TranscriptionPhase, message: str, percent: int) -> None: ...


@dataclass(frozen=True, slots=True)
class AudioMetadata:
    size_bytes: int
    format: str


@dataclass(frozen=True, slots=True)
class RawTranscription:
    text: str
    duration: float


@dataclass(frozen=True, slots=True)
class TranscriptionMetadata:
    original_file_size: int
    processing_time_ms: int


@dataclass(frozen=True, slots=True)
class TranscriptionResult:
    text: str
    duration: float
    word_count: int
    confidence: float
    metadata: TranscriptionMetadata


@dataclass(frozen=True, slots=True)
class GeneratedContent:
    """Validated remote generation output, before local post-processing."""

    description: str
    categories: list[str]
    summary: str


Tone = Literal["professional", "casual", "academic", "marketing"]


@dataclass(slots=True)
class ContentGenerationOptions:
    include_keywords: bool = True
    max_description_words: int = 800
    target_categories: list[str] = field(default_factory=list)
    tone: Tone = "marketing"


@dataclass(frozen=True, slots=True)
class ContentMetadata:
    content_length: int
    processing_time_ms: int
    confidence: float


@dataclass(frozen=True, slots=True)
class ContentGenerationResult:
    description: str
    summary: str
    categories: list[str]
    keywords: list[str]
    metadata: ContentMetadata
