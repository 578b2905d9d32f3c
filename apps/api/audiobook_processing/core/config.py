"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    storage_provider: Literal["memory", "gcs"] = "gcs"
    storage_bucket: str = "audiobooks"
    gcs_project_id: str | None = None
    signed_url_ttl_seconds: int = 3600

    openai_api_key: str | None = None
    transcription_model: str = "whisper-1"
    generation_model: str = "gpt-4o-mini"
    max_transcription_file_mb: float = 25
    max_retry_attempts: int = 3

    workflow_max_attempts: int = 3
    scratch_dir: str = "/tmp/audiobook-processing"

    max_description_words: int = 800
    excerpt_chars: int = 4000
    content_tone: Literal["professional", "casual", "academic", "marketing"] = "marketing"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="AUDIOBOOK_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
