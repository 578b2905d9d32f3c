"""FastAPI application entrypoint.

Serve with ``uvicorn audiobook_processing.main:create_app --factory``.
"""

from __future__ import annotations

import time
from typing import Callable

import httpx
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from openai import OpenAI

from audiobook_processing.adapters.ai import ContentGenerationClient, TranscriptionClient
from audiobook_processing.adapters.storage import GcsObjectStore, InMemoryObjectStore, ObjectStore
from audiobook_processing.core.config import Settings, get_settings
from audiobook_processing.core.logging_setup import configure_logging
from audiobook_processing.errors import ApiError
from audiobook_processing.repositories.memory import InMemoryStore
from audiobook_processing.routes import audiobooks_router, jobs_router, transcriptions_router
from audiobook_processing.schemas.pipeline import ContentGenerationOptions
from audiobook_processing.services.audio_validator import AudioValidator
from audiobook_processing.services.content_generation import ContentGenerationService
from audiobook_processing.services.events import EventBus
from audiobook_processing.services.processing import ProcessingCoordinator
from audiobook_processing.services.transcription import TranscriptionOrchestrator


def build_object_store(settings: Settings) -> ObjectStore:
    """Resolve the object store adapter from configuration."""
    if settings.storage_provider == "memory":
        return InMemoryObjectStore()
    return GcsObjectStore(project_id=settings.gcs_project_id)


def build_openai_client(settings: Settings, http_client: httpx.Client | None = None) -> OpenAI:
    """SDK client with its own retries off; backoff lives in the adapters."""
    return OpenAI(api_key=settings.openai_api_key, max_retries=0, http_client=http_client)


def create_app(
    settings: Settings | None = None,
    *,
    object_store: ObjectStore | None = None,
    openai_client: OpenAI | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    object_store = object_store or build_object_store(settings)
    openai_client = openai_client or build_openai_client(settings)
    store = InMemoryStore()
    event_bus = EventBus()

    orchestrator = TranscriptionOrchestrator(
        object_store=object_store,
        client=TranscriptionClient(
            openai_client,
            model=settings.transcription_model,
            max_file_mb=settings.max_transcription_file_mb,
            max_attempts=settings.max_retry_attempts,
            sleep=sleep,
        ),
        validator=AudioValidator(max_size_mb=settings.max_transcription_file_mb),
        scratch_root=settings.scratch_dir,
    )
    content_service = ContentGenerationService(
        ContentGenerationClient(
            openai_client,
            model=settings.generation_model,
            max_attempts=settings.max_retry_attempts,
            sleep=sleep,
        ),
        excerpt_chars=settings.excerpt_chars,
        defaults=ContentGenerationOptions(
            max_description_words=settings.max_description_words,
            tone=settings.content_tone,
        ),
    )
    coordinator = ProcessingCoordinator(
        store=store,
        event_bus=event_bus,
        orchestrator=orchestrator,
        content_service=content_service,
        bucket=settings.storage_bucket,
        workflow_max_attempts=settings.workflow_max_attempts,
    )
    coordinator.register()

    app = FastAPI(title="Audiobook Processing API", version="1.0.0")
    app.state.settings = settings
    app.state.store = store
    app.state.event_bus = event_bus
    app.state.object_store = object_store
    app.state.coordinator = coordinator

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    api_prefix = "/api/v1"
    app.include_router(audiobooks_router, prefix=api_prefix)
    app.include_router(jobs_router, prefix=api_prefix)
    app.include_router(transcriptions_router, prefix=api_prefix)

    return app
