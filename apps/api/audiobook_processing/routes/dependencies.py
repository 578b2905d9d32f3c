"""Dependency wiring for routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import BackgroundTasks, Depends, Request
from pydantic import BaseModel

from audiobook_processing.core.config import Settings
from audiobook_processing.repositories.memory import InMemoryStore
from audiobook_processing.services.events import EventBus
from audiobook_processing.services.jobs import JobService


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_job_service(
    request: Request,
    background_tasks: BackgroundTasks,
    store: Annotated[InMemoryStore, Depends(get_store)],
    event_bus: Annotated[EventBus, Depends(get_event_bus)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> JobService:
    """Bind pipeline dispatch to the request's background tasks."""

    def dispatch(name: str, payload: BaseModel) -> None:
        background_tasks.add_task(event_bus.publish, name, payload)

    return JobService(
        store,
        object_store=request.app.state.object_store,
        bucket=settings.storage_bucket,
        dispatch=dispatch,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )
