"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from audiobook_processing.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus
    allowed_next_statuses: list[JobStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID", "FSM_TERMINAL_IMMUTABLE"]
    message: str
    details: TransitionErrorDetails


class NotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class JobStateConflictDetails(BaseModel):
    current_status: JobStatus
    existing_job_id: str | None = None


class JobStateConflictError(BaseModel):
    code: Literal["RETRY_NOT_ALLOWED_STATE", "CANCEL_NOT_ALLOWED_STATE", "JOB_ALREADY_RUNNING"]
    message: str
    details: JobStateConflictDetails


class AudiobookFileMissingError(BaseModel):
    code: Literal["AUDIOBOOK_FILE_MISSING"]
    message: str
