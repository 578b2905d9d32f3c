"""Processing job lifecycle transition rules."""

from audiobook_processing.errors import ApiError
from audiobook_processing.schemas.job import JobStatus

TERMINAL_STATES: frozenset[JobStatus] = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Statuses from which an admin may cancel. PROCESSING is excluded: it covers the
# saving/updating sub-phases, which are not interrupted.
CANCELLABLE_STATES: frozenset[JobStatus] = frozenset(
    {
        JobStatus.PENDING,
        JobStatus.DOWNLOADING,
        JobStatus.CHUNKING,
        JobStatus.TRANSCRIBING,
        JobStatus.GENERATING_CONTENT,
    }
)

ACTIVE_STATES: frozenset[JobStatus] = frozenset(set(JobStatus) - TERMINAL_STATES)

_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.DOWNLOADING, JobStatus.FAILED},
    JobStatus.DOWNLOADING: {
        JobStatus.DOWNLOADING,
        JobStatus.CHUNKING,
        JobStatus.TRANSCRIBING,
        JobStatus.PROCESSING,
        JobStatus.FAILED,
    },
    JobStatus.CHUNKING: {
        JobStatus.DOWNLOADING,
        JobStatus.CHUNKING,
        JobStatus.TRANSCRIBING,
        JobStatus.PROCESSING,
        JobStatus.FAILED,
    },
    JobStatus.TRANSCRIBING: {
        JobStatus.DOWNLOADING,
        JobStatus.TRANSCRIBING,
        JobStatus.PROCESSING,
        JobStatus.FAILED,
    },
    JobStatus.PROCESSING: {
        JobStatus.DOWNLOADING,
        JobStatus.PROCESSING,
        JobStatus.GENERATING_CONTENT,
        JobStatus.COMPLETED,
        JobStatus.FAILED,
    },
    JobStatus.GENERATING_CONTENT: {
        JobStatus.DOWNLOADING,
        JobStatus.GENERATING_CONTENT,
        JobStatus.PROCESSING,
        JobStatus.FAILED,
    },
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


def is_cancellable(status: JobStatus) -> bool:
    return status in CANCELLABLE_STATES


def is_active(status: JobStatus) -> bool:
    return status in ACTIVE_STATES


def allowed_next_statuses(status: JobStatus) -> list[JobStatus]:
    """Return deterministically ordered allowed successors for a status."""
    return sorted(_ALLOWED_TRANSITIONS.get(status, set()), key=lambda s: s.value)


def ensure_transition(old_status: JobStatus, new_status: JobStatus) -> None:
    """Validate transition according to lifecycle rules.

    Re-entering DOWNLOADING from a later active state is how a supervised
    re-attempt restarts the pipeline on the same job.
    """
    if old_status in TERMINAL_STATES:
        raise ApiError(
            status_code=409,
            code="FSM_TERMINAL_IMMUTABLE",
            message="Terminal state cannot be mutated",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": [],
            },
        )

    if new_status not in _ALLOWED_TRANSITIONS.get(old_status, set()):
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid status transition",
            details={
                "current_status": old_status,
                "attempted_status": new_status,
                "allowed_next_statuses": allowed_next_statuses(old_status),
            },
        )
