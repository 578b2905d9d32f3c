"""Retry with exponential backoff and error classification for OpenAI calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

import openai
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from audiobook_processing.errors import (
    QuotaExceededError,
    RateLimitError,
    RemoteClientError,
    RemoteServiceError,
    TransientServiceError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_QUOTA_CODES = frozenset({"insufficient_quota", "quota_exceeded"})

# 2, 4, 8, ... seconds after attempts 1, 2, 3.
BACKOFF = wait_exponential(multiplier=2)


def classify_openai_error(exc: openai.APIError) -> RemoteServiceError:
    """Map an SDK exception onto the pipeline's remote error taxonomy."""
    message = str(getattr(exc, "message", None) or exc)
    if isinstance(exc, openai.APIStatusError):
        status_code = exc.status_code
        if status_code == 429:
            code = getattr(exc, "code", None)
            if code in _QUOTA_CODES or "quota" in message.lower():
                return QuotaExceededError(message)
            return RateLimitError(message)
        if 400 <= status_code < 500:
            return RemoteClientError(message, status_code=status_code, code=getattr(exc, "code", None))
        return TransientServiceError(message, status_code=status_code)
    return TransientServiceError(message)


def _is_retryable_remote(exc: BaseException) -> bool:
    # Only classified SDK faults are replayed; errors raised by the operation itself are final.
    return isinstance(exc, RemoteServiceError) and isinstance(exc.__cause__, openai.APIError) and exc.retryable


def call_with_retry(
    operation: Callable[[], T],
    *,
    name: str,
    max_attempts: int,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` up to ``max_attempts`` times.

    Rate-limit and transient faults are retried after ``2**attempt`` seconds.
    Quota, other 4xx, and pipeline errors raised by the operation itself fail
    on the spot. The last classified error is raised once attempts run out.
    """
    attempts = max(1, max_attempts)

    def _attempt() -> T:
        try:
            return operation()
        except openai.APIError as exc:
            raise classify_openai_error(exc) from exc

    def _log_retry(state: RetryCallState) -> None:
        logger.warning(
            "%s.retrying attempt=%d max_attempts=%d delay_s=%d error=%s",
            name,
            state.attempt_number,
            attempts,
            state.next_action.sleep,
            type(state.outcome.exception()).__name__,
        )

    retrying = Retrying(
        retry=retry_if_exception(_is_retryable_remote),
        stop=stop_after_attempt(attempts),
        wait=BACKOFF,
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        return retrying(_attempt)
    except RemoteServiceError as error:
        logger.warning(
            "%s.failed attempts=%d error=%s retryable=%s",
            name,
            retrying.statistics.get("attempt_number", 1),
            type(error).__name__,
            str(error.retryable).lower(),
        )
        raise


__all__ = ["BACKOFF", "call_with_retry", "classify_openai_error"]
