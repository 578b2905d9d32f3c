"""Logging setup and helpers for structured ``key=value`` log lines."""

from __future__ import annotations

from contextlib import contextmanager
import hashlib
import logging
import sys
import time
from typing import Any, Iterator

from audiobook_processing.core.config import Settings

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "google")
_INIT_FLAG = "_audiobook_processing_inited"


def configure_logging(settings: Settings) -> None:
    """Install a single stdout handler on the root logger; safe to call repeatedly."""
    root = logging.getLogger()
    if getattr(root, _INIT_FLAG, False):
        return

    level = getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO)
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    setattr(root, _INIT_FLAG, True)


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for storage keys and file names in logs."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


@contextmanager
def timed(logger: logging.Logger, name: str, **fields: Any) -> Iterator[None]:
    """Emit one ``<name>.done ms=<int> key=value ...`` INFO line when the block exits."""
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        suffix = "".join(f" {key}={value}" for key, value in fields.items())
        logger.info("%s.done ms=%d%s", name, elapsed_ms, suffix)
