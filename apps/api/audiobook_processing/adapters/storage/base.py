"""Object store port consumed by the processing pipeline."""

from abc import ABC, abstractmethod
from urllib.parse import unquote, urlparse


class ObjectNotFoundError(Exception):
    """Raised when the requested object does not exist in the bucket."""

    def __init__(self, bucket: str, key: str) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(f"Object not found: {bucket}/{key}")


class ObjectStore(ABC):
    """Provider-neutral object storage interface."""

    @abstractmethod
    def download(self, bucket: str, key: str) -> bytes:
        """Return the object's bytes or raise ``ObjectNotFoundError``."""

    @abstractmethod
    def get_public_url(self, bucket: str, key: str) -> str:
        """Return the stable public URL of an object."""

    @abstractmethod
    def get_signed_url(self, bucket: str, key: str, expires_in: int) -> str:
        """Return a time-limited URL granting read access to an object."""


def normalize_object_key(bucket: str, key: str) -> str:
    """Strip a leading ``<bucket>/`` that upload flows sometimes keep in the key."""
    cleaned = key.lstrip("/")
    prefix = f"{bucket}/"
    if cleaned.startswith(prefix):
        return cleaned[len(prefix) :]
    return cleaned


def storage_key_from_url(file_url: str, bucket: str) -> str:
    """Recover the object key from a public URL.

    The key is everything after the first ``/<bucket>/`` path segment; URLs that
    do not contain the bucket fall back to their last path segment.
    """
    path = unquote(urlparse(file_url).path)
    marker = f"/{bucket}/"
    index = path.find(marker)
    if index != -1:
        return path[index + len(marker) :]
    return path.rsplit("/", 1)[-1]


__all__ = ["ObjectNotFoundError", "ObjectStore", "normalize_object_key", "storage_key_from_url"]
