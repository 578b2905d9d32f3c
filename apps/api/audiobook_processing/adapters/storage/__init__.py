"""Object store adapters."""

from .base import ObjectNotFoundError, ObjectStore, normalize_object_key, storage_key_from_url
from .gcs import GcsObjectStore
from .memory import InMemoryObjectStore

__all__ = [
    "GcsObjectStore",
    "InMemoryObjectStore",
    "ObjectNotFoundError",
    "ObjectStore",
    "normalize_object_key",
    "storage_key_from_url",
]
