"""In-memory object store for local development and tests."""

from __future__ import annotations

from urllib.parse import quote

from audiobook_processing.adapters.storage.base import ObjectNotFoundError, ObjectStore

_PUBLIC_BASE_URL = "memory://storage"


class InMemoryObjectStore(ObjectStore):
    """Keeps objects in a dict keyed by ``(bucket, key)``."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.download_count = 0

    def put(self, bucket: str, key: str, data: bytes) -> None:
        self.objects[(bucket, key)] = bytes(data)

    def download(self, bucket: str, key: str) -> bytes:
        self.download_count += 1
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise ObjectNotFoundError(bucket, key) from None

    def get_public_url(self, bucket: str, key: str) -> str:
        return f"{_PUBLIC_BASE_URL}/object/public/{bucket}/{quote(key)}"

    def get_signed_url(self, bucket: str, key: str, expires_in: int) -> str:
        return f"{self.get_public_url(bucket, key)}?expires_in={int(expires_in)}"


__all__ = ["InMemoryObjectStore"]
