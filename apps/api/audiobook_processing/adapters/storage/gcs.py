"""Google Cloud Storage object store adapter."""

from __future__ import annotations

from datetime import timedelta

from google.api_core.exceptions import NotFound
from google.cloud import storage

from audiobook_processing.adapters.storage.base import ObjectNotFoundError, ObjectStore


class GcsObjectStore(ObjectStore):
    """Reads audiobook uploads from Cloud Storage buckets."""

    def __init__(self, project_id: str | None = None, client=None) -> None:
        self._project_id = project_id
        self._client = client

    def _storage_client(self):
        if self._client is None:
            self._client = storage.Client(project=self._project_id)
        return self._client

    def download(self, bucket: str, key: str) -> bytes:
        blob = self._storage_client().bucket(bucket).blob(key)
        try:
            return blob.download_as_bytes()
        except NotFound as exc:
            raise ObjectNotFoundError(bucket, key) from exc

    def get_public_url(self, bucket: str, key: str) -> str:
        return self._storage_client().bucket(bucket).blob(key).public_url

    def get_signed_url(self, bucket: str, key: str, expires_in: int) -> str:
        blob = self._storage_client().bucket(bucket).blob(key)
        return blob.generate_signed_url(version="v4", expiration=timedelta(seconds=expires_in), method="GET")


__all__ = ["GcsObjectStore"]
