"""Object store adapter and key helper tests."""

from __future__ import annotations

from types import SimpleNamespace
import unittest
from unittest.mock import patch

from google.api_core.exceptions import NotFound

from audiobook_processing.adapters.storage import (
    GcsObjectStore,
    InMemoryObjectStore,
    ObjectNotFoundError,
    normalize_object_key,
    storage_key_from_url,
)


class _FakeBlob:
    def __init__(self, bucket: str, key: str, objects: dict) -> None:
        self._bucket = bucket
        self._key = key
        self._objects = objects
        self.public_url = f"https://storage.googleapis.com/{bucket}/{key}"

    def download_as_bytes(self) -> bytes:
        try:
            return self._objects[(self._bucket, self._key)]
        except KeyError:
            raise NotFound("No such object") from None

    def generate_signed_url(self, **kwargs) -> str:
        self.signed_with = kwargs
        return f"{self.public_url}?X-Goog-Expires={int(kwargs['expiration'].total_seconds())}"


class _FakeGcsClient:
    def __init__(self, objects: dict) -> None:
        self._objects = objects

    def bucket(self, name: str) -> SimpleNamespace:
        return SimpleNamespace(blob=lambda key: _FakeBlob(name, key, self._objects))


class KeyHelperTests(unittest.TestCase):
    def test_normalize_strips_bucket_prefix(self) -> None:
        cases = {
            "audiobooks/uploads/a.mp3": "uploads/a.mp3",
            "/audiobooks/a.mp3": "a.mp3",
            "uploads/a.mp3": "uploads/a.mp3",
            "other/a.mp3": "other/a.mp3",
        }
        for key, expected in cases.items():
            with self.subTest(key=key):
                self.assertEqual(normalize_object_key("audiobooks", key), expected)

    def test_key_recovered_from_public_urls(self) -> None:
        cases = {
            "https://storage.googleapis.com/audiobooks/uploads/my%20book.mp3": "uploads/my book.mp3",
            "memory://storage/object/public/audiobooks/a.mp3": "a.mp3",
            "https://cdn.example.com/files/a.mp3": "a.mp3",
        }
        for url, expected in cases.items():
            with self.subTest(url=url):
                self.assertEqual(storage_key_from_url(url, "audiobooks"), expected)


class InMemoryObjectStoreTests(unittest.TestCase):
    def test_public_url_round_trips_to_key(self) -> None:
        store = InMemoryObjectStore()
        store.put("audiobooks", "uploads/a b.mp3", b"abc")
        url = store.get_public_url("audiobooks", "uploads/a b.mp3")
        self.assertEqual(store.download("audiobooks", storage_key_from_url(url, "audiobooks")), b"abc")

    def test_missing_object(self) -> None:
        with self.assertRaises(ObjectNotFoundError):
            InMemoryObjectStore().download("audiobooks", "missing.mp3")


class GcsObjectStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = GcsObjectStore(client=_FakeGcsClient({("audiobooks", "a.mp3"): b"audio"}))

    def test_download_and_not_found_mapping(self) -> None:
        self.assertEqual(self.store.download("audiobooks", "a.mp3"), b"audio")
        with self.assertRaises(ObjectNotFoundError) as context:
            self.store.download("audiobooks", "missing.mp3")
        self.assertIsInstance(context.exception.__cause__, NotFound)

    def test_signed_url_uses_requested_ttl(self) -> None:
        url = self.store.get_signed_url("audiobooks", "a.mp3", 900)
        self.assertTrue(url.endswith("X-Goog-Expires=900"))
        self.assertEqual(
            storage_key_from_url(self.store.get_public_url("audiobooks", "a.mp3"), "audiobooks"),
            "a.mp3",
        )

    def test_client_built_lazily_for_configured_project(self) -> None:
        fake = _FakeGcsClient({("audiobooks", "a.mp3"): b"audio"})
        with patch("audiobook_processing.adapters.storage.gcs.storage.Client", return_value=fake) as factory:
            store = GcsObjectStore(project_id="audiobooks-prod")
            factory.assert_not_called()
            self.assertEqual(store.download("audiobooks", "a.mp3"), b"audio")
            store.download("audiobooks", "a.mp3")
        factory.assert_called_once_with(project="audiobooks-prod")


if __name__ == "__main__":
    unittest.main()
