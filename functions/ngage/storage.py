"""
Storage abstraction for Firebase Storage and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import unquote

from firebase_admin import storage
from google.api_core import exceptions as google_exceptions

from ngage.errors import StorageError


class StorageClient(Protocol):
    """Defines the operations the services need from object storage."""

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        ...

    def delete(self, path: str) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def path_from_url(self, url: str) -> Optional[str]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        self.stored_objects[path] = (data, content_type)
        return self.public_url(path)

    def delete(self, path: str) -> None:
        if path not in self.stored_objects:
            raise StorageError(f"Object not found: {path}")
        del self.stored_objects[path]

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        prefix = f"{self.base_url}/"
        return url[len(prefix):] if url.startswith(prefix) else None


@dataclass
class FirebaseStorageClient:
    """
    Firebase Storage (Google Cloud Storage bucket) client.
    """

    bucket_name: Optional[str] = None

    def __post_init__(self):
        self._bucket = storage.bucket(self.bucket_name)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> str:
        blob = self._bucket.blob(path)
        try:
            blob.upload_from_string(data, content_type=content_type)
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Upload failed for {path}: {e}") from e
        return self.public_url(path)

    def delete(self, path: str) -> None:
        try:
            self._bucket.blob(path).delete()
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Delete failed for {path}: {e}") from e

    def public_url(self, path: str) -> str:
        return self._bucket.blob(path).public_url

    def path_from_url(self, url: str) -> Optional[str]:
        prefix = f"https://storage.googleapis.com/{self._bucket.name}/"
        if not url.startswith(prefix):
            return None
        return unquote(url[len(prefix):])
