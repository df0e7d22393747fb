"""Local blob storage for generated audio."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/flac": "flac",
    "audio/ogg": "ogg",
    "image/jpeg": "jpg",
    "image/png": "png",
}


class BlobStoreError(Exception):
    """Raised when audio cannot be fetched or stored."""


class BlobStore(Protocol):
    def put(self, data: bytes, content_type: str) -> str:
        """Store ``data`` and return its public URI."""


@dataclass(slots=True)
class LocalBlobStore:
    """Write blobs under ``root`` and expose them below ``public_base_url``."""

    root: Path
    public_base_url: str
    download_timeout_seconds: float = 60.0
    log: logging.Logger = field(default_factory=lambda: logger)

    def put(self, data: bytes, content_type: str) -> str:
        if not data:
            raise BlobStoreError("Refusing to store an empty blob")
        key = f"{uuid.uuid4().hex}.{self._extension(content_type)}"
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        self.log.info(
            "blob_store.put",
            extra={"key": key, "content_type": content_type, "size_bytes": len(data)},
        )
        return self.public_uri(key)

    def path_for(self, key: str) -> Path:
        return self.root / "audio" / key

    def public_uri(self, key: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/audio/{key}"

    async def mirror(self, url: str) -> str:
        """Download ``url`` and store it locally, returning the new public URI."""
        try:
            async with httpx.AsyncClient(
                timeout=self.download_timeout_seconds, follow_redirects=True
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise BlobStoreError(f"Audio download failed: {exc}") from exc
        if response.status_code != 200:
            raise BlobStoreError(f"Audio download failed with status {response.status_code}")
        content_type = response.headers.get("Content-Type", "audio/mpeg").split(";")[0]
        return self.put(response.content, content_type)

    @staticmethod
    def _extension(content_type: str) -> str:
        normalized = content_type.split(";")[0].strip().lower()
        if normalized in _EXTENSIONS:
            return _EXTENSIONS[normalized]
        guessed = mimetypes.guess_extension(normalized)
        return guessed.lstrip(".") if guessed else "bin"
