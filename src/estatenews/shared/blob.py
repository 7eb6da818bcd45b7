"""Blob storage for generated images.

Two backends share one contract: ``upload(filename, data, content_type)``
returns a stable public URL.

- ``VercelBlobStore`` talks to the Vercel Blob HTTP API via urllib.
- ``LocalBlobStore`` writes into a directory served under ``base_url``.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import urllib.error
import urllib.parse
import urllib.request
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel

from estatenews.config import EstateNewsConfig
from estatenews.shared.errors import BlobUploadError

logger = logging.getLogger(__name__)

VERCEL_BLOB_API_URL = "https://blob.vercel-storage.com"
VERCEL_BLOB_API_VERSION = "7"

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


class BlobObject(BaseModel):
    """A stored blob."""

    url: str
    pathname: str = ""
    content_type: str = ""


class BlobStore(Protocol):
    """Binary object storage contract."""

    def upload(self, filename: str, data: bytes, content_type: str) -> BlobObject: ...

    def delete(self, url: str) -> None: ...


def image_filename(article_id: int, content_type: str = "image/png", now: datetime | None = None) -> str:
    """Build ``article-{id}-{unixMillis}.{ext}`` for an article image."""
    moment = now or datetime.now(tz=UTC)
    millis = int(moment.timestamp() * 1000)
    ext = _EXTENSIONS.get(content_type)
    if ext is None:
        guessed = mimetypes.guess_extension(content_type) or ".png"
        ext = guessed.lstrip(".")
    return f"article-{article_id}-{millis}.{ext}"


class VercelBlobStore:
    """Client for the Vercel Blob API.

    Uploads are public and keep the given pathname (no random suffix) so
    the returned URL is stable.
    """

    def __init__(self, token: str, *, api_url: str = VERCEL_BLOB_API_URL) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "x-api-version": VERCEL_BLOB_API_VERSION,
        }

    def upload(self, filename: str, data: bytes, content_type: str) -> BlobObject:
        """Upload bytes under ``filename``.

        Raises:
            BlobUploadError: On any HTTP or transport failure.
        """
        query = urllib.parse.urlencode({"pathname": filename})
        headers = self._headers()
        headers.update(
            {
                "x-content-type": content_type,
                "x-add-random-suffix": "0",
                "access": "public",
            }
        )
        req = urllib.request.Request(
            f"{self.api_url}/?{query}",
            data=data,
            method="PUT",
            headers=headers,
        )
        try:
            with urllib.request.urlopen(req) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise BlobUploadError(f"Upload of {filename} failed: {exc}") from exc

        url = payload.get("url")
        if not url:
            raise BlobUploadError(f"Upload of {filename} returned no URL")
        logger.info("Uploaded %s (%d bytes) to %s", filename, len(data), url)
        return BlobObject(
            url=url,
            pathname=payload.get("pathname", filename),
            content_type=payload.get("contentType", content_type),
        )

    def delete(self, url: str) -> None:
        """Delete a blob by URL."""
        headers = self._headers()
        headers["Content-Type"] = "application/json"
        req = urllib.request.Request(
            f"{self.api_url}/delete",
            data=json.dumps({"urls": [url]}).encode("utf-8"),
            method="POST",
            headers=headers,
        )
        try:
            with urllib.request.urlopen(req):
                pass
        except (urllib.error.URLError, OSError) as exc:
            raise BlobUploadError(f"Delete of {url} failed: {exc}") from exc


class LocalBlobStore:
    """Filesystem-backed blob store for development and tests."""

    def __init__(self, directory: Path, base_url: str) -> None:
        self.directory = directory
        self.base_url = base_url.rstrip("/")

    def upload(self, filename: str, data: bytes, content_type: str) -> BlobObject:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / filename).write_bytes(data)
        except OSError as exc:
            raise BlobUploadError(f"Could not write {filename}: {exc}") from exc
        return BlobObject(
            url=f"{self.base_url}/{filename}",
            pathname=filename,
            content_type=content_type,
        )

    def delete(self, url: str) -> None:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            return
        try:
            (self.directory / url[len(prefix) :]).unlink(missing_ok=True)
        except OSError as exc:
            raise BlobUploadError(f"Could not delete {url}: {exc}") from exc


def create_blob_store(config: EstateNewsConfig) -> BlobStore:
    """Build the configured blob store.

    Raises:
        ConfigurationError: If the backend is unknown or missing its token.
    """
    config.require_blob()
    if config.blob.backend == "local":
        return LocalBlobStore(Path(config.blob.directory), config.blob.base_url)
    return VercelBlobStore(config.blob.token)
