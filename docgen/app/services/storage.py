"""
Blob storage backends.

Finished artifacts are handed off to a ``BlobStorage`` collaborator. Two
backends ship with the engine and are selected by ``storage_backend``:

- ``local``: writes under ``storage_dir`` (development and tests)
- ``http``:  multipart upload to an external storage service

The engine does not know or care where bytes end up, only that a
``StoredObject`` comes back.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

import anyio
import httpx
from pydantic import ValidationError

from docgen.app.config import Settings
from docgen.app.schemas.document import StoredObject

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when a storage backend rejects or fails an upload."""


class BlobStorage(Protocol):
    async def upload(
        self,
        content: bytes,
        *,
        client_id: str,
        filename: str,
        mime_type: str,
        category: str,
        metadata: Mapping[str, Any],
        tags: Mapping[str, str],
    ) -> StoredObject:
        ...


def _segment(value: str) -> str:
    cleaned = "".join(c if c.isalnum() or c in "._-" else "-" for c in value)
    return cleaned.strip(".-") or "unknown"


# ----------------------------------------------------------------------
# Local filesystem backend
# ----------------------------------------------------------------------

class LocalBlobStorage:
    """
    Stores objects as ``<root>/<client>/<category>/<uuid>-<filename>``.

    Metadata and tags are written next to the object as a JSON sidecar.
    """

    BUCKET = "local"

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    async def upload(
        self,
        content: bytes,
        *,
        client_id: str,
        filename: str,
        mime_type: str,
        category: str,
        metadata: Mapping[str, Any],
        tags: Mapping[str, str],
    ) -> StoredObject:
        key = "/".join(
            [
                _segment(client_id),
                _segment(category),
                f"{uuid.uuid4().hex}-{_segment(filename)}",
            ]
        )
        target = anyio.Path(self._root / key)

        try:
            await target.parent.mkdir(parents=True, exist_ok=True)
            await target.write_bytes(content)
            await anyio.Path(f"{target}.meta.json").write_text(
                json.dumps(
                    {
                        "mime_type": mime_type,
                        "metadata": dict(metadata),
                        "tags": dict(tags),
                    },
                    default=str,
                    indent=2,
                ),
                encoding="utf-8",
            )
        except OSError as exc:
            raise StorageError(f"Failed to write object '{key}': {exc}") from exc

        absolute = await target.resolve()
        return StoredObject(
            key=key,
            bucket=self.BUCKET,
            size=len(content),
            url=Path(absolute).as_uri(),
        )


# ----------------------------------------------------------------------
# HTTP storage service backend
# ----------------------------------------------------------------------

class HttpBlobStorage:
    """
    Multipart upload to a storage service.

    Contract:
    - request:  ``file`` part plus ``client_id``, ``category``,
      ``metadata`` (JSON) and ``tags`` (JSON) form fields
    - response: 2xx with JSON ``{key, bucket, size, url}``
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def upload(
        self,
        content: bytes,
        *,
        client_id: str,
        filename: str,
        mime_type: str,
        category: str,
        metadata: Mapping[str, Any],
        tags: Mapping[str, str],
    ) -> StoredObject:
        correlation_id = f"docgen-{uuid.uuid4()}"

        try:
            response = await self._get_client().post(
                self._url,
                headers={"X-Correlation-ID": correlation_id},
                files={"file": (filename, content, mime_type)},
                data={
                    "client_id": client_id,
                    "category": category,
                    "metadata": json.dumps(dict(metadata), default=str),
                    "tags": json.dumps(dict(tags)),
                },
            )
        except httpx.HTTPError as exc:
            raise StorageError(
                f"Failed to call storage service "
                f"(correlation_id={correlation_id}): {exc}"
            ) from exc

        if not response.is_success:
            raise StorageError(
                "Storage service error "
                f"(status={response.status_code}, "
                f"correlation_id={correlation_id}): "
                f"{response.text}"
            )

        try:
            return StoredObject.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise StorageError(
                "Storage service returned an invalid response "
                f"(correlation_id={correlation_id}): {exc}"
            ) from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


# ----------------------------------------------------------------------
# Backend selection
# ----------------------------------------------------------------------

def build_blob_storage(settings: Settings) -> BlobStorage:
    backend = settings.storage_backend

    if backend == "local":
        logger.info("Blob storage backend: local (%s)", settings.storage_dir)
        return LocalBlobStorage(settings.storage_dir)

    if backend == "http":
        logger.info("Blob storage backend: http (%s)", settings.storage_http_url)
        return HttpBlobStorage(
            str(settings.storage_http_url),
            timeout=settings.storage_timeout_seconds,
        )

    raise ValueError(f"Unknown storage backend '{backend}'")


def storage_tags(document_type: str, format_value: str) -> Dict[str, str]:
    return {
        "documentType": document_type,
        "generated": "true",
        "format": format_value,
    }
