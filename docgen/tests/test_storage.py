import json

import httpx
import pytest
from pydantic import ValidationError

from docgen.app.config import Settings
from docgen.app.services.storage import (
    HttpBlobStorage,
    LocalBlobStorage,
    StorageError,
    build_blob_storage,
)

pytestmark = pytest.mark.anyio


UPLOAD_KWARGS = dict(
    client_id="client/42",
    filename="letter.pdf",
    mime_type="application/pdf",
    category="contracts",
    metadata={"documentNumber": "DOC-2024-000001-001"},
    tags={"generated": "true"},
)


async def test_local_storage_writes_object_and_sidecar(tmp_path):
    storage = LocalBlobStorage(tmp_path)

    stored = await storage.upload(b"%PDF-1.7 body", **UPLOAD_KWARGS)

    target = tmp_path / stored.key
    assert stored.key.startswith("client-42/contracts/")
    assert stored.key.endswith("-letter.pdf")
    assert stored.bucket == "local"
    assert stored.size == len(b"%PDF-1.7 body")
    assert stored.url.startswith("file://")
    assert target.read_bytes() == b"%PDF-1.7 body"

    sidecar = json.loads((tmp_path / f"{stored.key}.meta.json").read_text())
    assert sidecar["metadata"]["documentNumber"] == "DOC-2024-000001-001"
    assert sidecar["mime_type"] == "application/pdf"


async def test_http_storage_posts_multipart_upload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.read()
        return httpx.Response(
            201,
            json={
                "key": "client-42/contracts/letter.pdf",
                "bucket": "documents",
                "size": 13,
                "url": "https://storage.example/letter.pdf",
            },
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    storage = HttpBlobStorage("https://storage.example/upload", client=client)

    stored = await storage.upload(b"%PDF-1.7 body", **UPLOAD_KWARGS)

    assert stored.bucket == "documents"
    assert stored.url == "https://storage.example/letter.pdf"
    assert seen["content_type"].startswith("multipart/form-data")
    assert b"%PDF-1.7 body" in seen["body"]
    assert b"DOC-2024-000001-001" in seen["body"]
    await client.aclose()


async def test_http_storage_error_status():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="down"))
    )
    storage = HttpBlobStorage("https://storage.example/upload", client=client)

    with pytest.raises(StorageError) as excinfo:
        await storage.upload(b"x", **UPLOAD_KWARGS)

    assert "status=503" in str(excinfo.value)
    await client.aclose()


async def test_http_storage_invalid_response():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"key": "k"}))
    )
    storage = HttpBlobStorage("https://storage.example/upload", client=client)

    with pytest.raises(StorageError):
        await storage.upload(b"x", **UPLOAD_KWARGS)
    await client.aclose()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def test_backend_selection(tmp_path):
    local = build_blob_storage(Settings(_env_file=None, storage_dir=tmp_path))
    remote = build_blob_storage(
        Settings(
            _env_file=None,
            storage_backend="http",
            storage_http_url="https://storage.example/upload",
        )
    )

    assert isinstance(local, LocalBlobStorage)
    assert isinstance(remote, HttpBlobStorage)


def test_http_backend_requires_url():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, storage_backend="http")


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("DOCGEN_DEFAULT_LANGUAGE", "en-GB")
    monkeypatch.setenv("DOCGEN_BROWSER_POOL_SIZE", "4")

    settings = Settings(_env_file=None)

    assert settings.default_language == "en-GB"
    assert settings.browser_pool_size == 4
