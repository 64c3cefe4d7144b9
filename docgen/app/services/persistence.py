"""
Integrity and persistence handoff.

Reads a finished artifact back from the workspace, fingerprints it and
hands the exact same bytes to blob storage. The returned
``GeneratedDocument`` is the only record of a successful generation.

Deleting the temporary artifact is the caller's job; this module never
touches the workspace beyond reading.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import anyio
from pydantic import ValidationError

from docgen.app.config import Settings
from docgen.app.errors import PersistenceError
from docgen.app.schemas.document import GeneratedDocument
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import OutputFormat, TemplateDescriptor
from docgen.app.services.enrichment import RenderingContext
from docgen.app.services.storage import BlobStorage, storage_tags
from docgen.app.utils.hashing import compute_document_hash

logger = logging.getLogger(__name__)


ENGINE_NAME = "DocumentGenerationService"


async def finalize(
    artifact_path: Path,
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
    *,
    storage: BlobStorage,
    settings: Settings,
) -> GeneratedDocument:
    """
    Hash and store ``artifact_path``, returning the document descriptor.

    Raises:
        PersistenceError: if the artifact cannot be read or storage
            rejects the upload, reports a different size, or the
            stored object cannot be described.
    """
    format = OutputFormat(options.format)

    try:
        content = await anyio.Path(artifact_path).read_bytes()
    except OSError as exc:
        raise PersistenceError(
            f"Failed to read artifact {artifact_path.name}: {exc}"
        ) from exc

    document_hash = compute_document_hash(content)
    owner = context.client_id
    created_at = datetime.now(timezone.utc)

    storage_metadata = {
        **options.metadata,
        "templateId": template.id,
        "documentNumber": context.document_number,
        "revision": options.revision,
        "generatedAt": created_at.isoformat(),
        "documentHash": document_hash,
    }

    try:
        stored = await storage.upload(
            content,
            client_id=owner,
            filename=f"{options.filename}.{format.extension}",
            mime_type=format.mime_type,
            category=options.document_category,
            metadata=storage_metadata,
            tags=storage_tags(options.document_type or "general", format.value),
        )
    except Exception as exc:
        raise PersistenceError(
            f"Failed to store document {context.document_number}: {exc}"
        ) from exc

    if stored.size != len(content):
        raise PersistenceError(
            f"Storage reported {stored.size} bytes for document "
            f"{context.document_number}, expected {len(content)}"
        )

    logger.info(
        "Document stored: number=%s key=%s size=%d sha256=%s",
        context.document_number,
        stored.key,
        len(content),
        document_hash[:12],
    )

    try:
        return GeneratedDocument(
            template_id=template.id,
            template_name=template.name,
            document_path=stored.key,
            document_url=stored.url,
            format=format,
            size=stored.size,
            document_hash=document_hash,
            document_number=context.document_number,
            created_at=created_at,
            revision=options.revision,
            metadata={
                **options.metadata,
                "title": options.resolved_title(template),
                "author": options.author,
                "bucket": stored.bucket,
                "generated_with": ENGINE_NAME,
                "engine_version": settings.engine_version,
                "client_id": owner,
            },
        )
    except ValidationError as exc:
        raise PersistenceError(
            f"Stored document {stored.key} could not be described: {exc}"
        ) from exc
