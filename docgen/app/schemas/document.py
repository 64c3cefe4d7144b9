"""
Descriptors produced by the persistence handoff.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from docgen.app.schemas.template import OutputFormat


class StoredObject(BaseModel):
    """Location returned by a blob storage backend after an upload."""

    key: str
    bucket: str
    size: int = Field(..., ge=0)
    url: str

    model_config = ConfigDict(frozen=True)


class GeneratedDocument(BaseModel):
    """
    Record describing a finished, stored artifact.

    Created exactly once per successful generation and never updated in
    place. ``size`` and ``document_hash`` describe the artifact bytes that
    were handed to storage.
    """

    template_id: str
    template_name: str
    document_path: str
    document_url: str
    format: OutputFormat
    size: int
    document_hash: str
    document_number: str
    created_at: datetime
    revision: int
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)
