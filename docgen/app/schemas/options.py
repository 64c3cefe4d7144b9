"""
Per-call generation options.

Fields left as ``None`` are filled from runtime configuration by
``GenerationOptions.with_defaults`` before the pipeline starts, so every
downstream stage sees a fully populated, frozen options object.
"""

from __future__ import annotations

import random
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from docgen.app.config import Settings
from docgen.app.schemas.template import OutputFormat, TemplateDescriptor


def generate_document_number(prefix: str = "DOC") -> str:
    """
    Build a document number of the form ``DOC-<year>-<6 digits>-<3 digits>``.

    The six digits are the tail of the current epoch milliseconds and the
    last three are random, so consecutive calls yield distinct numbers.
    """
    timestamp = str(int(time.time() * 1000))
    suffix = f"{random.randint(0, 999):03d}"
    return f"{prefix}-{datetime.now().year}-{timestamp[-6:]}-{suffix}"


class Watermark(BaseModel):
    enabled: bool = False
    text: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CustomFonts(BaseModel):
    body: Optional[str] = None
    heading: Optional[str] = None
    monospace: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class GenerationOptions(BaseModel):
    """
    Caller-controlled options for a single ``generate_document`` call.
    """

    format: Optional[OutputFormat] = None
    filename: Optional[str] = None
    author: Optional[str] = None
    title: Optional[str] = None
    subject: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    revision: int = Field(1, ge=1)
    watermark: Watermark = Field(default_factory=Watermark)
    include_signature_fields: bool = False
    header_logo: Optional[str] = None
    footer_text: Optional[str] = None
    custom_fonts: CustomFonts = Field(default_factory=CustomFonts)
    language: Optional[str] = None
    document_number: Optional[str] = None

    # Storage classification
    document_category: str = "documents"
    document_type: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("format", mode="before")
    @classmethod
    def _format_alias(cls, v: Any) -> Any:
        # Accepts aliases such as "md" and any letter case.
        if isinstance(v, str):
            return OutputFormat(v)
        return v

    def with_defaults(
        self,
        settings: Settings,
        template: Optional[TemplateDescriptor] = None,
    ) -> "GenerationOptions":
        """
        Return a copy with every configurable default resolved.

        A document number is generated here when the caller did not supply
        one, which makes repeated calls non-idempotent.
        """
        updates: Dict[str, Any] = {}

        if self.format is None:
            updates["format"] = OutputFormat(settings.default_format)
        if not self.filename:
            updates["filename"] = f"document-{int(time.time() * 1000)}"
        if not self.author:
            updates["author"] = settings.default_author
        if not self.language:
            updates["language"] = settings.default_language
        if not self.document_number:
            updates["document_number"] = generate_document_number()
        if not self.watermark.text:
            updates["watermark"] = Watermark(
                enabled=self.watermark.enabled,
                text=settings.default_watermark_text,
            )
        if not self.document_type and template is not None:
            updates["document_type"] = template.category or "general"

        return self.model_copy(update=updates)

    def resolved_title(self, template: TemplateDescriptor) -> str:
        return self.title or template.display_name or template.name
