"""
Template descriptor schemas.

A ``TemplateDescriptor`` is the parsed, cacheable representation of a
reusable document pattern. Descriptors are immutable once loaded; the
resolver replaces them wholesale when a cache entry expires.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentType(str, Enum):
    """Template authoring dialect."""

    HYPERTEXT = "hypertext"
    MARKUP = "markup"
    STRUCTURED = "structured"


class OutputFormat(str, Enum):
    """Finished artifact format."""

    PDF = "pdf"
    DOCX = "docx"
    HTML = "html"
    MARKDOWN = "markdown"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            key = value.strip().lower()
            key = _ALIASES.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        return None

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]


_ALIASES = {"md": "markdown", "htm": "html"}

_EXTENSIONS = {
    OutputFormat.PDF: "pdf",
    OutputFormat.DOCX: "docx",
    OutputFormat.HTML: "html",
    OutputFormat.MARKDOWN: "md",
}

_MIME_TYPES = {
    OutputFormat.PDF: "application/pdf",
    OutputFormat.DOCX: (
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    ),
    OutputFormat.HTML: "text/html",
    OutputFormat.MARKDOWN: "text/markdown",
}


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


class PageMargins(BaseModel):
    """CSS lengths for each page edge."""

    top: str = "2cm"
    right: str = "2cm"
    bottom: str = "2cm"
    left: str = "2cm"

    model_config = ConfigDict(frozen=True)

    def css(self) -> str:
        return f"{self.top} {self.right} {self.bottom} {self.left}"


class PageSettings(BaseModel):
    margins: PageMargins = Field(default_factory=PageMargins)
    page_size: str = "A4"
    orientation: Orientation = Orientation.PORTRAIT

    model_config = ConfigDict(frozen=True)

    @property
    def landscape(self) -> bool:
        return self.orientation is Orientation.LANDSCAPE


TemplateContent = Union[str, Dict[str, Any], list]


class TemplateDescriptor(BaseModel):
    """
    Declarative description of a document template.

    ``content`` is a string for the hypertext and markup dialects. The
    structured dialect accepts either a JSON string or an already-parsed
    object/array tree.
    """

    id: str
    name: str
    display_name: str = Field("", validate_default=True)
    content: TemplateContent
    content_type: ContentType = ContentType.HYPERTEXT
    supported_formats: FrozenSet[OutputFormat] = Field(
        default_factory=lambda: frozenset(OutputFormat)
    )
    css: str = ""
    header_template: Optional[str] = None
    footer_template: Optional[str] = None
    page_settings: PageSettings = Field(default_factory=PageSettings)
    category: str = ""
    type: str = ""
    version: int = Field(1, ge=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("display_name")
    @classmethod
    def display_name_defaults_to_name(cls, v: str, info) -> str:
        return v or info.data.get("name", "")

    def supports(self, format: OutputFormat) -> bool:
        return format in self.supported_formats

    def sorted_formats(self) -> list[str]:
        return sorted(f.value for f in self.supported_formats)
