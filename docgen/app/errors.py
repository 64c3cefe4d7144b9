"""
Error taxonomy for the document generation pipeline.

Each pipeline stage raises exactly one of the types below, chaining the
underlying cause with ``raise ... from exc``. Only the top-level
``generate_document`` call surfaces the final error to callers; no
document descriptor is ever returned once any of these has been raised.
"""

from __future__ import annotations

from typing import Optional


class DocumentGenerationError(RuntimeError):
    """Base class for every failure raised by the generation pipeline."""


class TemplateNotFound(DocumentGenerationError):
    """Raised when neither the filesystem nor the template store resolves an id."""

    def __init__(self, template_id: str, reason: Optional[str] = None) -> None:
        self.template_id = template_id
        message = f"Template '{template_id}' not found."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class UnsupportedFormat(DocumentGenerationError):
    """Raised when the requested output format is not offered by the template."""

    def __init__(self, template_id: str, requested: str, supported: list[str]) -> None:
        self.template_id = template_id
        self.requested = requested
        self.supported = supported
        super().__init__(
            f"Format '{requested}' is not supported by template "
            f"'{template_id}'. Available formats: {', '.join(supported)}"
        )


class RenderError(DocumentGenerationError):
    """Raised when expression evaluation or structured traversal fails."""

    def __init__(self, template_id: str, message: str) -> None:
        self.template_id = template_id
        super().__init__(f"Rendering failed for template '{template_id}': {message}")


class FormatGenerationError(DocumentGenerationError):
    """Raised when a format generator cannot synthesize its artifact."""

    def __init__(self, format: str, message: str) -> None:
        self.format = format
        super().__init__(f"{format.upper()} generation failed: {message}")


class PersistenceError(DocumentGenerationError):
    """Raised when the artifact cannot be read back or handed to storage."""


class InvalidOptions(DocumentGenerationError):
    """Raised when the generation options fail validation."""
