"""
Shared plumbing for format generators.

Every generator turns a ``RenderedContent`` into exactly one artifact file
inside the process-scoped ``ArtifactWorkspace``. Generators only build
bytes; writing, partial-file cleanup and error wrapping live here.
"""

from __future__ import annotations

import html
import logging
import re
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Optional, Protocol

import anyio

from docgen.app.errors import DocumentGenerationError, FormatGenerationError
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import OutputFormat, TemplateDescriptor
from docgen.app.services.enrichment import RenderingContext
from docgen.app.services.renderer import RenderedContent

logger = logging.getLogger(__name__)


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    """Reduce a caller-supplied filename to a single safe path segment."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", filename).strip(".-")
    return cleaned or "document"


# ----------------------------------------------------------------------
# Artifact workspace
# ----------------------------------------------------------------------

class ArtifactWorkspace:
    """
    Process-scoped directory holding temporary artifacts.

    The directory is created on first use and removed by ``dispose()``.
    Artifact names carry a random prefix, so concurrent generations with
    the same filename never collide.
    """

    def __init__(self, parent: Optional[Path] = None) -> None:
        self._parent = Path(parent) if parent is not None else None
        self._root: Optional[Path] = None

    @property
    def root(self) -> Path:
        if self._root is None:
            if self._parent is not None:
                self._parent.mkdir(parents=True, exist_ok=True)
            self._root = Path(tempfile.mkdtemp(prefix="docgen-", dir=self._parent))
            logger.debug("Artifact workspace created: %s", self._root)
        return self._root

    def allocate(self, filename: str, format: OutputFormat) -> Path:
        name = f"{uuid.uuid4().hex[:12]}-{safe_filename(filename)}.{format.extension}"
        return self.root / name

    async def write(self, path: Path, content: bytes) -> Path:
        """Write ``content`` to ``path``; a partial file never survives a failure."""
        try:
            await anyio.Path(path).write_bytes(content)
        except Exception:
            await self.discard(path)
            raise
        return path

    async def discard(self, path: Path) -> None:
        try:
            await anyio.Path(path).unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove temporary artifact %s: %s", path, exc)

    def dispose(self) -> None:
        if self._root is not None:
            shutil.rmtree(self._root, ignore_errors=True)
            logger.debug("Artifact workspace removed: %s", self._root)
            self._root = None


# ----------------------------------------------------------------------
# Generator contract
# ----------------------------------------------------------------------

class FormatGenerator(Protocol):
    format: OutputFormat

    async def generate(
        self,
        rendered: RenderedContent,
        context: RenderingContext,
        options: GenerationOptions,
        template: TemplateDescriptor,
    ) -> Path:
        ...


class BaseFormatGenerator(ABC):
    """
    Template method for generators: ``build`` produces the artifact bytes,
    ``generate`` writes them to the workspace.
    """

    format: OutputFormat

    def __init__(self, workspace: ArtifactWorkspace) -> None:
        self._workspace = workspace

    @abstractmethod
    async def build(
        self,
        rendered: RenderedContent,
        context: RenderingContext,
        options: GenerationOptions,
        template: TemplateDescriptor,
    ) -> bytes:
        ...

    async def generate(
        self,
        rendered: RenderedContent,
        context: RenderingContext,
        options: GenerationOptions,
        template: TemplateDescriptor,
    ) -> Path:
        try:
            content = await self.build(rendered, context, options, template)
        except DocumentGenerationError:
            raise
        except Exception as exc:
            raise FormatGenerationError(self.format.value, str(exc)) from exc

        path = self._workspace.allocate(options.filename or "document", self.format)
        try:
            await self._workspace.write(path, content)
        except OSError as exc:
            raise FormatGenerationError(
                self.format.value, f"Failed to write artifact: {exc}"
            ) from exc

        logger.info(
            "%s artifact generated: %s (%d bytes)",
            self.format.value.upper(),
            path.name,
            len(content),
        )
        return path


# ----------------------------------------------------------------------
# Shared presentation fragments
# ----------------------------------------------------------------------

def document_keywords(
    template: TemplateDescriptor,
    options: GenerationOptions,
) -> List[str]:
    keywords = [template.category, template.type, *options.keywords]
    return [k for k in dict.fromkeys(keywords) if k]


def document_subject(template: TemplateDescriptor, options: GenerationOptions) -> str:
    return options.subject or template.metadata.get("description") or template.display_name


def client_label(context: RenderingContext) -> str:
    for key in ("clientName", "name", "client"):
        value = context.values.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return "Client"


def signature_parties(context: RenderingContext) -> List[str]:
    return [str(context.values.get("companyName") or ""), client_label(context)]


def watermark_css() -> str:
    return """
.watermark {
  position: fixed;
  top: 45%;
  left: 0;
  width: 100%;
  text-align: center;
  font-size: 96px;
  font-weight: bold;
  color: rgba(200, 50, 50, 0.15);
  transform: rotate(-35deg);
  z-index: 1000;
  pointer-events: none;
}
"""


def signature_css() -> str:
    return """
.signature-fields { display: flex; justify-content: space-between; margin-top: 3em; page-break-inside: avoid; }
.signature-field { width: 40%; }
.signature-line { display: block; border-bottom: 1px solid #000; height: 3em; }
.signature-label { margin-top: 0.3em; font-size: 0.9em; }
"""


def signature_block_html(context: RenderingContext) -> str:
    fields = "\n".join(
        '  <div class="signature-field">'
        '<span class="signature-line"></span>'
        f'<p class="signature-label">{html.escape(party)}</p>'
        "</div>"
        for party in signature_parties(context)
    )
    return f'<section class="signature-fields">\n{fields}\n</section>'


def font_css(options: GenerationOptions) -> str:
    fonts = options.custom_fonts
    rules: List[str] = []
    if fonts.body:
        rules.append(f"body {{ font-family: {_css_font(fonts.body)}, sans-serif; }}")
    if fonts.heading:
        rules.append(f"h1, h2, h3, h4, h5, h6 {{ font-family: {_css_font(fonts.heading)}, sans-serif; }}")
    if fonts.monospace:
        rules.append(f"code, pre {{ font-family: {_css_font(fonts.monospace)}, monospace; }}")
    return "\n".join(rules)


def _css_font(name: str) -> str:
    return '"' + name.replace('"', "") + '"'


def escape_attr(value: Any) -> str:
    return html.escape("" if value is None else str(value), quote=True)
