"""
Word-processor (DOCX) generator.

The body is rebuilt from rendered hypertext with the heuristic block
reconstruction, so layout fidelity is best-effort: headings, list items and
paragraphs survive, inline styling and tables are flattened to text.
"""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from typing import Dict, Tuple

import anyio.to_thread
from docx import Document
from docx.document import Document as DocxDocument
from docx.enum.section import WD_ORIENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.section import Section
from docx.shared import Cm, Emu, Inches, Length, Mm, Pt, RGBColor
from docx.text.paragraph import Paragraph

from docgen.app.generators.base import (
    BaseFormatGenerator,
    document_keywords,
    document_subject,
    signature_parties,
)
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import OutputFormat, PageSettings, TemplateDescriptor
from docgen.app.services.blocks import BlockKind, reconstruct_blocks
from docgen.app.services.enrichment import RenderingContext
from docgen.app.services.renderer import RenderedContent

logger = logging.getLogger(__name__)


DEFAULT_BODY_FONT = "Calibri"
DEFAULT_HEADING_FONT = "Calibri Light"

HEADING_COLOR = RGBColor(0x2E, 0x74, 0xB5)
MUTED_COLOR = RGBColor(0x80, 0x80, 0x80)
WATERMARK_COLOR = RGBColor(0xC8, 0x32, 0x32)

# (width, height) in portrait orientation.
PAGE_SIZES: Dict[str, Tuple[Length, Length]] = {
    "A3": (Mm(297), Mm(420)),
    "A4": (Mm(210), Mm(297)),
    "A5": (Mm(148), Mm(210)),
    "LETTER": (Inches(8.5), Inches(11)),
    "LEGAL": (Inches(8.5), Inches(14)),
}

STYLE_FOR_BLOCK = {
    BlockKind.HEADING_1: "Heading 1",
    BlockKind.HEADING_2: "Heading 2",
    BlockKind.HEADING_3: "Heading 3",
    BlockKind.LIST_ITEM: "List Bullet",
    BlockKind.PARAGRAPH: "Normal",
}

_CSS_LENGTH = re.compile(r"^\s*([\d.]+)\s*(cm|mm|in|pt|px)?\s*$", re.IGNORECASE)


def css_length(value: str, default: Length = Cm(2)) -> Length:
    """Convert a CSS length (``2cm``, ``20mm``, ``1in``, ``72pt``, ``96px``)."""
    match = _CSS_LENGTH.match(value or "")
    if not match:
        logger.warning("Unsupported page margin '%s', using default", value)
        return default

    amount = float(match.group(1))
    unit = (match.group(2) or "px").lower()
    if unit == "cm":
        return Cm(amount)
    if unit == "mm":
        return Mm(amount)
    if unit == "in":
        return Inches(amount)
    if unit == "pt":
        return Pt(amount)
    return Emu(int(amount * 9525))  # 96 px per inch


# ----------------------------------------------------------------------
# Document setup
# ----------------------------------------------------------------------

def _setup_styles(doc: DocxDocument, options: GenerationOptions) -> None:
    fonts = options.custom_fonts
    styles = doc.styles

    normal = styles["Normal"]
    normal.font.name = fonts.body or DEFAULT_BODY_FONT
    normal.font.size = Pt(11)
    normal.paragraph_format.space_after = Pt(6)

    for name, size in (("Heading 1", 16), ("Heading 2", 14), ("Heading 3", 12)):
        style = styles[name]
        style.font.name = fonts.heading or DEFAULT_HEADING_FONT
        style.font.size = Pt(size)
        style.font.bold = True
        style.font.color.rgb = HEADING_COLOR
        style.paragraph_format.space_before = Pt(12)
        style.paragraph_format.space_after = Pt(6)


def _setup_core_properties(
    doc: DocxDocument,
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> None:
    core = doc.core_properties
    core.title = options.resolved_title(template)
    core.author = options.author or ""
    core.subject = document_subject(template, options)
    core.keywords = ", ".join(document_keywords(template, options))
    core.revision = options.revision
    core.category = template.category
    core.identifier = context.document_number
    core.language = options.language or ""
    core.comments = f"Generated from template '{template.name}' v{template.version}"


def _setup_page(section: Section, page: PageSettings) -> None:
    width, height = PAGE_SIZES.get(page.page_size.upper(), PAGE_SIZES["A4"])
    if page.landscape:
        section.orientation = WD_ORIENT.LANDSCAPE
        width, height = height, width
    else:
        section.orientation = WD_ORIENT.PORTRAIT
    section.page_width = width
    section.page_height = height

    margins = page.margins
    section.top_margin = css_length(margins.top)
    section.right_margin = css_length(margins.right)
    section.bottom_margin = css_length(margins.bottom)
    section.left_margin = css_length(margins.left)


def _add_field(paragraph: Paragraph, instruction: str) -> None:
    """Append a Word field (``PAGE``, ``NUMPAGES``) to ``paragraph``."""
    run = paragraph.add_run()
    begin = OxmlElement("w:fldChar")
    begin.set(qn("w:fldCharType"), "begin")
    instr = OxmlElement("w:instrText")
    instr.set(qn("xml:space"), "preserve")
    instr.text = instruction
    end = OxmlElement("w:fldChar")
    end.set(qn("w:fldCharType"), "end")
    run._r.append(begin)
    run._r.append(instr)
    run._r.append(end)


def _setup_header(section: Section, title: str, options: GenerationOptions) -> None:
    paragraph = section.header.paragraphs[0]
    paragraph.alignment = WD_ALIGN_PARAGRAPH.RIGHT

    logo = options.header_logo
    if logo and Path(logo).is_file():
        paragraph.add_run().add_picture(logo, height=Cm(1.2))
        paragraph.add_run("  ")
    elif logo:
        logger.warning("Header logo is not a local file, skipping: %s", logo)

    run = paragraph.add_run(title)
    run.font.size = Pt(9)
    run.font.color.rgb = MUTED_COLOR


def _setup_footer(
    section: Section,
    context: RenderingContext,
    options: GenerationOptions,
) -> None:
    footer = section.footer
    paragraph = footer.paragraphs[0]
    paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER

    paragraph.add_run(f"Document #{context.document_number} - Page ")
    _add_field(paragraph, "PAGE")
    paragraph.add_run(" of ")
    _add_field(paragraph, "NUMPAGES")
    for run in paragraph.runs:
        run.font.size = Pt(8)
        run.font.color.rgb = MUTED_COLOR

    if options.footer_text:
        extra = footer.add_paragraph()
        extra.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = extra.add_run(options.footer_text)
        run.font.size = Pt(8)
        run.font.color.rgb = MUTED_COLOR


def _add_watermark(doc: DocxDocument, text: str) -> None:
    paragraph = doc.add_paragraph()
    paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER

    shading = OxmlElement("w:shd")
    shading.set(qn("w:val"), "clear")
    shading.set(qn("w:color"), "auto")
    shading.set(qn("w:fill"), "F2DCDB")
    paragraph._p.get_or_add_pPr().append(shading)

    run = paragraph.add_run(text)
    run.bold = True
    run.font.size = Pt(20)
    run.font.color.rgb = WATERMARK_COLOR


def _add_signature_block(doc: DocxDocument, context: RenderingContext) -> None:
    parties = signature_parties(context)
    table = doc.add_table(rows=2, cols=len(parties))
    for index, party in enumerate(parties):
        table.cell(0, index).text = "_" * 30
        table.cell(1, index).text = party


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def build_docx(
    rendered: RenderedContent,
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> bytes:
    doc = Document()
    title = options.resolved_title(template)

    _setup_styles(doc, options)
    _setup_core_properties(doc, context, options, template)

    section = doc.sections[0]
    _setup_page(section, template.page_settings)
    _setup_header(section, title, options)
    _setup_footer(section, context, options)

    if options.watermark.enabled and options.watermark.text:
        _add_watermark(doc, options.watermark.text)

    for block in reconstruct_blocks(rendered.html):
        doc.add_paragraph(block.text, style=STYLE_FOR_BLOCK[block.kind])

    if options.include_signature_fields:
        doc.add_paragraph()
        _add_signature_block(doc, context)

    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


class DocxGenerator(BaseFormatGenerator):
    format = OutputFormat.DOCX

    async def build(
        self,
        rendered: RenderedContent,
        context: RenderingContext,
        options: GenerationOptions,
        template: TemplateDescriptor,
    ) -> bytes:
        return await anyio.to_thread.run_sync(
            build_docx, rendered, context, options, template
        )
