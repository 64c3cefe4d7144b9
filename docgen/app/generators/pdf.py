"""
PDF generator.

Wraps rendered hypertext in a print-styled page, prints it through the
pooled browser engine and stamps document metadata into the result.
"""

from __future__ import annotations

from typing import Optional

from markupsafe import Markup

from docgen.app.generators.base import (
    ArtifactWorkspace,
    BaseFormatGenerator,
    document_keywords,
    document_subject,
    escape_attr,
    font_css,
    signature_block_html,
    signature_css,
    watermark_css,
)
from docgen.app.generators.pdf_engine import PdfEngine
from docgen.app.generators.pdf_metadata import stamp_pdf_metadata
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import OutputFormat, TemplateDescriptor
from docgen.app.services.enrichment import RenderingContext
from docgen.app.services.renderer import RenderedContent, render_hypertext


CREATOR = "DocumentGenerationService"

# Chromium fills these classes in header and footer templates.
PAGE_TOKENS = {
    "pageNumber": Markup('<span class="pageNumber"></span>'),
    "totalPages": Markup('<span class="totalPages"></span>'),
}

_RUNNING_STYLE = "font-size: 9px; width: 100%; padding: 0 1cm; color: #555;"


def build_print_document(
    rendered: RenderedContent,
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> str:
    page = template.page_settings
    watermark = ""
    if options.watermark.enabled:
        watermark = f'<div class="watermark">{escape_attr(options.watermark.text)}</div>'

    signature = signature_block_html(context) if options.include_signature_fields else ""
    title = options.resolved_title(template)

    return f"""<!DOCTYPE html>
<html lang="{escape_attr(options.language)}">
<head>
<meta charset="utf-8">
<title>{escape_attr(title)}</title>
<style>
@page {{
  size: {page.page_size} {page.orientation.value};
  margin: {page.margins.css()};
}}
body {{ font-family: Arial, Helvetica, sans-serif; font-size: 12pt; line-height: 1.5; }}
{watermark_css() if watermark else ""}
{signature_css() if signature else ""}
{font_css(options)}
{template.css}
</style>
</head>
<body>
{watermark}
{rendered.html}
{signature}
</body>
</html>
"""


def build_header(
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> Optional[str]:
    if template.header_template:
        return render_hypertext(
            template.header_template,
            context,
            template_id=template.id,
            extra=PAGE_TOKENS,
        )
    if options.header_logo:
        return (
            f'<div style="{_RUNNING_STYLE}">'
            f'<img src="{escape_attr(options.header_logo)}" style="height: 32px;">'
            "</div>"
        )
    return None


def build_footer(
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> str:
    if template.footer_template:
        return render_hypertext(
            template.footer_template,
            context,
            template_id=template.id,
            extra=PAGE_TOKENS,
        )

    footer_text = ""
    if options.footer_text:
        footer_text = f"<div>{escape_attr(options.footer_text)}</div>"

    return (
        f'<div style="{_RUNNING_STYLE} text-align: center;">'
        f"{footer_text}"
        f"<div>Document #{escape_attr(context.document_number)} - "
        f"Page {PAGE_TOKENS['pageNumber']} of {PAGE_TOKENS['totalPages']}</div>"
        "</div>"
    )


class PdfGenerator(BaseFormatGenerator):
    format = OutputFormat.PDF

    def __init__(self, workspace: ArtifactWorkspace, engine: PdfEngine) -> None:
        super().__init__(workspace)
        self._engine = engine

    async def build(
        self,
        rendered: RenderedContent,
        context: RenderingContext,
        options: GenerationOptions,
        template: TemplateDescriptor,
    ) -> bytes:
        document = build_print_document(rendered, context, options, template)

        pdf_bytes = await self._engine.render_pdf(
            document,
            page_settings=template.page_settings,
            header_html=build_header(context, options, template),
            footer_html=build_footer(context, options, template),
        )

        return stamp_pdf_metadata(
            pdf_bytes,
            title=options.resolved_title(template),
            author=options.author or "",
            subject=document_subject(template, options),
            keywords=document_keywords(template, options),
            creator=CREATOR,
            producer=f"{CREATOR} ({template.name} v{template.version})",
            document_number=context.document_number,
        )
