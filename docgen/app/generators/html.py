"""
HTML generator: a self-contained page with document metadata in ``<meta>``
tags and a print stylesheet.
"""

from __future__ import annotations

from docgen.app.generators.base import (
    BaseFormatGenerator,
    document_keywords,
    document_subject,
    escape_attr,
    font_css,
    signature_block_html,
    signature_css,
    watermark_css,
)
from docgen.app.generators.pdf import CREATOR
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import OutputFormat, TemplateDescriptor
from docgen.app.services.enrichment import RenderingContext
from docgen.app.services.renderer import RenderedContent


_BASE_CSS = """
body { font-family: Arial, Helvetica, sans-serif; line-height: 1.5; max-width: 210mm; margin: 0 auto; padding: 2em; }
.document-footer { margin-top: 3em; padding-top: 1em; border-top: 1px solid #ccc; font-size: 0.8em; color: #666; text-align: center; }
"""


def build_html_document(
    rendered: RenderedContent,
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> str:
    page = template.page_settings
    title = options.resolved_title(template)

    meta = {
        "generator": CREATOR,
        "author": options.author,
        "description": document_subject(template, options),
        "keywords": ", ".join(document_keywords(template, options)),
        "document-id": context.document_number,
        "creation-date": context.values.get("currentDate"),
        "revision": options.revision,
    }
    meta_tags = "\n".join(
        f'<meta name="{name}" content="{escape_attr(value)}">'
        for name, value in meta.items()
    )

    watermark = ""
    if options.watermark.enabled:
        watermark = f'<div class="watermark">{escape_attr(options.watermark.text)}</div>'

    signature = signature_block_html(context) if options.include_signature_fields else ""

    footer_lines = [
        f"Document #{escape_attr(context.document_number)} - "
        f"Generated on {escape_attr(context.values.get('currentDate'))}"
    ]
    if options.footer_text:
        footer_lines.insert(0, escape_attr(options.footer_text))
    footer = "<br>".join(footer_lines)

    return f"""<!DOCTYPE html>
<html lang="{escape_attr(options.language)}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
{meta_tags}
<title>{escape_attr(title)}</title>
<style>
{_BASE_CSS}
{watermark_css() if watermark else ""}
{signature_css() if signature else ""}
{font_css(options)}
{template.css}
@media print {{
  @page {{
    size: {page.page_size} {page.orientation.value};
    margin: {page.margins.css()};
  }}
  body {{ max-width: none; padding: 0; }}
}}
</style>
</head>
<body>
{watermark}
<main class="document-content">
{rendered.html}
</main>
{signature}
<footer class="document-footer">{footer}</footer>
</body>
</html>
"""


class HtmlGenerator(BaseFormatGenerator):
    format = OutputFormat.HTML

    async def build(
        self,
        rendered: RenderedContent,
        context: RenderingContext,
        options: GenerationOptions,
        template: TemplateDescriptor,
    ) -> bytes:
        return build_html_document(rendered, context, options, template).encode("utf-8")
