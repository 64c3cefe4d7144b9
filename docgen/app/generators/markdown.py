"""
Markdown generator.

Output layout::

    ---
    title: "..."
    ...
    ---

    # Title

    body

    ---

    Document #N - Generated on <datetime>[ - WATERMARK]

The front matter is emitted with ``yaml.safe_dump`` so any YAML parser
reads the values back unchanged.
"""

from __future__ import annotations

from typing import List

import yaml

from docgen.app.generators.base import (
    BaseFormatGenerator,
    signature_parties,
)
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import ContentType, OutputFormat, TemplateDescriptor
from docgen.app.services.blocks import blocks_to_markdown, reconstruct_blocks
from docgen.app.services.enrichment import RenderingContext
from docgen.app.services.renderer import RenderedContent


def front_matter(
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> str:
    fields = {
        "title": options.resolved_title(template),
        "author": options.author,
        "date": context.values.get("currentDate"),
        "document_id": context.document_number,
        "revision": options.revision,
        "template": template.name,
        "category": template.category,
        "type": options.document_type or template.type,
        "client": context.client_id,
    }
    header = yaml.safe_dump(
        {key: "" if value is None else value for key, value in fields.items()},
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return "---\n" + header + "---"


def body_markdown(rendered: RenderedContent) -> str:
    if rendered.content_type is ContentType.MARKUP and rendered.markup is not None:
        return rendered.markup.strip()
    return blocks_to_markdown(reconstruct_blocks(rendered.html))


def signature_markdown(context: RenderingContext) -> str:
    lines: List[str] = []
    for party in signature_parties(context):
        lines.append("_____________________________")
        lines.append("")
        lines.append(party)
        lines.append("")
    return "\n".join(lines).rstrip()


def build_markdown_document(
    rendered: RenderedContent,
    context: RenderingContext,
    options: GenerationOptions,
    template: TemplateDescriptor,
) -> str:
    stamp = (
        f"Document #{context.document_number} - "
        f"Generated on {context.values.get('currentDateTime')}"
    )
    if options.watermark.enabled:
        stamp += f" - {options.watermark.text}"

    sections = [
        front_matter(context, options, template),
        f"# {options.resolved_title(template)}",
        body_markdown(rendered),
    ]
    if options.include_signature_fields:
        sections.append(signature_markdown(context))
    if options.footer_text:
        sections.append(options.footer_text)
    sections.extend(["---", stamp])

    return "\n\n".join(s for s in sections if s) + "\n"


class MarkdownGenerator(BaseFormatGenerator):
    format = OutputFormat.MARKDOWN

    async def build(
        self,
        rendered: RenderedContent,
        context: RenderingContext,
        options: GenerationOptions,
        template: TemplateDescriptor,
    ) -> bytes:
        return build_markdown_document(rendered, context, options, template).encode("utf-8")
