"""
Content rendering stage.

Substitutes template expressions against a ``RenderingContext`` and
produces the intermediate representation consumed by format generators.

Dialects:

    hypertext   ``{{ expr }}`` placeholders (plus ``{% for %}`` /
                ``{% if %}`` blocks) evaluated by Jinja2, autoescaped.
    markup      Same substitution without escaping, then Markdown is
                converted to hypertext.
    structured  Recursive walk of an object/array tree; ``${dotted.path}``
                references inside string leaves are resolved against the
                context values. Unresolved references are left verbatim.

Design guarantees:
- Undefined names fail loudly (Jinja2 ``StrictUndefined``)
- No partial output: any failure raises ``RenderError``
- The caller's template content is never mutated
"""

from __future__ import annotations

import html
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, assert_never

import markdown
from jinja2 import Environment, StrictUndefined

from docgen.app.errors import RenderError
from docgen.app.schemas.template import ContentType, TemplateContent
from docgen.app.services.enrichment import RenderingContext

logger = logging.getLogger(__name__)


_HYPERTEXT_ENV = Environment(undefined=StrictUndefined, autoescape=True)
_MARKUP_ENV = Environment(undefined=StrictUndefined, autoescape=False)

_MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "sane_lists"]

_PATH_REFERENCE = re.compile(r"\$\{([^}]+)\}")

_UNRESOLVED = object()


@dataclass(frozen=True)
class RenderedContent:
    """
    Intermediate representation passed from the renderer to a generator.

    ``html`` is always populated. ``markup`` holds the substituted
    Markdown source for the markup dialect; ``tree`` holds the substituted
    object tree for the structured dialect.
    """

    content_type: ContentType
    html: str
    markup: Optional[str] = None
    tree: Any = None


# ----------------------------------------------------------------------
# Expression dialects
# ----------------------------------------------------------------------

def _render_expressions(
    env: Environment,
    source: str,
    namespace: Mapping[str, Any],
) -> str:
    return env.from_string(source).render(namespace)


def render_hypertext(
    source: str,
    context: RenderingContext,
    *,
    template_id: str,
    extra: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Render a hypertext fragment.

    ``extra`` names are layered on top of the context (used for header
    and footer page tokens).
    """
    namespace = context.namespace()
    if extra:
        namespace.update(extra)
    try:
        return _render_expressions(_HYPERTEXT_ENV, source, namespace)
    except Exception as exc:
        raise RenderError(template_id, str(exc)) from exc


def render_markup(
    source: str,
    context: RenderingContext,
    *,
    template_id: str,
) -> tuple[str, str]:
    """Return ``(substituted_markdown, html)``."""
    try:
        substituted = _render_expressions(_MARKUP_ENV, source, context.namespace())
        converted = markdown.markdown(substituted, extensions=_MARKDOWN_EXTENSIONS)
    except Exception as exc:
        raise RenderError(template_id, str(exc)) from exc
    return substituted, converted


# ----------------------------------------------------------------------
# Structured dialect
# ----------------------------------------------------------------------

def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _substitute_string(text: str, context: RenderingContext) -> str:
    def replace(match: re.Match) -> str:
        value = context.resolve_path(match.group(1), default=_UNRESOLVED)
        if value is _UNRESOLVED:
            return match.group(0)
        return _stringify(value)

    return _PATH_REFERENCE.sub(replace, text)


def substitute_tree(node: Any, context: RenderingContext) -> Any:
    """
    Return a copy of ``node`` with every string leaf substituted.

    Mappings and sequences keep their shape; non-string scalars pass
    through untouched.
    """
    if isinstance(node, str):
        return _substitute_string(node, context)
    if isinstance(node, list):
        return [substitute_tree(item, context) for item in node]
    if isinstance(node, dict):
        return {key: substitute_tree(value, context) for key, value in node.items()}
    return node


def _humanize(key: str) -> str:
    spaced = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", str(key))
    spaced = spaced.replace("_", " ").replace("-", " ").strip()
    return spaced[:1].upper() + spaced[1:].lower()


def tree_to_html(node: Any, level: int = 2) -> str:
    """
    Project a substituted tree onto hypertext.

    Mapping keys become headings (``h2`` at the top, one level deeper per
    nesting), sequences become lists and scalars become paragraphs.
    """
    if isinstance(node, dict):
        heading = f"h{min(level, 6)}"
        parts = []
        for key, value in node.items():
            parts.append(f"<{heading}>{html.escape(_humanize(key))}</{heading}>")
            parts.append(tree_to_html(value, level + 1))
        return "\n".join(parts)

    if isinstance(node, list):
        items = []
        for item in node:
            if isinstance(item, (dict, list)):
                items.append(f"<li>{tree_to_html(item, level + 1)}</li>")
            else:
                items.append(f"<li>{html.escape(_stringify(item))}</li>")
        return "<ul>\n" + "\n".join(items) + "\n</ul>"

    return f"<p>{html.escape(_stringify(node))}</p>"


def render_structured(
    content: TemplateContent,
    context: RenderingContext,
    *,
    template_id: str,
) -> Any:
    try:
        tree = json.loads(content) if isinstance(content, str) else content
        return substitute_tree(tree, context)
    except (ValueError, TypeError, RecursionError) as exc:
        raise RenderError(template_id, str(exc)) from exc


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def render(
    content: TemplateContent,
    content_type: ContentType,
    context: RenderingContext,
    *,
    template_id: str,
) -> RenderedContent:
    """
    Render template ``content`` in its dialect.

    Raises:
        RenderError: on malformed expressions, undefined names, helper
            failures or unparsable structured content.
    """
    match content_type:
        case ContentType.HYPERTEXT:
            if not isinstance(content, str):
                raise RenderError(template_id, "hypertext content must be a string")
            rendered = RenderedContent(
                content_type=content_type,
                html=render_hypertext(content, context, template_id=template_id),
            )
        case ContentType.MARKUP:
            if not isinstance(content, str):
                raise RenderError(template_id, "markup content must be a string")
            substituted, converted = render_markup(
                content, context, template_id=template_id
            )
            rendered = RenderedContent(
                content_type=content_type,
                html=converted,
                markup=substituted,
            )
        case ContentType.STRUCTURED:
            tree = render_structured(content, context, template_id=template_id)
            rendered = RenderedContent(
                content_type=content_type,
                html=tree_to_html(tree),
                tree=tree,
            )
        case _:
            assert_never(content_type)

    logger.debug(
        "Rendered template '%s' (%s, %d chars)",
        template_id,
        content_type.value,
        len(rendered.html),
    )
    return rendered
