"""
Data enrichment stage.

Builds the ``RenderingContext`` used by every content dialect. The
context keeps two namespaces apart:

- ``helpers``: the fixed, read-only formatting helper table;
- ``values``: built-in defaults, overlaid by a deep clone of the caller
  data, overlaid by ``options.metadata`` (later layers win per key).

Name lookup consults ``helpers`` first, so caller data can never replace
a helper. Caller keys that collide with a helper name are recorded in
``collisions`` and logged.

``documentNumber`` and ``documentId`` always equal
``options.document_number``; caller data cannot change them.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

from babel.dates import format_date, format_datetime, format_time

from docgen.app.config import Settings
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import TemplateDescriptor
from docgen.app.services.helpers import (
    build_helpers,
    helper_collisions,
    normalize_locale,
)

logger = logging.getLogger(__name__)


_MISSING = object()


@dataclass(frozen=True)
class RenderingContext:
    """
    Fully merged environment used to evaluate template expressions.
    """

    values: Dict[str, Any]
    helpers: Mapping[str, Callable[..., Any]]
    locale: str
    collisions: tuple[str, ...] = field(default_factory=tuple)

    def lookup(self, name: str, default: Any = None) -> Any:
        if name in self.helpers:
            return self.helpers[name]
        return self.values.get(name, default)

    def namespace(self) -> Dict[str, Any]:
        """Flat mapping for expression engines; helpers shadow values."""
        merged = dict(self.values)
        merged.update(self.helpers)
        return merged

    def resolve_path(self, dotted: str, default: Any = _MISSING) -> Any:
        """
        Resolve ``a.b.0.c`` against ``values``.

        Mapping keys and sequence indices are both supported. Returns
        ``default`` (or raises ``KeyError`` when no default is given) if
        any segment is missing.
        """
        node: Any = self.values
        for segment in dotted.strip().split("."):
            if isinstance(node, Mapping) and segment in node:
                node = node[segment]
            elif isinstance(node, (list, tuple)) and segment.isdigit() and int(segment) < len(node):
                node = node[int(segment)]
            else:
                if default is _MISSING:
                    raise KeyError(dotted)
                return default
        return node

    @property
    def document_number(self) -> str:
        return self.values["documentNumber"]

    @property
    def client_id(self) -> str:
        """Storage owner: caller data `id`, then `clientId`, else `unknown`."""
        return str(self.values.get("id") or self.values.get("clientId") or "unknown")


def _default_values(
    *,
    template: TemplateDescriptor,
    options: GenerationOptions,
    settings: Settings,
    locale: str,
    now: datetime,
) -> Dict[str, Any]:
    current_date = format_date(now, format=settings.date_format, locale=locale)
    return {
        "currentDate": current_date,
        "currentDateTime": format_datetime(
            now, format=settings.datetime_format, locale=locale
        ),
        "currentYear": str(now.year),
        # Template metadata
        "templateName": template.name,
        "templateDisplayName": template.display_name,
        "templateVersion": template.version,
        # Document metadata
        "documentId": options.document_number,
        "documentNumber": options.document_number,
        "documentTitle": options.resolved_title(template),
        "documentAuthor": options.author,
        "documentCreationDate": current_date,
        "documentCreationTime": format_time(now, format="HH:mm:ss", locale=locale),
        "revision": options.revision,
        # Identity
        "companyName": settings.company_name,
        "companyLogo": settings.company_logo,
    }


def enrich(
    data: Mapping[str, Any],
    template: TemplateDescriptor,
    options: GenerationOptions,
    settings: Settings,
    *,
    now: Optional[datetime] = None,
) -> RenderingContext:
    """
    Merge defaults, helpers, caller data and metadata overrides.

    ``options`` must already have its defaults resolved (see
    ``GenerationOptions.with_defaults``). The caller's ``data`` is deep
    cloned and never mutated.
    """
    now = now or datetime.now()
    locale = normalize_locale(options.language)

    cloned: Dict[str, Any] = copy.deepcopy(dict(data))

    collisions = helper_collisions(cloned)
    if collisions:
        logger.warning(
            "Caller data shadows helper names %s for template '%s'; "
            "helpers take precedence",
            collisions,
            template.id,
        )

    defaults = _default_values(
        template=template,
        options=options,
        settings=settings,
        locale=locale,
        now=now,
    )

    values: Dict[str, Any] = {**defaults, **cloned, **options.metadata}

    caller_metadata = cloned.get("metadata")
    values["metadata"] = {
        **defaults,
        **(caller_metadata if isinstance(caller_metadata, Mapping) else {}),
        **options.metadata,
    }
    values["options"] = options.model_dump(mode="json")

    # Document identity is owned by the options, never by caller data.
    for key in ("documentNumber", "documentId"):
        values[key] = defaults[key]
        values["metadata"][key] = defaults[key]

    for key in ("currentDate", "currentDateTime"):
        if values.get(key) in (None, ""):
            values[key] = defaults[key]

    helpers = build_helpers(
        locale=locale,
        date_format=settings.date_format,
        datetime_format=settings.datetime_format,
        time_format=settings.time_format,
    )

    return RenderingContext(
        values=values,
        helpers=helpers,
        locale=locale,
        collisions=tuple(collisions),
    )
