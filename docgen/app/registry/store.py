"""
Template store collaborator contract.

The store is the non-filesystem source of template descriptors (usually
a database-backed repository owned by the surrounding service). The
engine only consumes it through ``TemplateStore.load``.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol

from docgen.app.schemas.template import TemplateDescriptor


class TemplateStore(Protocol):
    async def load(self, template_id: str) -> Optional[TemplateDescriptor]:
        """Return the descriptor for ``template_id``, or None if unknown."""
        ...


class InMemoryTemplateStore:
    """
    Dictionary-backed template store.

    Suitable for wiring fixed template catalogues and for tests. The
    ``load_count`` attribute records how many lookups reached the store.
    """

    def __init__(self, templates: Iterable[TemplateDescriptor] = ()) -> None:
        self._templates: Dict[str, TemplateDescriptor] = {
            t.id: t for t in templates
        }
        self.load_count = 0

    def add(self, template: TemplateDescriptor) -> None:
        self._templates[template.id] = template

    async def load(self, template_id: str) -> Optional[TemplateDescriptor]:
        self.load_count += 1
        return self._templates.get(template_id)
