"""
Template resolver and descriptor cache.

Maps a template identifier to a parsed ``TemplateDescriptor``. Sources
are tried in a fixed order:

1. the filesystem, when the identifier looks like a path or filename
   (contains ``.``, ``/`` or ``\\``), with the content dialect inferred
   from the file extension;
2. the template store collaborator.

The first source that yields a descriptor wins. Resolved descriptors are
cached per identifier for a fixed time-to-live. Concurrent resolutions of
the same missing or expired identifier share a single load.

The cache is owned by a ``TemplateResolver`` instance rather than the
process, and is released with ``dispose()``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

import anyio

from docgen.app.errors import TemplateNotFound
from docgen.app.registry.store import TemplateStore
from docgen.app.schemas.template import ContentType, TemplateDescriptor

logger = logging.getLogger(__name__)


_EXTENSION_CONTENT_TYPES = {
    ".md": ContentType.MARKUP,
    ".markdown": ContentType.MARKUP,
    ".json": ContentType.STRUCTURED,
}


def looks_like_path(template_id: str) -> bool:
    return any(marker in template_id for marker in (".", "/", "\\"))


def content_type_for(path: Path) -> ContentType:
    return _EXTENSION_CONTENT_TYPES.get(path.suffix.lower(), ContentType.HYPERTEXT)


@dataclass(frozen=True)
class CacheEntry:
    template: TemplateDescriptor
    loaded_at: float


class TemplateResolver:
    """
    Resolve template identifiers through the filesystem and a template store.
    """

    def __init__(
        self,
        *,
        store: Optional[TemplateStore],
        templates_dir: Path,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._templates_dir = Path(templates_dir)
        self._ttl = ttl_seconds
        self._clock = clock

        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, anyio.Lock] = {}
        self._disposed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, template_id: str) -> TemplateDescriptor:
        """
        Return the descriptor for ``template_id``.

        A cache hit within the TTL performs no I/O.

        Raises:
            TemplateNotFound: if no source yields a descriptor.
        """
        if self._disposed:
            raise RuntimeError("TemplateResolver has been disposed")

        cached = self._fresh_entry(template_id)
        if cached is not None:
            return cached.template

        lock = self._locks.setdefault(template_id, anyio.Lock())
        try:
            async with lock:
                # Another caller may have loaded it while we waited.
                cached = self._fresh_entry(template_id)
                if cached is not None:
                    return cached.template

                template = await self._load(template_id)
                self._entries[template_id] = CacheEntry(
                    template=template,
                    loaded_at=self._clock(),
                )
        finally:
            if not lock.locked() and not lock.statistics().tasks_waiting:
                self._locks.pop(template_id, None)

        logger.info(
            "Template resolved: id='%s' content_type=%s",
            template_id,
            template.content_type.value,
        )
        return template

    def invalidate(self, template_id: str) -> None:
        self._entries.pop(template_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def cached_ids(self) -> list[str]:
        return sorted(
            tid for tid in self._entries if self._fresh_entry(tid) is not None
        )

    def dispose(self) -> None:
        """Drop every cached descriptor and refuse further resolutions."""
        self._entries.clear()
        self._locks.clear()
        self._disposed = True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fresh_entry(self, template_id: str) -> Optional[CacheEntry]:
        entry = self._entries.get(template_id)
        if entry is None:
            return None
        if self._clock() - entry.loaded_at < self._ttl:
            return entry
        return None

    async def _load(self, template_id: str) -> TemplateDescriptor:
        if looks_like_path(template_id):
            template = await self._load_from_file(template_id)
            if template is not None:
                return template

        if self._store is not None:
            try:
                template = await self._store.load(template_id)
            except Exception as exc:
                raise TemplateNotFound(
                    template_id, f"Template store lookup failed: {exc}"
                ) from exc

            if template is not None:
                return template

        raise TemplateNotFound(template_id)

    def _template_path(self, template_id: str) -> Optional[Path]:
        root = self._templates_dir.resolve()
        resolved = (root / template_id).resolve()

        # Relative and absolute ids alike must stay inside the templates dir.
        try:
            resolved.relative_to(root)
        except ValueError:
            logger.warning(
                "Template path escapes templates dir, skipping file source: %s",
                template_id,
            )
            return None

        return resolved

    async def _load_from_file(self, template_id: str) -> Optional[TemplateDescriptor]:
        path = self._template_path(template_id)
        if path is None:
            return None

        try:
            content = await anyio.Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning(
                "Template file not readable, trying template store: %s (%s)",
                path,
                exc,
            )
            return None

        stem = path.stem
        return TemplateDescriptor(
            id=template_id,
            name=stem,
            display_name=stem.replace("-", " ").replace("_", " "),
            content=content,
            content_type=content_type_for(path),
        )
