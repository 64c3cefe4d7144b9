"""
Document generation service.

Single entry point of the engine. One ``generate_document`` call runs the
pipeline

    resolve template -> check format -> enrich data -> render content
    -> generate artifact -> hash and store

and returns a ``GeneratedDocument``. Every stage raises its own
``DocumentGenerationError`` subtype; this module logs the failure once and
re-raises it unchanged. No descriptor is returned once a stage has failed.

Resource ownership:
- the template cache, the browser pool and the artifact workspace are
  owned by the service instance and released by ``dispose()``
- the temporary artifact of a call is deleted on every exit path
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union, assert_never

from pydantic import ValidationError

from docgen.app.config import Settings, get_settings
from docgen.app.errors import InvalidOptions, UnsupportedFormat
from docgen.app.events import (
    GenerationEvent,
    GenerationEventEmitter,
    GenerationEventType,
    LoggingEventEmitter,
)
from docgen.app.generators.base import ArtifactWorkspace, FormatGenerator
from docgen.app.generators.docx import DocxGenerator
from docgen.app.generators.html import HtmlGenerator
from docgen.app.generators.markdown import MarkdownGenerator
from docgen.app.generators.pdf import PdfGenerator
from docgen.app.generators.pdf_engine import PdfEngine, PlaywrightPdfEngine
from docgen.app.registry.registry import TemplateResolver
from docgen.app.registry.store import TemplateStore
from docgen.app.schemas.document import GeneratedDocument
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import OutputFormat
from docgen.app.services.enrichment import enrich
from docgen.app.services.persistence import finalize
from docgen.app.services.renderer import render
from docgen.app.services.storage import BlobStorage, HttpBlobStorage, build_blob_storage

logger = logging.getLogger(__name__)


class DocumentGenerationService:
    """
    Turns a template id plus caller data into a stored document.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        resolver: TemplateResolver,
        storage: BlobStorage,
        pdf_engine: PdfEngine,
        emitter: Optional[GenerationEventEmitter] = None,
        workspace: Optional[ArtifactWorkspace] = None,
    ) -> None:
        self._settings = settings
        self._resolver = resolver
        self._storage = storage
        self._pdf_engine = pdf_engine
        self._emitter = emitter or LoggingEventEmitter()
        self._workspace = workspace or ArtifactWorkspace(settings.workspace_dir)

        self._generators: Dict[OutputFormat, FormatGenerator] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        template_store: Optional[TemplateStore] = None,
        blob_storage: Optional[BlobStorage] = None,
        pdf_engine: Optional[PdfEngine] = None,
        emitter: Optional[GenerationEventEmitter] = None,
    ) -> "DocumentGenerationService":
        """
        Composition root: wire collaborators from configuration.

        Collaborators passed explicitly take precedence over the
        configured defaults.
        """
        settings = settings or get_settings()

        resolver = TemplateResolver(
            store=template_store,
            templates_dir=settings.templates_dir,
            ttl_seconds=settings.template_cache_ttl_seconds,
        )

        return cls(
            settings=settings,
            resolver=resolver,
            storage=blob_storage or build_blob_storage(settings),
            pdf_engine=pdf_engine
            or PlaywrightPdfEngine.with_pool_size(settings.browser_pool_size),
            emitter=emitter,
        )

    @property
    def resolver(self) -> TemplateResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_document(
        self,
        template_id: str,
        data: Mapping[str, Any],
        options: Optional[Union[GenerationOptions, Mapping[str, Any]]] = None,
    ) -> GeneratedDocument:
        """
        Generate, fingerprint and store one document.

        Raises:
            TemplateNotFound: no source resolves ``template_id``.
            InvalidOptions: ``options`` failed validation.
            UnsupportedFormat: the format is unknown or not offered by the
                template.
            RenderError: expression evaluation failed.
            FormatGenerationError: the artifact could not be synthesized.
            PersistenceError: the artifact could not be stored.
        """
        document_number = ""
        artifact_path: Optional[Path] = None
        try:
            options = _coerce_options(template_id, options).with_defaults(self._settings)
            document_number = options.document_number or ""

            await self._emit(
                GenerationEventType.GENERATION_STARTED,
                document_number,
                template_id,
                {"format": options.format.value},
            )

            template = await self._resolver.resolve(template_id)
            options = options.with_defaults(self._settings, template)
            format = OutputFormat(options.format)

            if not template.supports(format):
                raise UnsupportedFormat(
                    template_id, format.value, template.sorted_formats()
                )

            await self._emit(
                GenerationEventType.TEMPLATE_RESOLVED,
                document_number,
                template_id,
                {"content_type": template.content_type.value},
            )

            context = enrich(data, template, options, self._settings)
            rendered = render(
                template.content,
                template.content_type,
                context,
                template_id=template.id,
            )

            await self._emit(
                GenerationEventType.CONTENT_RENDERED,
                document_number,
                template_id,
                {"helper_collisions": list(context.collisions)},
            )

            generator = self._generator_for(format)
            artifact_path = await generator.generate(rendered, context, options, template)

            await self._emit(
                GenerationEventType.ARTIFACT_GENERATED,
                document_number,
                template_id,
                {"format": format.value},
            )

            document = await finalize(
                artifact_path,
                context,
                options,
                template,
                storage=self._storage,
                settings=self._settings,
            )

            await self._emit(
                GenerationEventType.DOCUMENT_STORED,
                document_number,
                template_id,
                {"path": document.document_path, "size": document.size},
            )

        except Exception as exc:
            logger.exception(
                "Document generation failed for template='%s' number='%s'",
                template_id,
                document_number,
            )
            await self._emit(
                GenerationEventType.GENERATION_FAILED,
                document_number,
                template_id,
                {"error_type": type(exc).__name__, "message": str(exc)},
            )
            raise

        finally:
            if artifact_path is not None:
                await self._workspace.discard(artifact_path)

        await self._emit(
            GenerationEventType.GENERATION_COMPLETED,
            document_number,
            template_id,
            {"document_hash": document.document_hash},
        )

        logger.info(
            "Document generated: template='%s' number='%s' format=%s",
            template_id,
            document.document_number,
            document.format.value,
        )
        return document

    async def dispose(self) -> None:
        """Release the template cache, the browser and the workspace."""
        self._resolver.dispose()
        try:
            await self._pdf_engine.dispose()
        finally:
            if isinstance(self._storage, HttpBlobStorage):
                await self._storage.aclose()
            self._workspace.dispose()

    async def __aenter__(self) -> "DocumentGenerationService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _generator_for(self, format: OutputFormat) -> FormatGenerator:
        generator = self._generators.get(format)
        if generator is not None:
            return generator

        match format:
            case OutputFormat.PDF:
                generator = PdfGenerator(self._workspace, self._pdf_engine)
            case OutputFormat.DOCX:
                generator = DocxGenerator(self._workspace)
            case OutputFormat.HTML:
                generator = HtmlGenerator(self._workspace)
            case OutputFormat.MARKDOWN:
                generator = MarkdownGenerator(self._workspace)
            case _:
                assert_never(format)

        self._generators[format] = generator
        return generator

    async def _emit(
        self,
        event_type: GenerationEventType,
        document_number: str,
        template_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await self._emitter.emit(
                GenerationEvent(
                    document_number=document_number,
                    template_id=template_id,
                    event_type=event_type,
                    details=details,
                )
            )
        except Exception:
            logger.warning(
                "Failed to emit %s event for document '%s'",
                event_type.value,
                document_number,
                exc_info=True,
            )


def _coerce_options(
    template_id: str,
    options: Optional[Union[GenerationOptions, Mapping[str, Any]]],
) -> GenerationOptions:
    if options is None:
        return GenerationOptions()
    if isinstance(options, GenerationOptions):
        return options

    try:
        return GenerationOptions.model_validate(options)
    except ValidationError as exc:
        if any(error["loc"][:1] == ("format",) for error in exc.errors()):
            raise UnsupportedFormat(
                template_id,
                str(options.get("format")),
                sorted(f.value for f in OutputFormat),
            ) from exc
        raise InvalidOptions(f"Invalid generation options: {exc}") from exc
