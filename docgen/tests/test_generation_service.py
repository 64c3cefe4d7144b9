"""
End-to-end tests for DocumentGenerationService with in-memory
collaborators.

Coverage:

  html        substitution + document-id meta tag
  docx        rejected by an {html, pdf} template, nothing written/stored
  markdown    front matter round-trips number, revision and title
  pdf         metadata stamped, page tokens handed to the engine
  integrity   size and hash describe the stored bytes
  cleanup     temp artifact removed after success and storage failure
  events      lifecycle order, failure terminal event
"""

import hashlib

import pytest

from docgen.app.errors import (
    InvalidOptions,
    PersistenceError,
    RenderError,
    TemplateNotFound,
    UnsupportedFormat,
)
from docgen.app.events import GenerationEventType, LoggingEventEmitter
from docgen.app.generators.pdf_metadata import read_pdf_metadata
from docgen.app.schemas.options import GenerationOptions
from docgen.app.schemas.template import ContentType, OutputFormat
from docgen.app.services.generation import DocumentGenerationService
from docgen.tests.fixtures.fakes import (
    FakePdfEngine,
    ListEmitter,
    RecordingBlobStorage,
    make_service,
    make_template,
    parse_front_matter,
)

pytestmark = pytest.mark.anyio


def _workspace_files(tmp_path):
    root = tmp_path / "work"
    if not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_file()]


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------

async def test_html_document_is_generated_and_stored(tmp_path):
    storage = RecordingBlobStorage()
    service = make_service(tmp_path, make_template(), storage=storage)

    document = await service.generate_document(
        "greeting",
        {"client": {"name": "Mario Rossi"}, "id": "client-7"},
        {"format": "html"},
    )

    html = storage.last_content.decode("utf-8")
    assert "Hello Mario Rossi" in html
    assert f'<meta name="document-id" content="{document.document_number}">' in html
    assert document.document_number

    upload = storage.uploads[0]
    assert upload["client_id"] == "client-7"
    assert upload["mime_type"] == "text/html"
    assert upload["category"] == "documents"
    assert upload["tags"] == {
        "documentType": "letters",
        "generated": "true",
        "format": "html",
    }
    assert upload["metadata"]["templateId"] == "greeting"
    assert upload["metadata"]["documentNumber"] == document.document_number

    assert document.format is OutputFormat.HTML
    assert document.template_name == "greeting"
    assert document.document_url.startswith("memory://client-7/documents/")
    assert document.metadata["generated_with"] == "DocumentGenerationService"
    assert document.metadata["client_id"] == "client-7"


async def test_size_and_hash_match_stored_bytes(tmp_path):
    storage = RecordingBlobStorage()
    service = make_service(tmp_path, make_template(), storage=storage)

    document = await service.generate_document(
        "greeting",
        {"client": {"name": "Ada"}},
        GenerationOptions(format=OutputFormat.MARKDOWN),
    )

    content = storage.last_content
    assert document.size == len(content)
    assert document.document_hash == hashlib.sha256(content).hexdigest()
    assert storage.uploads[0]["client_id"] == "unknown"


async def test_markdown_front_matter_round_trip(tmp_path):
    storage = RecordingBlobStorage()
    template = make_template(
        id="offer",
        name="offer",
        content="## Offer for {{ client.name }}",
        content_type=ContentType.MARKUP,
    )
    service = make_service(tmp_path, template, storage=storage)

    document = await service.generate_document(
        "offer",
        {"client": {"name": "Ada"}},
        GenerationOptions(
            format=OutputFormat.MARKDOWN,
            title="Offer: \"Spring\" edition",
            revision=3,
        ),
    )

    front = parse_front_matter(storage.last_content.decode("utf-8"))

    assert front["document_id"] == document.document_number
    assert front["revision"] == 3
    assert front["title"] == 'Offer: "Spring" edition'
    assert front["template"] == "offer"
    assert document.revision == 3


async def test_pdf_is_stamped_with_metadata(tmp_path):
    storage = RecordingBlobStorage()
    engine = FakePdfEngine()
    template = make_template(
        footer_template="<div>{{ documentNumber }} {{ pageNumber }}/{{ totalPages }}</div>",
    )
    service = make_service(tmp_path, template, storage=storage, pdf_engine=engine)

    document = await service.generate_document(
        "greeting",
        {"client": {"name": "Mario Rossi"}},
        GenerationOptions(format=OutputFormat.PDF, author="Legal Team"),
    )

    info = read_pdf_metadata(storage.last_content)
    assert info["Title"] == "Greeting Letter"
    assert info["Author"] == "Legal Team"
    assert info["documentNumber"] == document.document_number

    call = engine.calls[0]
    assert "Hello Mario Rossi" in call["html"]
    assert call["footer_html"] == (
        f'<div>{document.document_number} '
        '<span class="pageNumber"></span>/<span class="totalPages"></span></div>'
    )


async def test_docx_generation(tmp_path):
    storage = RecordingBlobStorage()
    service = make_service(tmp_path, make_template(), storage=storage)

    document = await service.generate_document(
        "greeting",
        {"client": {"name": "Mario Rossi"}},
        GenerationOptions(format=OutputFormat.DOCX, filename="letter"),
    )

    assert storage.uploads[0]["filename"] == "letter.docx"
    assert storage.last_content[:2] == b"PK"
    assert document.format is OutputFormat.DOCX


async def test_default_format_comes_from_settings(tmp_path):
    storage = RecordingBlobStorage()
    service = make_service(
        tmp_path, make_template(), storage=storage, default_format="html"
    )

    document = await service.generate_document("greeting", {"client": {"name": "A"}})

    assert document.format is OutputFormat.HTML


async def test_repeated_calls_get_distinct_document_numbers(tmp_path):
    service = make_service(tmp_path, make_template())
    data = {"client": {"name": "A"}}
    options = {"format": "html"}

    first = await service.generate_document("greeting", data, options)
    second = await service.generate_document("greeting", data, options)

    assert first.document_number != second.document_number


# ---------------------------------------------------------------------------
# Failure paths
# ---------------------------------------------------------------------------

async def test_unsupported_format_is_rejected_before_rendering(tmp_path):
    storage = RecordingBlobStorage()
    template = make_template(supported_formats={OutputFormat.HTML, OutputFormat.PDF})
    service = make_service(tmp_path, template, storage=storage)

    with pytest.raises(UnsupportedFormat) as excinfo:
        await service.generate_document(
            "greeting",
            {"client": {"name": "Mario Rossi"}},
            {"format": "docx"},
        )

    assert excinfo.value.supported == ["html", "pdf"]
    assert "html, pdf" in str(excinfo.value)
    assert storage.uploads == []
    assert _workspace_files(tmp_path) == []


async def test_unknown_template(tmp_path):
    service = make_service(tmp_path)

    with pytest.raises(TemplateNotFound):
        await service.generate_document("missing", {})


async def test_render_error_writes_nothing(tmp_path):
    storage = RecordingBlobStorage()
    service = make_service(tmp_path, make_template(), storage=storage)

    with pytest.raises(RenderError):
        await service.generate_document("greeting", {}, {"format": "html"})

    assert storage.uploads == []
    assert _workspace_files(tmp_path) == []


async def test_temp_artifact_removed_after_success(tmp_path):
    service = make_service(tmp_path, make_template())

    await service.generate_document("greeting", {"client": {"name": "A"}}, {"format": "html"})

    assert _workspace_files(tmp_path) == []


async def test_temp_artifact_removed_after_storage_failure(tmp_path):
    storage = RecordingBlobStorage(error=ConnectionError("bucket offline"))
    service = make_service(tmp_path, make_template(), storage=storage)

    with pytest.raises(PersistenceError) as excinfo:
        await service.generate_document(
            "greeting", {"client": {"name": "A"}}, {"format": "html"}
        )

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert _workspace_files(tmp_path) == []


# ---------------------------------------------------------------------------
# Events and lifecycle
# ---------------------------------------------------------------------------

async def test_lifecycle_events_in_order(tmp_path):
    emitter = ListEmitter()
    service = make_service(tmp_path, make_template(), emitter=emitter)

    document = await service.generate_document(
        "greeting", {"client": {"name": "A"}}, {"format": "html"}
    )

    assert [e.event_type for e in emitter.events] == [
        GenerationEventType.GENERATION_STARTED,
        GenerationEventType.TEMPLATE_RESOLVED,
        GenerationEventType.CONTENT_RENDERED,
        GenerationEventType.ARTIFACT_GENERATED,
        GenerationEventType.DOCUMENT_STORED,
        GenerationEventType.GENERATION_COMPLETED,
    ]
    assert {e.document_number for e in emitter.events} == {document.document_number}


async def test_failure_emits_terminal_event(tmp_path):
    emitter = ListEmitter()
    service = make_service(tmp_path, emitter=emitter)

    with pytest.raises(TemplateNotFound):
        await service.generate_document("missing", {})

    events = emitter.events

    assert [e.event_type for e in events] == [
        GenerationEventType.GENERATION_STARTED,
        GenerationEventType.GENERATION_FAILED,
    ]
    assert events[-1].details["error_type"] == "TemplateNotFound"


async def test_emitter_failure_does_not_break_generation(tmp_path):
    class ExplodingEmitter:
        async def emit(self, event):
            raise RuntimeError("listener gone")

    service = make_service(tmp_path, make_template(), emitter=ExplodingEmitter())

    document = await service.generate_document(
        "greeting", {"client": {"name": "A"}}, {"format": "html"}
    )

    assert document.size > 0


async def test_dispose_releases_resources(tmp_path):
    engine = FakePdfEngine()

    async with make_service(tmp_path, make_template(), pdf_engine=engine) as service:
        await service.generate_document(
            "greeting", {"client": {"name": "A"}}, {"format": "pdf"}
        )
        assert (tmp_path / "work").exists()

    assert engine.disposed
    assert list((tmp_path / "work").iterdir()) == []
    with pytest.raises(RuntimeError):
        await service.resolver.resolve("greeting")


async def test_from_settings_wires_local_storage(tmp_path):
    from docgen.app.registry.store import InMemoryTemplateStore
    from docgen.tests.fixtures.fakes import make_settings

    settings = make_settings(tmp_path)
    service = DocumentGenerationService.from_settings(
        settings,
        template_store=InMemoryTemplateStore([make_template()]),
        pdf_engine=FakePdfEngine(),
    )

    async with service:
        document = await service.generate_document(
            "greeting",
            {"client": {"name": "A"}, "clientId": "c-1"},
            {"format": "markdown", "document_category": "letters"},
        )

    assert document.document_path.startswith("c-1/letters/")
    assert document.document_url.startswith("file://")
    assert (tmp_path / "store" / document.document_path).read_bytes()


# ---------------------------------------------------------------------------
# Document identity and option validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("caller_number", [42, "X-1"])
async def test_caller_data_cannot_replace_document_number(tmp_path, caller_number):
    storage = RecordingBlobStorage()
    emitter = ListEmitter()
    service = make_service(tmp_path, make_template(), storage=storage, emitter=emitter)

    document = await service.generate_document(
        "greeting",
        {"client": {"name": "A"}, "documentNumber": caller_number, "documentId": "Y"},
        {"format": "html"},
    )

    assert document.document_number.startswith("DOC-")
    assert storage.uploads[0]["metadata"]["documentNumber"] == document.document_number
    assert {e.document_number for e in emitter.events} == {document.document_number}
    assert (
        f'<meta name="document-id" content="{document.document_number}">'
        in storage.last_content.decode("utf-8")
    )


async def test_document_number_from_options_is_used_everywhere(tmp_path):
    storage = RecordingBlobStorage()
    service = make_service(tmp_path, make_template(), storage=storage)

    document = await service.generate_document(
        "greeting",
        {"client": {"name": "A"}},
        {"format": "markdown", "document_number": "INV-7", "metadata": {"documentNumber": "Z"}},
    )

    assert document.document_number == "INV-7"
    assert storage.uploads[0]["metadata"]["documentNumber"] == "INV-7"
    assert parse_front_matter(storage.last_content.decode("utf-8"))["document_id"] == "INV-7"


async def test_md_is_accepted_as_markdown(tmp_path):
    service = make_service(tmp_path, make_template())

    document = await service.generate_document(
        "greeting", {"client": {"name": "A"}}, {"format": "MD"}
    )

    assert document.format is OutputFormat.MARKDOWN


async def test_unknown_format_is_unsupported(tmp_path):
    storage = RecordingBlobStorage()
    emitter = ListEmitter()
    service = make_service(tmp_path, make_template(), storage=storage, emitter=emitter)

    with pytest.raises(UnsupportedFormat) as excinfo:
        await service.generate_document("greeting", {}, {"format": "pptx"})

    assert excinfo.value.requested == "pptx"
    assert excinfo.value.supported == ["docx", "html", "markdown", "pdf"]
    assert storage.uploads == []
    assert [e.event_type for e in emitter.events] == [
        GenerationEventType.GENERATION_FAILED
    ]


async def test_invalid_options_are_reported(tmp_path):
    emitter = ListEmitter()
    service = make_service(tmp_path, make_template(), emitter=emitter)

    with pytest.raises(InvalidOptions):
        await service.generate_document("greeting", {}, {"revision": 0})

    assert emitter.events[-1].details["error_type"] == "InvalidOptions"


async def test_storage_size_mismatch_is_a_persistence_error(tmp_path):
    storage = RecordingBlobStorage(reported_size=1)
    service = make_service(tmp_path, make_template(), storage=storage)

    with pytest.raises(PersistenceError) as excinfo:
        await service.generate_document(
            "greeting", {"client": {"name": "A"}}, {"format": "html"}
        )

    assert "reported 1 bytes" in str(excinfo.value)
    assert _workspace_files(tmp_path) == []


async def test_default_emitter_logs_lifecycle(tmp_path, caplog):
    caplog.set_level("DEBUG", logger="docgen.app.events.emitter")
    service = make_service(tmp_path, make_template(), emitter=LoggingEventEmitter())

    document = await service.generate_document(
        "greeting", {"client": {"name": "A"}}, {"format": "html"}
    )
    with pytest.raises(TemplateNotFound):
        await service.generate_document("missing", {})

    records = {(r.levelname, r.getMessage().split()[1]) for r in caplog.records
               if r.name == "docgen.app.events.emitter"}
    assert ("DEBUG", "template_resolved") in records
    assert ("INFO", "generation_completed") in records
    assert ("WARNING", "generation_failed") in records
    assert any(document.document_number in r.getMessage() for r in caplog.records)
