"""
Tests for the Playwright PDF engine against an in-memory browser.

The browser, contexts and pages are stand-ins; nothing is launched.
"""

import anyio
import pytest

from docgen.app.errors import FormatGenerationError
from docgen.app.generators.pdf_engine import BrowserPool, PlaywrightPdfEngine
from docgen.app.schemas.template import PageSettings

pytestmark = pytest.mark.anyio


class StubPage:
    def __init__(self, pdf_error=None):
        self.pdf_error = pdf_error
        self.content = None
        self.pdf_kwargs = None

    async def set_content(self, html, wait_until=None):
        self.content = html

    async def pdf(self, **kwargs):
        self.pdf_kwargs = kwargs
        if self.pdf_error is not None:
            raise self.pdf_error
        return b"%PDF-1.7 stub"


class StubContext:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class StubBrowser:
    def __init__(self, pdf_error=None):
        self.pdf_error = pdf_error
        self.contexts = []
        self.closed = False

    def is_connected(self):
        return not self.closed

    async def new_context(self):
        context = StubContext(StubPage(self.pdf_error))
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


def _engine(browser, size=2):
    pool = BrowserPool(size=size)
    pool._browser = browser
    return PlaywrightPdfEngine(pool), pool


async def test_render_closes_context_after_success():
    browser = StubBrowser()
    engine, pool = _engine(browser)

    pdf = await engine.render_pdf(
        "<p>Hi</p>",
        page_settings=PageSettings(),
        footer_html="<div>footer</div>",
    )

    assert pdf == b"%PDF-1.7 stub"
    context = browser.contexts[0]
    assert context.closed
    assert context.page.content == "<p>Hi</p>"
    assert context.page.pdf_kwargs["display_header_footer"] is True
    assert context.page.pdf_kwargs["header_template"] == "<span></span>"
    assert context.page.pdf_kwargs["footer_template"] == "<div>footer</div>"
    assert pool._semaphore.value == 2


async def test_print_failure_closes_context_and_releases_slot():
    browser = StubBrowser(pdf_error=RuntimeError("target crashed"))
    engine, pool = _engine(browser, size=1)

    with pytest.raises(FormatGenerationError) as excinfo:
        await engine.render_pdf("<p>Hi</p>", page_settings=PageSettings())

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert "target crashed" in str(excinfo.value)
    assert browser.contexts[0].closed
    assert pool._semaphore.value == 1

    # The single slot is free again: a second render does not block.
    browser.pdf_error = None
    with anyio.fail_after(1):
        assert await engine.render_pdf("<p>Again</p>", page_settings=PageSettings())
    assert all(context.closed for context in browser.contexts)


async def test_dispose_closes_browser():
    browser = StubBrowser()
    engine, _ = _engine(browser)

    await engine.dispose()

    assert browser.closed
