"""
Headless browser PDF engine.

A single Chromium process is launched lazily on first use and shared by
every generation. Concurrency is bounded by a semaphore sized from
``browser_pool_size``; each render gets its own browser context and page,
which are closed on every exit path.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

import anyio
from playwright.async_api import Browser, Page, Playwright, async_playwright

from docgen.app.errors import FormatGenerationError
from docgen.app.schemas.template import PageSettings

logger = logging.getLogger(__name__)


# Chromium requires a non-empty template when header/footer display is on.
_EMPTY_TEMPLATE = "<span></span>"

_LAUNCH_ARGS = ("--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage")


class PdfEngine(Protocol):
    async def render_pdf(
        self,
        html: str,
        *,
        page_settings: PageSettings,
        header_html: Optional[str] = None,
        footer_html: Optional[str] = None,
    ) -> bytes:
        ...

    async def dispose(self) -> None:
        ...


class BrowserPool:
    """Shared Chromium instance with a bounded number of open pages."""

    def __init__(self, *, size: int = 2) -> None:
        self._size = size
        self._semaphore: Optional[anyio.Semaphore] = None
        self._launch_lock: Optional[anyio.Lock] = None
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def _ensure_browser(self) -> Browser:
        if self._launch_lock is None:
            self._launch_lock = anyio.Lock()

        async with self._launch_lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                    args=list(_LAUNCH_ARGS),
                )
                logger.info("Headless Chromium launched (pool size %d)", self._size)
            return self._browser

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        if self._semaphore is None:
            self._semaphore = anyio.Semaphore(self._size)

        async with self._semaphore:
            browser = await self._ensure_browser()
            context = await browser.new_context()
            try:
                yield await context.new_page()
            finally:
                await context.close()

    async def dispose(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        logger.info("Headless Chromium closed")


class PlaywrightPdfEngine:
    """``PdfEngine`` backed by Playwright's Chromium ``page.pdf``."""

    def __init__(self, pool: BrowserPool) -> None:
        self._pool = pool

    @classmethod
    def with_pool_size(cls, size: int) -> "PlaywrightPdfEngine":
        return cls(BrowserPool(size=size))

    async def render_pdf(
        self,
        html: str,
        *,
        page_settings: PageSettings,
        header_html: Optional[str] = None,
        footer_html: Optional[str] = None,
    ) -> bytes:
        margins = page_settings.margins
        try:
            async with self._pool.page() as page:
                await page.set_content(html, wait_until="networkidle")
                return await page.pdf(
                    format=page_settings.page_size,
                    landscape=page_settings.landscape,
                    print_background=True,
                    margin={
                        "top": margins.top,
                        "right": margins.right,
                        "bottom": margins.bottom,
                        "left": margins.left,
                    },
                    display_header_footer=bool(header_html or footer_html),
                    header_template=header_html or _EMPTY_TEMPLATE,
                    footer_template=footer_html or _EMPTY_TEMPLATE,
                )
        except Exception as exc:
            raise FormatGenerationError("pdf", f"Browser rendering failed: {exc}") from exc

    async def dispose(self) -> None:
        await self._pool.dispose()
