#!/usr/bin/env python3
"""
Paginated document exporter.

A :class:`RenderingBackend` turns a complete HTML document into PDF bytes.
:class:`PyppeteerBackend` does it with a headless Chromium that is launched
for one call only and always torn down afterwards; tests plug in a fake.
"""

import asyncio
import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pyppeteer import launch
from pyppeteer.errors import PyppeteerError

from .errors import ExportSandboxError
from .settings import ExportSettings

logger = logging.getLogger(__name__)


@dataclass
class PdfOptions:
    """Page setup and timing for one paginated export."""
    page_format: str = "A4"
    margin: str = "0.5in"
    print_background: bool = True
    timeout_ms: int = 30000
    wait_until: str = "networkidle0"

    @classmethod
    def from_settings(cls, settings: ExportSettings) -> "PdfOptions":
        return cls(
            page_format=settings.page_format,
            margin=settings.margin,
            print_background=settings.print_background,
            timeout_ms=settings.navigation_timeout_ms,
        )

    def to_pdf_kwargs(self) -> dict:
        return {
            'format': self.page_format,
            'printBackground': self.print_background,
            'margin': {side: self.margin for side in ('top', 'bottom', 'left', 'right')},
        }


class RenderingBackend(ABC):
    """Capability: render a full HTML document into paginated bytes."""

    @abstractmethod
    async def render(self, document: str, options: PdfOptions) -> bytes:
        """Return the printed document. Must release every resource it acquires."""


class PyppeteerBackend(RenderingBackend):
    """
    Headless Chromium through pyppeteer, one disposable browser per call.

    The document is written to a private temporary directory and loaded over
    ``file://`` so relative assets resolve and ``waitUntil`` can be honoured.
    """

    def __init__(self, *, browser_args: Optional[List[str]] = None,
                 executable_path: Optional[str] = None, debug: bool = False):
        self.browser_args = list(browser_args) if browser_args is not None else [
            '--no-sandbox',
            '--disable-setuid-sandbox',
        ]
        self.executable_path = executable_path
        self.debug = debug

    @classmethod
    def from_settings(cls, settings: ExportSettings) -> "PyppeteerBackend":
        return cls(browser_args=settings.browser_args,
                   executable_path=settings.executable_path,
                   debug=settings.debug)

    async def _launch(self):
        launch_kwargs = {
            'headless': True,
            'args': self.browser_args,
            # signal handlers can only be installed from the main thread
            'handleSIGINT': False,
            'handleSIGTERM': False,
            'handleSIGHUP': False,
        }
        if self.executable_path:
            launch_kwargs['executablePath'] = self.executable_path
        return await launch(**launch_kwargs)

    async def render(self, document: str, options: PdfOptions) -> bytes:
        work_dir = tempfile.mkdtemp(prefix="deck_export_pdf_")
        browser = None
        try:
            html_path = Path(work_dir) / "document.html"
            html_path.write_text(document, encoding="utf-8")

            browser = await self._launch()
            page = await browser.newPage()
            if self.debug:
                logger.debug("Loading %s (timeout %d ms)", html_path, options.timeout_ms)
            await page.goto(html_path.as_uri(), {
                'waitUntil': options.wait_until,
                'timeout': options.timeout_ms,
            })
            await page.emulateMedia('print')
            return await page.pdf(options.to_pdf_kwargs())
        finally:
            if browser is not None:
                try:
                    await browser.close()
                except (PyppeteerError, OSError) as exc:
                    logger.warning("Failed to close headless browser cleanly: %s", exc)
            shutil.rmtree(work_dir, ignore_errors=True)


class PaginatedExporter:
    """
    Bounds concurrent sandboxes and normalizes their failures.

    Timeouts and crashes surface as :class:`ExportSandboxError`; there is no
    retry here, that is a caller policy.
    """

    def __init__(self, backend: Optional[RenderingBackend] = None,
                 options: Optional[PdfOptions] = None, *, max_concurrency: int = 2):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.backend = backend or PyppeteerBackend()
        self.options = options or PdfOptions()
        self.max_concurrency = max_concurrency
        self._semaphore: Optional[asyncio.Semaphore] = None

    @classmethod
    def from_settings(cls, settings: ExportSettings,
                      backend: Optional[RenderingBackend] = None) -> "PaginatedExporter":
        return cls(backend or PyppeteerBackend.from_settings(settings),
                   PdfOptions.from_settings(settings),
                   max_concurrency=settings.max_concurrent_renders)

    @property
    def semaphore(self) -> asyncio.Semaphore:
        # created lazily so it binds to the running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore

    async def export(self, document: str, options: Optional[PdfOptions] = None) -> bytes:
        """Render *document* to PDF bytes.

        Raises:
            ExportSandboxError: navigation/settle timeout or engine crash.
        """
        options = options or self.options
        # navigation has its own timeout; this one also covers launch and print
        overall_timeout = options.timeout_ms / 1000 * 2

        async with self.semaphore:
            try:
                data = await asyncio.wait_for(self.backend.render(document, options), overall_timeout)
            except asyncio.TimeoutError as exc:
                # also pyppeteer.errors.TimeoutError from navigation
                raise ExportSandboxError(
                    f"Rendering engine timed out (navigation limit {options.timeout_ms} ms): {exc}",
                    timeout_ms=options.timeout_ms,
                ) from exc
            except PyppeteerError as exc:
                # PageError, NetworkError or BrowserError: the engine crashed
                raise ExportSandboxError(f"Rendering engine failed: {exc}") from exc
            except OSError as exc:
                raise ExportSandboxError(f"Could not start rendering engine: {exc}") from exc

        if not data:
            raise ExportSandboxError("Rendering engine returned an empty document")
        logger.info("Printed paginated document (%d bytes)", len(data))
        return bytes(data)


async def export_paginated(document: str, *, backend: Optional[RenderingBackend] = None,
                           options: Optional[PdfOptions] = None) -> bytes:
    """One-shot helper: render *document* with a fresh exporter."""
    return await PaginatedExporter(backend, options, max_concurrency=1).export(document)
