# Consent window — the user-facing surface that shows the provider's sign-in page.
# Created: 2026-10-13
#
# A window opens the authorization URL, can be closed by us, and reports when
# it has been closed (by us or by the user) through on_closed callbacks.

from __future__ import annotations

import asyncio
import logging
import webbrowser
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright

logger = logging.getLogger(__name__)

ClosedCallback = Callable[[], None]


class ConsentWindow:
    """Base class for consent surfaces.

    Subclasses implement ``open()`` and ``_dispose()`` and call
    ``_mark_closed()`` when the user dismisses the surface.
    """

    def __init__(self) -> None:
        self._callbacks: list[ClosedCallback] = []
        self._closed = False
        self._disposed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on_closed(self, callback: ClosedCallback) -> None:
        """Register a callback fired once when the window closes."""
        self._callbacks.append(callback)

    async def open(self, url: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """Close the surface. Safe to call more than once or after the user closed it."""
        if self._disposed:
            return
        self._disposed = True
        try:
            await self._dispose()
        finally:
            self._mark_closed()

    async def _dispose(self) -> None:
        """Release the underlying surface."""

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        for callback in list(self._callbacks):
            callback()


class SystemBrowserWindow(ConsentWindow):
    """Opens the authorization URL in the user's default browser.

    The system browser cannot report that its tab was closed, so an abandoned
    sign-in is only ended by the flow timeout.
    """

    async def open(self, url: str) -> None:
        opened = await asyncio.to_thread(webbrowser.open, url)
        if opened:
            logger.info("Opened system browser for sign-in")
        else:
            logger.warning(
                "Could not open a browser automatically. Open this URL to sign in: %s", url
            )


class PlaywrightConsentWindow(ConsentWindow):
    """A headed Chromium window driven by Playwright.

    Closing the page or the browser counts as the user dismissing sign-in.
    Uses system Chrome if available, Playwright's Chromium otherwise.
    """

    DEFAULT_VIEWPORT = {"width": 800, "height": 600}

    def __init__(self) -> None:
        super().__init__()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None

    async def open(self, url: str) -> None:
        try:
            from playwright.async_api import async_playwright
        except ImportError as exc:
            raise ImportError(
                "'playwright' is required for the in-app sign-in window but not installed. "
                "Install it with: pip install 'loopauth[browser]'"
            ) from exc

        self._playwright = await async_playwright().start()

        try:
            self._browser = await self._playwright.chromium.launch(headless=False, channel="chrome")
            logger.info("Using system Chrome for sign-in window")
        except Exception as e:
            logger.debug(f"System Chrome not available: {e}")
            self._browser = await self._playwright.chromium.launch(headless=False)
            logger.info("Using Playwright Chromium for sign-in window")

        context = await self._browser.new_context(viewport=self.DEFAULT_VIEWPORT)
        self._page = await context.new_page()
        self._page.on("close", lambda _page: self._mark_closed())
        self._browser.on("disconnected", lambda _browser: self._mark_closed())

        await self._page.goto(url)

    async def _dispose(self) -> None:
        # The user may already have closed the browser; Playwright then raises on close().
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("Sign-in browser already closed: %s", e)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self._page = None


def create_consent_window(kind: str = "browser") -> ConsentWindow:
    """Build the consent window configured by ``Settings.consent_window``."""
    if kind == "playwright":
        return PlaywrightConsentWindow()
    if kind == "browser":
        return SystemBrowserWindow()
    raise ValueError(f"Unknown consent window: {kind}")
