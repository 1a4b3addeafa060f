"""Playwright-backed rendering session shared by one pipeline run."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, Error as PlaywrightError, Page, Playwright, async_playwright

from leadscout.core.config import Settings

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class RenderingSessionFailure(RuntimeError):
    """Raised when the browser backing a run cannot be started."""


class RenderingSession:
    """Owns one Chromium instance; hands out isolated pages on demand."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._browser is not None and not self._closed

    async def start(self) -> "RenderingSession":
        if self._browser is not None:
            return self
        launch_kwargs = {
            "headless": self._settings.headless,
            "args": list(self._settings.browser_args),
        }
        if self._settings.browser_executable:
            launch_kwargs["executable_path"] = self._settings.browser_executable

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(**launch_kwargs)
        except Exception as exc:  # noqa: BLE001
            await self._shutdown()
            raise RenderingSessionFailure(f"Unable to launch browser: {exc}") from exc

        logger.info("Browser launched (headless=%s)", self._settings.headless)
        return self

    @asynccontextmanager
    async def new_page(self) -> AsyncIterator[Page]:
        """Yield a page in its own browser context, closed on every exit path."""
        if not self.is_open:
            raise RenderingSessionFailure("Rendering session is not open")

        context = await self._browser.new_context(user_agent=USER_AGENT, locale="en-US")
        try:
            page = await context.new_page()
            page.set_default_timeout(self._settings.navigation_timeout_ms)
            yield page
        finally:
            try:
                await context.close()
            except PlaywrightError as exc:
                logger.debug("Ignoring error while closing browser context: %s", exc)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._shutdown()
        logger.info("Browser closed")

    async def _shutdown(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as exc:
                logger.warning("Error while closing browser: %s", exc)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


@asynccontextmanager
async def open_session(settings: Settings) -> AsyncIterator[RenderingSession]:
    """Start a rendering session and guarantee it is closed exactly once."""
    session = RenderingSession(settings)
    await session.start()
    try:
        yield session
    finally:
        await session.close()
