"""Single page-load operation with timeout, retry and linear backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from leadscout.core.config import Settings
from leadscout.core.retry import Sleep, linear_backoff, retry_async

logger = logging.getLogger(__name__)


class NavigationError(RuntimeError):
    """Raised when a page could not be loaded after every allowed attempt."""


class NavigationTimeout(NavigationError):
    """Raised when the last attempt to load a page timed out."""


@dataclass(frozen=True)
class NavigationOptions:
    timeout_ms: int = 30000
    max_retries: int = 3
    backoff_unit: float = 1.0
    wait_until: str = "domcontentloaded"

    @classmethod
    def for_directories(cls, settings: Settings) -> "NavigationOptions":
        return cls(
            timeout_ms=settings.navigation_timeout_ms,
            max_retries=settings.navigation_retries,
            backoff_unit=settings.navigation_backoff,
        )

    @classmethod
    def for_websites(cls, settings: Settings) -> "NavigationOptions":
        # The enricher owns the retry loop for business sites, one load per attempt.
        return cls(
            timeout_ms=settings.enrich_timeout_ms,
            max_retries=1,
            backoff_unit=settings.navigation_backoff,
        )


@dataclass
class RenderedDocument:
    """A page that finished loading, plus how many attempts it took."""

    page: Any
    url: str
    attempts: int

    async def html(self) -> str:
        # Client side redirects can tear down the document between load and read.
        try:
            return await self.page.content()
        except PlaywrightError as exc:
            raise NavigationError(f"Failed to read {self.url}: {exc}") from exc


async def navigate(
    page: Any,
    url: str,
    options: NavigationOptions,
    *,
    wait_for: Optional[str] = None,
    sleep: Sleep = asyncio.sleep,
) -> RenderedDocument:
    """Load ``url`` in ``page`` and optionally wait for a readiness selector.

    Each failed attempt waits ``attempt * backoff_unit`` seconds before the
    next one. ``NavigationTimeout`` or ``NavigationError`` is raised only
    after ``max_retries`` consecutive failures.
    """

    async def _attempt(attempt: int) -> RenderedDocument:
        logger.debug("Navigating to %s (attempt %d/%d)", url, attempt, options.max_retries)
        try:
            await page.goto(url, wait_until=options.wait_until, timeout=options.timeout_ms)
            if wait_for:
                await page.wait_for_selector(wait_for, timeout=options.timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(f"Timed out loading {url}: {exc}") from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Failed to load {url}: {exc}") from exc
        return RenderedDocument(page=page, url=page.url or url, attempts=attempt)

    return await retry_async(
        _attempt,
        attempts=options.max_retries,
        backoff=linear_backoff(options.backoff_unit),
        retry_on=(NavigationError,),
        sleep=sleep,
        label=f"navigate {url}",
    )
