"""Common contract for directory/search sources."""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional

from bs4 import Tag

from leadscout.core.config import Settings
from leadscout.core.navigation import NavigationError, NavigationOptions, RenderedDocument, navigate
from leadscout.core.retry import Sleep
from leadscout.models import UNKNOWN_CITY, BusinessRecord, Source

logger = logging.getLogger(__name__)

_NAMES_PLACE = re.compile(r"\bin\s+\S", re.IGNORECASE)


class ExtractionMismatch(RuntimeError):
    """Raised when a results page lacks the structure an adapter expects."""


class SourceAdapter(ABC):
    """Query one external source and turn its rendered output into records.

    Subclasses only know about their own site's URLs and markup; the
    orchestrator drives every adapter through :meth:`extract`.
    """

    name: str = "base"
    source: Source
    ready_selector: str = "body"

    def __init__(self, settings: Settings, *, sleep: Sleep = asyncio.sleep) -> None:
        self.settings = settings
        self.navigation = NavigationOptions.for_directories(settings)
        self._sleep = sleep

    @abstractmethod
    def build_search_url(self, query: str, city: Optional[str] = None, page_number: int = 1) -> str:
        """Return the results URL for ``query`` on this source."""

    @abstractmethod
    async def _extract(
        self,
        page: Any,
        query: str,
        city: str,
        max_results: int,
        scraped_at: datetime,
    ) -> List[BusinessRecord]:
        """Source specific extraction against an already opened page."""

    async def extract(self, session: Any, query: str, city: str, max_results: int) -> List[BusinessRecord]:
        """Return at most ``max_results`` records, ranked in document order.

        Unreachable pages and missing result markers produce an empty list;
        anything else propagates to the orchestrator.
        """
        if max_results < 1:
            return []

        scraped_at = datetime.now(timezone.utc)
        logger.info("Scraping %s for query=%r city=%s", self.name, query, city)
        try:
            async with session.new_page() as page:
                records = await self._extract(page, query, city, max_results, scraped_at)
        except (NavigationError, ExtractionMismatch) as exc:
            logger.warning("No %s results for query=%r: %s", self.name, query, exc)
            return []

        logger.info("Parsed %d candidates from %s", len(records), self.name)
        return records[:max_results]

    async def open_results(self, page: Any, url: str) -> RenderedDocument:
        """Navigate to a results page and wait for the source's ready marker."""
        logger.info("Opening %s results: %s", self.name, url)
        try:
            return await navigate(page, url, self.navigation, wait_for=self.ready_selector, sleep=self._sleep)
        except NavigationError as exc:
            raise ExtractionMismatch(f"results marker {self.ready_selector!r} never appeared at {url}") from exc


def text_of(node: Tag, selector: str) -> Optional[str]:
    found = node.select_one(selector)
    if found is None:
        return None
    text = found.get_text(" ", strip=True)
    return text or None


def href_of(node: Tag, selector: str) -> Optional[str]:
    found = node.select_one(selector)
    if found is None:
        return None
    href = (found.get("href") or "").strip()
    return href or None


def localized_query(query: str, city: Optional[str]) -> str:
    """Append ``in <city>`` when the query does not already name a place."""
    query = query.strip()
    if not city or city == UNKNOWN_CITY or _NAMES_PLACE.search(query):
        return query
    return f"{query} in {city.strip()}"
