"""Last-resort website discovery through a generic web search."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from leadscout.core.config import Settings
from leadscout.core.contact_enricher import ContactEnricher
from leadscout.core.navigation import NavigationError, NavigationOptions, navigate
from leadscout.core.retry import Sleep
from leadscout.models import UNKNOWN_CITY, FallbackResult
from leadscout.sources.web_search import build_search_url, first_external_link

logger = logging.getLogger(__name__)


class FallbackResolver:
    def __init__(self, settings: Settings, enricher: ContactEnricher, *, sleep: Sleep = asyncio.sleep) -> None:
        self.settings = settings
        self.enricher = enricher
        self._navigation = NavigationOptions.for_directories(settings)
        self._sleep = sleep

    def build_query(self, title: str, city: str) -> str:
        parts = [title.strip()]
        if city and city != UNKNOWN_CITY:
            parts.append(city.strip())
        if self.settings.country:
            parts.append(self.settings.country)
        return " ".join(part for part in parts if part)

    async def resolve(self, session: Any, title: str, city: str) -> FallbackResult:
        """Search for ``title`` and mine the first external hit for contacts.

        Any failure yields an empty :class:`FallbackResult`; nothing is raised.
        """
        query = self.build_query(title, city)
        logger.info("Fallback search for %s (query=%r)", title, query)

        try:
            async with session.new_page() as page:
                document = await navigate(page, build_search_url(query), self._navigation, sleep=self._sleep)
                html = await document.html()
            website = first_external_link(html)
            if not website:
                logger.info("Fallback search found no external link for %s", title)
                return FallbackResult()

            details = await self.enricher.find_contacts(session, website)
        except NavigationError as exc:
            logger.warning("Fallback search failed for %s: %s", title, exc)
            return FallbackResult()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected fallback failure for %s: %s", title, exc)
            return FallbackResult()

        return FallbackResult(url=website, email=details.email, phone=details.phone)
