"""Google Maps results feed (infinite scroll, optional detail click-through)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from leadscout.models import BusinessRecord, Source, blank_to_none
from leadscout.sources.base import SourceAdapter, href_of, localized_query, text_of

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.google.com/maps/search/{query}/"
CARD_SELECTOR = ".Nv2PK"
CARD_LINK_SELECTOR = ".Nv2PK a.hfpxzc"
FEED_SELECTOR = "div[role='feed']"
DETAIL_TITLE_SELECTOR = "h1.DUwDvf"

SCROLL_PAUSE_MS = 1200
MAX_SCROLL_ROUNDS = 30
STALE_SCROLL_ROUNDS = 3

# Scrolls the results feed one screen and reports how many cards are rendered.
_SCROLL_SCRIPT = """
([feedSelector, cardSelector]) => {
    const feed = document.querySelector(feedSelector);
    if (feed) { feed.scrollBy(0, feed.scrollHeight); }
    return document.querySelectorAll(cardSelector).length;
}
"""


def _industry_from(description: Optional[str]) -> Optional[str]:
    if not description:
        return None
    if "restaurant" in description.lower():
        return "Restaurant"
    return description


def parse_results(html: str, *, city: str, scraped_at: datetime, max_results: int) -> List[BusinessRecord]:
    """Turn rendered result cards into records; cards without a name are dropped."""

    soup = BeautifulSoup(html or "", "html.parser")
    records: List[BusinessRecord] = []
    for card in soup.select(CARD_SELECTOR):
        if len(records) >= max_results:
            break
        title = text_of(card, ".qBF1Pd")
        if not title:
            logger.debug("Skipping map card without a title")
            continue
        records.append(
            BusinessRecord(
                title=title,
                rank=len(records) + 1,
                source=Source.MAP_DIRECTORY,
                industry=_industry_from(text_of(card, ".W4Efsd")),
                city=city,
                rating=text_of(card, ".MW4etd"),
                scraped_at=scraped_at,
            )
        )
    return records


def _aria_value(soup: BeautifulSoup, selector: str) -> Optional[str]:
    node = soup.select_one(selector)
    if node is None:
        return None
    label = node.get("aria-label") or node.get_text(" ", strip=True)
    if ":" in label:
        label = label.split(":", 1)[1]
    return blank_to_none(label)


def parse_detail(html: str) -> Dict[str, Optional[str]]:
    """Read the side panel that opens after clicking a result card."""

    soup = BeautifulSoup(html or "", "html.parser")
    return {
        "title": text_of(soup, DETAIL_TITLE_SELECTOR),
        "phone": _aria_value(soup, "button[data-item-id^='phone']"),
        "address": _aria_value(soup, "button[data-item-id='address']"),
        "url": href_of(soup, "a[data-item-id='authority']"),
    }


class GoogleMapsAdapter(SourceAdapter):
    name = "maps"
    source = Source.MAP_DIRECTORY
    ready_selector = CARD_SELECTOR

    def build_search_url(self, query: str, city: Optional[str] = None, page_number: int = 1) -> str:
        return SEARCH_URL.format(query=quote(localized_query(query, city)))

    async def _extract(
        self,
        page: Any,
        query: str,
        city: str,
        max_results: int,
        scraped_at: datetime,
    ) -> List[BusinessRecord]:
        await self.open_results(page, self.build_search_url(query, city))
        await self._scroll_feed(page, max_results)

        records = parse_results(await page.content(), city=city, scraped_at=scraped_at, max_results=max_results)
        if self.settings.maps_detail_view and records:
            await self._collect_details(page, records)
        return records

    async def _scroll_feed(self, page: Any, max_results: int) -> None:
        previous = 0
        stale_rounds = 0
        for _ in range(MAX_SCROLL_ROUNDS):
            count = await page.evaluate(_SCROLL_SCRIPT, [FEED_SELECTOR, CARD_SELECTOR])
            if count >= max_results:
                break
            stale_rounds = stale_rounds + 1 if count <= previous else 0
            if stale_rounds >= STALE_SCROLL_ROUNDS:
                logger.debug("Results feed stopped growing at %d cards", count)
                break
            previous = count
            await page.wait_for_timeout(SCROLL_PAUSE_MS)

    async def _collect_details(self, page: Any, records: List[BusinessRecord]) -> None:
        """Click through each card, read its detail panel, then go back."""
        timeout = self.navigation.timeout_ms
        for index, record in enumerate(records):
            try:
                links = await page.query_selector_all(CARD_LINK_SELECTOR)
                if index >= len(links):
                    logger.debug("Detail link %d no longer on the page; stopping click-through", index)
                    break
                await links[index].click()
                await page.wait_for_selector(DETAIL_TITLE_SELECTOR, timeout=timeout)
                detail = parse_detail(await page.content())
                _apply_detail(record, detail)
                await page.go_back(wait_until="domcontentloaded", timeout=timeout)
                await page.wait_for_selector(CARD_SELECTOR, timeout=timeout)
            except PlaywrightError as exc:
                logger.warning("Skipping detail view for %s: %s", record.title, exc)


def _apply_detail(record: BusinessRecord, detail: Dict[str, Optional[str]]) -> None:
    detail_title = (detail.get("title") or "").strip().casefold()
    if detail_title and detail_title != record.title.casefold():
        logger.warning("Detail panel shows %r instead of %r; ignoring it", detail.get("title"), record.title)
        return
    for name in ("phone", "address", "url"):
        value = detail.get(name)
        if value and getattr(record, name) is None:
            setattr(record, name, value)
