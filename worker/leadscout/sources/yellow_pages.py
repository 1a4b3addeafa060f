"""YellowPages.ca listing directory (paginated results)."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import parse_qs, quote, urljoin, urlparse

from bs4 import BeautifulSoup

from leadscout.models import BusinessRecord, Source
from leadscout.sources.base import ExtractionMismatch, SourceAdapter, href_of, localized_query, text_of

logger = logging.getLogger(__name__)

BASE_URL = "https://www.yellowpages.ca"
LISTING_SELECTOR = ".listing__content"
NEXT_PAGE_SELECTOR = "a[rel='next'], .view_more_section_noScroll a"

_IN_CITY = re.compile(r"^(?P<what>.+?)\s+in\s+(?P<where>.+)$", re.IGNORECASE)


def _website_from(href: Optional[str]) -> Optional[str]:
    """Listing website links go through a redirect endpoint; unwrap it."""
    if not href:
        return None
    absolute = urljoin(BASE_URL, href)
    parsed = urlparse(absolute)
    redirect = parse_qs(parsed.query).get("redirect")
    if redirect and redirect[0].startswith("http"):
        return redirect[0]
    if parsed.netloc.endswith("yellowpages.ca"):
        return None
    return absolute


def parse_results(
    html: str,
    *,
    city: str,
    scraped_at: datetime,
    max_results: int,
    start_rank: int = 1,
) -> List[BusinessRecord]:
    """Turn one results page into records, numbering ranks from ``start_rank``."""

    soup = BeautifulSoup(html or "", "html.parser")
    records: List[BusinessRecord] = []
    for listing in soup.select(LISTING_SELECTOR):
        if len(records) >= max_results:
            break
        title = text_of(listing, ".listing__name--link")
        if not title:
            logger.debug("Skipping listing without a name")
            continue
        records.append(
            BusinessRecord(
                title=title,
                rank=start_rank + len(records),
                source=Source.LISTING_DIRECTORY,
                city=city,
                url=_website_from(href_of(listing, ".mlr__item--website a")),
                phone=text_of(listing, ".mlr__item--phone"),
                address=text_of(listing, ".listing__address"),
                scraped_at=scraped_at,
            )
        )
    return records


def has_next_page(html: str) -> bool:
    soup = BeautifulSoup(html or "", "html.parser")
    return soup.select_one(NEXT_PAGE_SELECTOR) is not None


class YellowPagesAdapter(SourceAdapter):
    name = "yellowpages"
    source = Source.LISTING_DIRECTORY
    ready_selector = LISTING_SELECTOR

    def build_search_url(self, query: str, city: Optional[str] = None, page_number: int = 1) -> str:
        query = localized_query(query, city)
        match = _IN_CITY.match(query)
        if match:
            what, where = match.group("what"), match.group("where")
            return f"{BASE_URL}/search/si/{page_number}/{quote(what)}/{quote(where)}"
        return f"{BASE_URL}/search/si/{page_number}/{quote(query)}"

    async def _extract(
        self,
        page: Any,
        query: str,
        city: str,
        max_results: int,
        scraped_at: datetime,
    ) -> List[BusinessRecord]:
        records: List[BusinessRecord] = []
        for page_number in range(1, self.settings.listing_max_pages + 1):
            url = self.build_search_url(query, city, page_number)
            try:
                await self.open_results(page, url)
            except ExtractionMismatch:
                if page_number == 1:
                    raise
                logger.info("Stopping %s pagination at page %d", self.name, page_number)
                break

            html = await page.content()
            batch = parse_results(
                html,
                city=city,
                scraped_at=scraped_at,
                max_results=max_results - len(records),
                start_rank=len(records) + 1,
            )
            logger.info("Fetched %d listings on page %d", len(batch), page_number)
            if not batch:
                break
            records.extend(batch)
            if len(records) >= max_results or not has_next_page(html):
                break
        return records
