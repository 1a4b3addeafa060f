"""Generic search-engine results page, used as a source and by the fallback resolver."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple
from urllib.parse import parse_qs, quote_plus, urljoin, urlparse

from bs4 import BeautifulSoup

from leadscout.models import BusinessRecord, Source
from leadscout.sources.base import SourceAdapter, localized_query

logger = logging.getLogger(__name__)

SEARCH_URL = "https://www.google.com/search?q={query}&hl=en"
RESULTS_SELECTOR = "#search"
# Hosts owned by the search engine itself; links there are never results.
ENGINE_HOST_MARKERS = ("google.", "gstatic.com", "googleusercontent.com", "googleadservices.com", "webcache.")


def build_search_url(query: str) -> str:
    return SEARCH_URL.format(query=quote_plus(query.strip()))


def _unwrap(href: str) -> Optional[str]:
    """Resolve relative and ``/url?q=`` redirect links to their target."""
    absolute = urljoin("https://www.google.com", href.strip())
    parsed = urlparse(absolute)
    if parsed.path == "/url":
        target = parse_qs(parsed.query).get("q") or parse_qs(parsed.query).get("url")
        if not target:
            return None
        absolute = target[0]
        parsed = urlparse(absolute)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute


def is_engine_link(url: str) -> bool:
    host = urlparse(url).netloc.lower()
    return any(marker in host for marker in ENGINE_HOST_MARKERS)


def external_results(html: str) -> List[Tuple[str, Optional[str]]]:
    """Return ``(url, title)`` for every result leaving the engine's domain."""

    soup = BeautifulSoup(html or "", "html.parser")
    results: List[Tuple[str, Optional[str]]] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        url = _unwrap(anchor["href"])
        if not url or is_engine_link(url) or url in seen:
            continue
        seen.add(url)
        heading = anchor.find("h3")
        title = heading.get_text(" ", strip=True) if heading else None
        results.append((url, title or None))
    return results


def first_external_link(html: str) -> Optional[str]:
    results = external_results(html)
    return results[0][0] if results else None


def parse_results(html: str, *, city: str, scraped_at: datetime, max_results: int) -> List[BusinessRecord]:
    """Organic results with a heading become records; bare links are ignored."""

    records: List[BusinessRecord] = []
    for url, title in external_results(html):
        if len(records) >= max_results:
            break
        if not title:
            continue
        records.append(
            BusinessRecord(
                title=title,
                rank=len(records) + 1,
                source=Source.SEARCH_ENGINE,
                city=city,
                url=url,
                scraped_at=scraped_at,
            )
        )
    return records


class WebSearchAdapter(SourceAdapter):
    name = "search"
    source = Source.SEARCH_ENGINE
    ready_selector = RESULTS_SELECTOR

    def build_search_url(self, query: str, city: Optional[str] = None, page_number: int = 1) -> str:
        url = build_search_url(localized_query(query, city))
        if page_number > 1:
            url = f"{url}&start={(page_number - 1) * 10}"
        return url

    async def _extract(
        self,
        page: Any,
        query: str,
        city: str,
        max_results: int,
        scraped_at: datetime,
    ) -> List[BusinessRecord]:
        await self.open_results(page, self.build_search_url(query, city))
        return parse_results(await page.content(), city=city, scraped_at=scraped_at, max_results=max_results)
