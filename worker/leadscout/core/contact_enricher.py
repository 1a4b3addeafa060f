"""Website enrichment: visit a business site and recover public contact data."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional
from urllib.parse import urlparse, urlunparse

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from leadscout.core.config import Settings
from leadscout.core.navigation import NavigationError, NavigationOptions, navigate
from leadscout.core.retry import Sleep, linear_backoff, retry_async
from leadscout.models import BusinessRecord

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"[A-Z0-9._%+-]+@(?:[A-Z0-9-]+\.)+[A-Z]{2,}", re.IGNORECASE)
# Optional country code, optional parenthesized area code, '.', '-' or space separators.
PHONE_REGEX = re.compile(
    r"(?<![\d+])(?:\+?\d{1,3}[-.\s]?)?(?:\(\d{3}\)|\d{3})[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)"
)
_ASSET_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")
_NON_VISIBLE_TAGS = ("script", "style", "noscript", "template")
_ADDRESS_SELECTORS = (
    "[itemprop='address']",
    "address",
    ".address",
    "#address",
    "[class*='addr']",
    "[id*='addr']",
    "[class*='location']",
)
_ADDRESS_KEYWORDS = ("street", "st.", "road", "rd.", "avenue", "ave", "blvd", "suite", "drive")


@dataclass
class ContactDetails:
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.email is not None or self.phone is not None


class _NoContactsFound(Exception):
    """A page loaded but exposed neither an email nor a phone number."""

    def __init__(self, details: ContactDetails) -> None:
        super().__init__("no email or phone on page")
        self.details = details


def sanitize_website(raw_url: Optional[str]) -> Optional[str]:
    """Normalise raw website strings into absolute http(s) URLs."""

    if not raw_url:
        return None

    url = raw_url.strip()
    if not url:
        return None

    parsed = urlparse(url)
    if not parsed.scheme:
        parsed = urlparse(f"https://{url}")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None

    return urlunparse(parsed._replace(path=parsed.path or "/", fragment=""))


def extract_emails(text: str) -> List[str]:
    """Return emails in order of appearance, lower-cased and de-duplicated."""

    found: List[str] = []
    for match in EMAIL_REGEX.finditer(text or ""):
        email = match.group(0).lower().rstrip(".")
        if email.endswith(_ASSET_SUFFIXES) or email in found:
            continue
        found.append(email)
    return found


def extract_email(text: str) -> Optional[str]:
    emails = extract_emails(text)
    return emails[0] if emails else None


def extract_phone(text: str) -> Optional[str]:
    match = PHONE_REGEX.search(text or "")
    return match.group(0).strip() if match else None


def visible_text(soup: BeautifulSoup) -> str:
    for tag in soup(list(_NON_VISIBLE_TAGS)):
        tag.decompose()
    return soup.get_text(" ", strip=True)


def extract_address(soup: BeautifulSoup) -> Optional[str]:
    """Attempt to extract a postal address-like snippet from a page."""

    for selector in _ADDRESS_SELECTORS:
        for node in soup.select(selector):
            text = " ".join(node.stripped_strings)
            if len(text) >= 10:
                return text[:300]

    for tag in soup.find_all(["p", "li", "span"]):
        text = tag.get_text(" ", strip=True)
        lowered = text.lower()
        if len(text) > 15 and any(keyword in lowered for keyword in _ADDRESS_KEYWORDS) and re.search(r"\d", text):
            return text[:300]

    return None


def _link_targets(soup: BeautifulSoup, scheme: str) -> List[str]:
    targets: List[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if href.lower().startswith(f"{scheme}:"):
            value = href.split(":", 1)[1].split("?")[0].strip()
            if value:
                targets.append(value)
    return targets


def extract_contacts(html: str) -> ContactDetails:
    """Apply the email, phone and address extractors to one rendered page."""

    soup = BeautifulSoup(html or "", "html.parser")
    mailto = [email.lower() for email in _link_targets(soup, "mailto") if EMAIL_REGEX.fullmatch(email)]
    tel = [phone for phone in _link_targets(soup, "tel") if PHONE_REGEX.search(phone)]
    address = extract_address(soup)
    text = visible_text(soup)

    return ContactDetails(
        email=extract_email(text) or (mailto[0] if mailto else None),
        phone=extract_phone(text) or (extract_phone(tel[0]) if tel else None),
        address=address,
    )


class ContactEnricher:
    """Fill missing phone/email/address on a record from its own website."""

    def __init__(self, settings: Settings, *, sleep: Sleep = asyncio.sleep) -> None:
        self.settings = settings
        self.max_attempts = settings.enrich_retries
        self._navigation = NavigationOptions.for_websites(settings)
        self._sleep = sleep

    async def enrich(self, session: Any, record: BusinessRecord) -> BusinessRecord:
        if record.has_contact:
            logger.debug("Skipping enrichment for %s: phone and email already present", record.title)
            return record
        if record.url is None:
            logger.debug("Skipping enrichment for %s: no website", record.title)
            return record

        details = await self.find_contacts(session, record.url)
        apply_contacts(record, details)
        return record

    async def find_contacts(self, session: Any, url: str) -> ContactDetails:
        """Visit ``url`` up to ``max_attempts`` times until a contact shows up.

        Never raises for navigation problems or missing contacts; an empty
        :class:`ContactDetails` is a valid outcome.
        """
        website = sanitize_website(url)
        if not website:
            logger.debug("Skipping enrichment: %r is not a usable website", url)
            return ContactDetails()

        async def _visit(attempt: int) -> ContactDetails:
            try:
                async with session.new_page() as page:
                    document = await navigate(page, website, self._navigation, sleep=self._sleep)
                    html = await document.html()
            except PlaywrightError as exc:
                raise NavigationError(f"Browser error while visiting {website}: {exc}") from exc
            details = extract_contacts(html)
            if not details.found:
                raise _NoContactsFound(details)
            return details

        try:
            return await retry_async(
                _visit,
                attempts=self.max_attempts,
                backoff=linear_backoff(self.settings.navigation_backoff),
                retry_on=(NavigationError, _NoContactsFound),
                sleep=self._sleep,
                label=f"enrich {website}",
            )
        except NavigationError as exc:
            logger.warning("Enrichment exhausted for %s: %s", website, exc)
        except _NoContactsFound as exc:
            logger.info("Enrichment exhausted for %s: no contact details found", website)
            return exc.details
        return ContactDetails()


def apply_contacts(record: BusinessRecord, details: ContactDetails) -> None:
    """Fill absent contact fields; values already on the record are kept."""

    for name in ("email", "phone", "address"):
        value = getattr(details, name)
        if value is not None and getattr(record, name) is None:
            setattr(record, name, value)
