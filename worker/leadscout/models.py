"""Core data models shared by the aggregation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

DEFAULT_INDUSTRY = "Business"
UNKNOWN_CITY = "Unknown"

# Fields fixed at extraction time; enrichment and merging never touch them.
_IMMUTABLE_FIELDS = frozenset({"source", "rank", "scraped_at"})


class Source(str, Enum):
    """Provenance of a record: which kind of directory produced it."""

    MAP_DIRECTORY = "Google Maps"
    LISTING_DIRECTORY = "YellowPages"
    SEARCH_ENGINE = "Web Search"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class BusinessRecord:
    """Normalized snapshot of a business listing found by a source adapter.

    Optional fields use ``None`` as the only absent marker; adapters convert
    blank strings before construction.
    """

    title: str
    rank: int
    source: Source
    industry: str = DEFAULT_INDUSTRY
    city: str = UNKNOWN_CITY
    url: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    rating: Optional[str] = None
    scraped_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        title = (self.title or "").strip()
        if not title:
            raise ValueError("BusinessRecord requires a non-empty title")
        if self.rank < 1:
            raise ValueError(f"rank must be >= 1, got {self.rank}")
        object.__setattr__(self, "title", title)
        object.__setattr__(self, "industry", (self.industry or "").strip() or DEFAULT_INDUSTRY)
        object.__setattr__(self, "city", (self.city or "").strip() or UNKNOWN_CITY)
        for name in ("url", "phone", "email", "address", "rating"):
            object.__setattr__(self, name, blank_to_none(getattr(self, name)))

    def __setattr__(self, name: str, value) -> None:
        if name in _IMMUTABLE_FIELDS and _is_set(self, name):
            raise AttributeError(f"{name} cannot be changed after extraction")
        object.__setattr__(self, name, value)

    @property
    def has_contact(self) -> bool:
        return self.phone is not None and self.email is not None

    def missing_fields(self) -> tuple:
        return tuple(name for name in ("url", "email", "phone") if getattr(self, name) is None)


@dataclass(slots=True)
class FallbackResult:
    """Outcome of a last-resort web search; every field may be absent."""

    url: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.url is None and self.email is None and self.phone is None


def blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _is_set(obj: object, name: str) -> bool:
    try:
        object.__getattribute__(obj, name)
    except AttributeError:
        return False
    return True
