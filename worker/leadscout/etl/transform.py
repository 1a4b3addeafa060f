"""Utilities for turning queries and records into their external shapes."""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from leadscout.models import UNKNOWN_CITY, BusinessRecord

logger = logging.getLogger(__name__)

ABSENT = "N/A"

_CITY_IN_QUERY = re.compile(r"\bin\s+(?P<city>.+)$", re.IGNORECASE)


def derive_city(query: str, explicit_city: Optional[str] = None) -> str:
    """Pick the city for a run: explicit value first, then ``"... in <city>"``."""
    if explicit_city and explicit_city.strip():
        return explicit_city.strip()

    match = _CITY_IN_QUERY.search((query or "").strip())
    if match:
        city = match.group("city").strip(" ,.")
        if city:
            return city
    return UNKNOWN_CITY


def _or_absent(value: Optional[str]) -> str:
    return value if value is not None else ABSENT


def to_output_row(record: BusinessRecord) -> Dict[str, Any]:
    return {
        "title": record.title,
        "industry": record.industry,
        "city": record.city,
        "url": _or_absent(record.url),
        "rank": record.rank,
        "source": record.source.value,
        "scraped_at": record.scraped_at.isoformat(),
        "phone": _or_absent(record.phone),
        "email": _or_absent(record.email),
        "address": _or_absent(record.address),
        "rating": _or_absent(record.rating),
    }


def to_output_rows(records: Iterable[BusinessRecord]) -> List[Dict[str, Any]]:
    return [to_output_row(record) for record in records]
