"""Identity-based deduplication of records coming from several sources."""

import logging
import re
from typing import Dict, Iterable, List, Tuple

from leadscout.models import DEFAULT_INDUSTRY, BusinessRecord

logger = logging.getLogger(__name__)

# Fields a colliding record may contribute; provenance fields are never merged.
MERGEABLE_FIELDS = ("url", "phone", "email", "address", "rating")

_WHITESPACE = re.compile(r"\s+")


def normalize(value: str) -> str:
    return _WHITESPACE.sub(" ", (value or "").strip()).casefold()


def identity_key(record: BusinessRecord) -> Tuple[str, str]:
    return normalize(record.title), normalize(record.city)


def merge_records(records: Iterable[BusinessRecord]) -> List[BusinessRecord]:
    """Fold records into one per identity key, keeping first-seen order.

    The earliest record is the base; a later duplicate only fills fields the
    base is missing.
    """
    merged: Dict[Tuple[str, str], BusinessRecord] = {}
    collisions = 0
    for record in records:
        key = identity_key(record)
        base = merged.get(key)
        if base is None:
            merged[key] = record
            continue

        collisions += 1
        for name in MERGEABLE_FIELDS:
            if getattr(base, name) is None and getattr(record, name) is not None:
                setattr(base, name, getattr(record, name))
        if base.industry == DEFAULT_INDUSTRY and record.industry != DEFAULT_INDUSTRY:
            base.industry = record.industry

    if collisions:
        logger.info("Merged %d duplicate record(s) into %d unique businesses", collisions, len(merged))
    return list(merged.values())
