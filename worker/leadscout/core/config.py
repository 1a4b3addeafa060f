"""Application configuration helpers.

Settings are read from the environment (and an optional ``.env`` file) once at
process start. Entry points call :func:`get_settings` and hand the resulting
object to the pipeline; components never look at the environment themselves.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SOURCE_NAMES = ("maps", "yellowpages", "search")
ENVELOPES = ("object", "array")
DEFAULT_BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when a configuration value cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    max_results: int = 20
    enrich_concurrency: int = 2
    enrich_batch_delay: float = 1.5
    navigation_timeout_ms: int = 30000
    navigation_retries: int = 3
    navigation_backoff: float = 1.0
    enrich_timeout_ms: int = 20000
    enrich_retries: int = 2
    country: str = "Canada"
    browser_executable: Optional[str] = None
    headless: bool = True
    browser_args: Tuple[str, ...] = DEFAULT_BROWSER_ARGS
    sources: Tuple[str, ...] = ("maps", "yellowpages")
    parallel_sources: bool = False
    fallback_limit: Optional[int] = None
    maps_detail_view: bool = False
    listing_max_pages: int = 3
    response_envelope: str = "object"
    output_path: str = "results.json"


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def parse_sources(raw: Optional[str]) -> Tuple[str, ...]:
    """Turn a comma separated source list into a de-duplicated priority tuple."""
    if raw is None or not raw.strip():
        return Settings.sources

    ordered = []
    for item in raw.split(","):
        name = item.strip().lower()
        if not name:
            continue
        if name not in SOURCE_NAMES:
            logger.warning("Ignoring unknown source %r; expected one of %s", name, ", ".join(SOURCE_NAMES))
            continue
        if name not in ordered:
            ordered.append(name)

    if not ordered:
        logger.warning("SOURCES=%r has no usable entries; falling back to %s", raw, ",".join(Settings.sources))
        return Settings.sources
    return tuple(ordered)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    fallback_limit_raw = os.getenv("FALLBACK_LIMIT")
    fallback_limit = None
    if fallback_limit_raw is not None and fallback_limit_raw.strip():
        fallback_limit = _env_int("FALLBACK_LIMIT", 0)

    response_envelope = (os.getenv("RESPONSE_ENVELOPE") or "object").strip().lower()
    if response_envelope not in ENVELOPES:
        raise ConfigError(f"RESPONSE_ENVELOPE must be one of {', '.join(ENVELOPES)}, got {response_envelope!r}")

    browser_executable = (os.getenv("BROWSER_EXECUTABLE_PATH") or "").strip() or None

    settings = Settings(
        host=(os.getenv("HOST") or "0.0.0.0").strip(),
        port=_env_int("PORT", 3000, minimum=1),
        max_results=_env_int("MAX_RESULTS_PER_SOURCE", 20, minimum=1),
        enrich_concurrency=_env_int("ENRICH_CONCURRENCY", 2, minimum=1),
        enrich_batch_delay=_env_float("ENRICH_BATCH_DELAY_SECONDS", 1.5),
        navigation_timeout_ms=_env_int("NAVIGATION_TIMEOUT_MS", 30000, minimum=1),
        navigation_retries=_env_int("NAVIGATION_RETRIES", 3, minimum=1),
        navigation_backoff=_env_float("NAVIGATION_BACKOFF_SECONDS", 1.0),
        enrich_timeout_ms=_env_int("ENRICH_TIMEOUT_MS", 20000, minimum=1),
        enrich_retries=_env_int("ENRICH_RETRIES", 2, minimum=1),
        country=(os.getenv("TARGET_COUNTRY") or "Canada").strip(),
        browser_executable=browser_executable,
        headless=_env_bool("BROWSER_HEADLESS", True),
        sources=parse_sources(os.getenv("SOURCES")),
        parallel_sources=_env_bool("PARALLEL_SOURCES", False),
        fallback_limit=fallback_limit,
        maps_detail_view=_env_bool("MAPS_DETAIL_VIEW", False),
        listing_max_pages=_env_int("LISTING_MAX_PAGES", 3, minimum=1),
        response_envelope=response_envelope,
        output_path=(os.getenv("OUTPUT_PATH") or "results.json").strip(),
    )

    if browser_executable and not os.path.exists(browser_executable):
        logger.warning("BROWSER_EXECUTABLE_PATH=%s does not exist; browser launch will fail.", browser_executable)

    return settings
