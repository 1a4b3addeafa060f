import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

# Ensure the `leadscout` package is importable when running pytest from the worker directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from playwright.async_api import TimeoutError as PlaywrightTimeoutError  # noqa: E402

from leadscout.core.config import Settings  # noqa: E402


class FakePage:
    """Minimal stand-in for a Playwright page backed by canned HTML."""

    def __init__(self, session: "FakeSession") -> None:
        self.session = session
        self.url = ""

    async def goto(self, url, wait_until=None, timeout=None):
        self.session.visits.append(url)
        failures = self.session.failures.get(url)
        if failures:
            error = failures.pop(0)
            if error is not None:
                raise error
        self.url = url

    async def wait_for_selector(self, selector, timeout=None):
        if selector in self.session.missing_selectors:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def content(self):
        errors = self.session.content_errors.get(self.url)
        if errors:
            raise errors.pop(0)
        return self.session.html_by_url.get(self.url, self.session.default_html)

    async def evaluate(self, script, arg=None):
        return self.session.card_count

    async def wait_for_timeout(self, ms):
        return None


class FakeSession:
    """Rendering session double that counts the pages it hands out."""

    def __init__(
        self,
        html_by_url: Optional[Dict[str, str]] = None,
        *,
        default_html: str = "",
        failures: Optional[Dict[str, List[Optional[Exception]]]] = None,
        missing_selectors: Iterable[str] = (),
        card_count: int = 0,
        content_errors: Optional[Dict[str, List[Exception]]] = None,
    ) -> None:
        self.html_by_url = html_by_url or {}
        self.default_html = default_html
        self.failures = failures or {}
        self.missing_selectors = set(missing_selectors)
        self.card_count = card_count
        self.content_errors = content_errors or {}
        self.visits: List[str] = []
        self.pages_opened = 0
        self.pages_closed = 0

    @asynccontextmanager
    async def new_page(self):
        self.pages_opened += 1
        try:
            yield FakePage(self)
        finally:
            self.pages_closed += 1


class ExplodingSession:
    """Fails the test if anything tries to render a page."""

    def __init__(self) -> None:
        self.pages_opened = 0

    def new_page(self):
        self.pages_opened += 1
        raise AssertionError("rendering should not have been invoked")


@pytest.fixture
def settings():
    return Settings(
        navigation_retries=3,
        navigation_backoff=0.5,
        enrich_retries=2,
        enrich_batch_delay=0.25,
        max_results=10,
    )


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)

    return _sleep
