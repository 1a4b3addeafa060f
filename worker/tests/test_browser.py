import pytest

from leadscout.core import browser
from leadscout.core.config import Settings


class FakeContext:
    def __init__(self, owner):
        self.owner = owner
        self.closed = False

    async def new_page(self):
        return FakeBrowserPage()

    async def close(self):
        self.closed = True
        self.owner.contexts_closed += 1


class FakeBrowserPage:
    def __init__(self):
        self.timeout = None

    def set_default_timeout(self, timeout):
        self.timeout = timeout


class FakeBrowser:
    def __init__(self):
        self.contexts_closed = 0
        self.close_calls = 0

    async def new_context(self, **kwargs):
        return FakeContext(self)

    async def close(self):
        self.close_calls += 1


class FakeChromium:
    def __init__(self, browser_obj, error=None):
        self.browser = browser_obj
        self.error = error
        self.launch_kwargs = None

    async def launch(self, **kwargs):
        self.launch_kwargs = kwargs
        if self.error:
            raise self.error
        return self.browser


class FakePlaywright:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stop_calls = 0

    async def stop(self):
        self.stop_calls += 1


class FakeStarter:
    def __init__(self, playwright):
        self.playwright = playwright

    async def start(self):
        return self.playwright


@pytest.fixture
def fake_playwright(monkeypatch):
    browser_obj = FakeBrowser()
    chromium = FakeChromium(browser_obj)
    playwright = FakePlaywright(chromium)
    monkeypatch.setattr(browser, "async_playwright", lambda: FakeStarter(playwright))
    return playwright


@pytest.mark.asyncio
async def test_open_session_launches_and_closes_once(fake_playwright):
    settings = Settings(browser_executable="/opt/chrome/chrome", headless=False, navigation_timeout_ms=1234)

    async with browser.open_session(settings) as session:
        async with session.new_page() as page:
            assert page.timeout == 1234
        await session.close()

    chromium = fake_playwright.chromium
    assert chromium.launch_kwargs["executable_path"] == "/opt/chrome/chrome"
    assert chromium.launch_kwargs["headless"] is False
    assert "--no-sandbox" in chromium.launch_kwargs["args"]
    assert chromium.browser.contexts_closed == 1
    assert chromium.browser.close_calls == 1
    assert fake_playwright.stop_calls == 1


@pytest.mark.asyncio
async def test_page_context_closed_on_error(fake_playwright):
    async with browser.open_session(Settings()) as session:
        with pytest.raises(RuntimeError):
            async with session.new_page():
                raise RuntimeError("extraction blew up")

    assert fake_playwright.chromium.browser.contexts_closed == 1


@pytest.mark.asyncio
async def test_launch_failure_raises_rendering_session_failure(fake_playwright):
    fake_playwright.chromium.error = RuntimeError("Executable doesn't exist")

    with pytest.raises(browser.RenderingSessionFailure):
        async with browser.open_session(Settings()):
            pass

    assert fake_playwright.stop_calls == 1


@pytest.mark.asyncio
async def test_new_page_requires_open_session():
    session = browser.RenderingSession(Settings())
    with pytest.raises(browser.RenderingSessionFailure):
        async with session.new_page():
            pass
