"""Unit tests for inkscreen.rendering.rasterizer module.

A fake launcher stands in for pyppeteer so these tests never start Chromium.
"""

import asyncio
import io
import logging

import pytest
from PIL import Image
from pyppeteer.errors import PyppeteerError

from inkscreen.core.exceptions import CaptureError
from inkscreen.domain.models import Scene
from inkscreen.rendering.rasterizer import BrowserSession, Rasterizer, find_chromium_executable

pytestmark = pytest.mark.unit


def _png(size) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakePage:
    def __init__(self, browser):
        self.browser = browser
        self.viewport = None
        self.content = None

    async def setViewport(self, viewport):
        self.viewport = viewport

    async def setContent(self, html):
        self.content = html

    async def evaluate(self, script):
        if self.browser.asset_delay:
            await asyncio.sleep(self.browser.asset_delay)
        return True

    async def screenshot(self, options):
        if self.browser.screenshot_error:
            raise self.browser.screenshot_error
        clip = options["clip"]
        return _png(self.browser.screenshot_size or (clip["width"], clip["height"]))


class FakeContext:
    def __init__(self, browser):
        self.browser = browser
        self.closed = False
        self.page = None

    async def newPage(self):
        self.page = FakePage(self.browser)
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.handlers = {}
        self.contexts = []
        self.closed = False
        self.asset_delay = 0.0
        self.screenshot_error = None
        self.screenshot_size = None

    def on(self, event, callback):
        self.handlers[event] = callback

    async def createIncognitoBrowserContext(self):
        context = FakeContext(self)
        self.contexts.append(context)
        return context

    async def version(self):
        return "HeadlessChrome/120"

    async def close(self):
        self.closed = True

    def disconnect(self):
        self.handlers["disconnected"]()


class FakeLauncher:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.browsers = []
        self.options = []

    async def __call__(self, **options):
        self.options.append(options)
        if self.delay:
            await asyncio.sleep(self.delay)
        browser = FakeBrowser()
        self.browsers.append(browser)
        return browser


SCENE = Scene(width=40, height=20, background="#fff", html="<html><body>hi</body></html>")


class TestBrowserSession:
    """Tests for BrowserSession lifecycle."""

    async def test_acquire_launches_lazily_once(self):
        """Test the browser starts on first use and is then reused."""
        launcher = FakeLauncher()
        session = BrowserSession(launcher=launcher)

        assert not session.is_connected
        first = await session.acquire()
        second = await session.acquire()

        assert first is second
        assert session.launch_count == 1
        assert launcher.options[0]["headless"] is True
        assert "--no-sandbox" in launcher.options[0]["args"]
        assert launcher.options[0]["handleSIGINT"] is False

    async def test_start_launches_eagerly(self):
        """Test start brings the browser up before the first render."""
        session = BrowserSession(launcher=FakeLauncher())

        await session.start()

        assert session.is_connected
        assert session.launch_count == 1

    async def test_concurrent_acquire_shares_one_launch(self):
        """Test simultaneous first renders start a single browser."""
        launcher = FakeLauncher(delay=0.01)
        session = BrowserSession(launcher=launcher)

        browsers = await asyncio.gather(*(session.acquire() for _ in range(5)))

        assert len({id(b) for b in browsers}) == 1
        assert session.launch_count == 1

    async def test_relaunch_after_disconnect(self):
        """Test a disconnected browser is replaced on the next acquire."""
        launcher = FakeLauncher()
        session = BrowserSession(launcher=launcher)
        first = await session.acquire()

        first.disconnect()
        assert not session.is_connected
        second = await session.acquire()

        assert second is not first
        assert first.closed
        assert session.launch_count == 2

    async def test_launch_timeout_raises_capture_error(self):
        """Test a hung launch is reported as a capture failure."""
        session = BrowserSession(launcher=FakeLauncher(delay=1), launch_timeout=0.01)

        with pytest.raises(CaptureError, match="timed out"):
            await session.acquire()
        assert session.launch_count == 0

    async def test_launch_failure_raises_capture_error(self):
        """Test launcher errors are wrapped."""

        async def failing(**options):
            raise OSError("no chromium")

        session = BrowserSession(launcher=failing)

        with pytest.raises(CaptureError, match="no chromium"):
            await session.acquire()

    async def test_close_and_context_manager(self):
        """Test close shuts the browser and is safe to repeat."""
        launcher = FakeLauncher()
        async with BrowserSession(launcher=launcher) as session:
            await session.acquire()

        assert launcher.browsers[0].closed
        assert not session.is_connected
        await session.close()

    async def test_check_alive(self):
        """Test liveness reflects the browser state."""
        session = BrowserSession(launcher=FakeLauncher())
        assert await session.check_alive() is False

        await session.acquire()
        assert await session.check_alive() is True


class TestRasterizer:
    """Tests for Rasterizer captures."""

    async def test_rasterize_returns_rgba_of_exact_size(self):
        """Test the capture is decoded at the requested size and the context closed."""
        launcher = FakeLauncher()
        rasterizer = Rasterizer(BrowserSession(launcher=launcher))

        image = await rasterizer.rasterize(SCENE, 40, 20)

        assert image.mode == "RGBA"
        assert image.size == (40, 20)
        context = launcher.browsers[0].contexts[0]
        assert context.closed
        assert context.page.viewport == {"width": 40, "height": 20, "deviceScaleFactor": 1}
        assert context.page.content == SCENE.html

    async def test_each_render_uses_its_own_context(self):
        """Test renders never share a browser context."""
        launcher = FakeLauncher()
        rasterizer = Rasterizer(BrowserSession(launcher=launcher))

        await asyncio.gather(rasterizer.rasterize(SCENE, 40, 20), rasterizer.rasterize(SCENE, 40, 20))

        contexts = launcher.browsers[0].contexts
        assert len(contexts) == 2
        assert all(context.closed for context in contexts)

    async def test_rasterize_failure_closes_context(self):
        """Test a failed screenshot raises CaptureError and still closes the context."""
        launcher = FakeLauncher()
        session = BrowserSession(launcher=launcher)
        browser = await session.acquire()
        browser.screenshot_error = PyppeteerError("Target closed")

        with pytest.raises(CaptureError, match="Target closed"):
            await Rasterizer(session).rasterize(SCENE, 40, 20)

        assert browser.contexts[0].closed

    async def test_rasterize_when_assets_slow_then_captures_anyway(self, caplog):
        """Test the asset wait is bounded and only logged."""
        launcher = FakeLauncher()
        session = BrowserSession(launcher=launcher)
        browser = await session.acquire()
        browser.asset_delay = 1.0

        with caplog.at_level(logging.WARNING, logger="inkscreen.rendering.rasterizer"):
            image = await Rasterizer(session, asset_timeout=0.01).rasterize(SCENE, 40, 20)

        assert image.size == (40, 20)
        assert "not ready" in caplog.text

    async def test_rasterize_capture_timeout(self):
        """Test the overall capture timeout raises CaptureError."""
        launcher = FakeLauncher()
        session = BrowserSession(launcher=launcher)
        browser = await session.acquire()
        browser.asset_delay = 1.0

        with pytest.raises(CaptureError, match="timed out"):
            await Rasterizer(session, asset_timeout=5, capture_timeout=0.05).rasterize(SCENE, 40, 20)

        assert browser.contexts[0].closed

    async def test_rasterize_resizes_unexpected_screenshot(self):
        """Test a screenshot of the wrong size is resized to the canvas."""
        launcher = FakeLauncher()
        session = BrowserSession(launcher=launcher)
        browser = await session.acquire()
        browser.screenshot_size = (80, 40)

        image = await Rasterizer(session).rasterize(SCENE, 40, 20)

        assert image.size == (40, 20)


class TestFindChromiumExecutable:
    """Tests for find_chromium_executable."""

    def test_configured_path_used_when_present(self, tmp_path):
        """Test an existing configured executable wins."""
        executable = tmp_path / "chromium"
        executable.write_text("")

        assert find_chromium_executable(str(executable)) == str(executable)
