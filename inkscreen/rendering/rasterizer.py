"""Headless Chromium rasterizer built on pyppeteer.

One long-lived browser per process, owned by ``BrowserSession``. Every render
opens its own incognito context so concurrent renders never share pages,
cookies or caches, and the context is always closed, even when the capture
fails.
"""

from __future__ import annotations

import asyncio
import io
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from PIL import Image
from pyppeteer import launch
from pyppeteer.errors import PyppeteerError

from inkscreen.core.exceptions import CaptureError
from inkscreen.domain.models import Scene

logger = logging.getLogger(__name__)

DEFAULT_ASSET_TIMEOUT_SECONDS = 5.0
DEFAULT_CAPTURE_TIMEOUT_SECONDS = 30.0
DEFAULT_LAUNCH_TIMEOUT_SECONDS = 30.0
LIVENESS_TIMEOUT_SECONDS = 3.0

CHROMIUM_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--font-render-hinting=none",
    "--disable-font-subpixel-positioning",
    "--force-color-profile=srgb",
)

COMMON_CHROMIUM_PATHS: tuple[str, ...] = (
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/usr/bin/google-chrome",
    "/usr/bin/chrome",
)

# Resolves once web fonts are ready and every <img> has loaded or errored
WAIT_FOR_ASSETS_JS = """() => Promise.all([
    document.fonts.ready,
    ...Array.from(document.images).map(img => img.complete
        ? Promise.resolve()
        : new Promise(resolve => { img.onload = resolve; img.onerror = resolve; }))
]).then(() => true)"""

Launcher = Callable[..., Awaitable[Any]]


def find_chromium_executable(configured: Optional[str] = None) -> Optional[str]:
    """Get Chromium executable path, checking common locations.

    Args:
        configured: Explicit path from settings, used when it exists

    Returns:
        Executable path, or None to let pyppeteer use its own download
    """
    if configured:
        if Path(configured).exists():
            return configured
        logger.warning("Configured Chromium path does not exist: %s", configured)

    for path in COMMON_CHROMIUM_PATHS:
        if Path(path).exists():
            return path

    return None


class BrowserSession:
    """Owns the headless browser process.

    The browser is launched lazily on the first ``acquire()``. A browser that
    disconnected (crash, killed process) is replaced on the next ``acquire()``;
    relaunches are serialized so concurrent callers share one new process.

    Usable as an async context manager::

        async with BrowserSession() as session:
            browser = await session.acquire()
    """

    def __init__(
        self,
        executable_path: Optional[str] = None,
        launcher: Launcher = launch,
        launch_timeout: float = DEFAULT_LAUNCH_TIMEOUT_SECONDS,
    ):
        self.executable_path = executable_path
        self.launch_timeout = launch_timeout
        self._launcher = launcher
        self._browser: Any = None
        self._connected = False
        self._lock = asyncio.Lock()
        self.launch_count = 0

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._connected

    def _on_disconnected(self, *_args: Any) -> None:
        if self._connected:
            logger.warning("Browser disconnected; it will be relaunched on next use")
        self._connected = False

    async def _launch(self) -> Any:
        options: dict[str, Any] = {
            "headless": True,
            "args": list(CHROMIUM_ARGS),
            # The server owns signal handling
            "handleSIGINT": False,
            "handleSIGTERM": False,
            "handleSIGHUP": False,
        }
        executable = find_chromium_executable(self.executable_path)
        if executable:
            options["executablePath"] = executable

        logger.info("Launching headless browser (executable=%s)", executable or "bundled")
        try:
            browser = await asyncio.wait_for(self._launcher(**options), timeout=self.launch_timeout)
        except asyncio.TimeoutError as e:
            raise CaptureError(f"Browser launch timed out after {self.launch_timeout}s") from e
        except (PyppeteerError, OSError) as e:
            raise CaptureError(f"Failed to launch browser: {e}") from e

        browser.on("disconnected", self._on_disconnected)
        self.launch_count += 1
        return browser

    async def start(self) -> None:
        """Launch the browser now instead of on first use."""
        await self.acquire()

    async def acquire(self) -> Any:
        """Return a connected browser, launching or relaunching if needed.

        Raises:
            CaptureError: If the browser cannot be launched
        """
        if self.is_connected:
            return self._browser

        async with self._lock:
            # Another caller may have relaunched while we waited
            if self.is_connected:
                return self._browser

            if self._browser is not None:
                logger.info("Replacing disconnected browser")
                await self._close_quietly(self._browser)
                self._browser = None

            self._browser = await self._launch()
            self._connected = True
            return self._browser

    async def check_alive(self) -> bool:
        """Ping the browser; mark it disconnected if it does not answer."""
        if not self.is_connected:
            return False
        try:
            await asyncio.wait_for(self._browser.version(), timeout=LIVENESS_TIMEOUT_SECONDS)
        except (asyncio.TimeoutError, PyppeteerError, OSError) as e:
            logger.warning("Browser liveness check failed: %s", e)
            self._connected = False
            return False
        return True

    @staticmethod
    async def _close_quietly(browser: Any) -> None:
        try:
            await asyncio.wait_for(browser.close(), timeout=5.0)
        except (asyncio.TimeoutError, PyppeteerError, OSError) as e:
            logger.debug("Error closing browser: %s", e)

    async def close(self) -> None:
        """Close the browser if one is running."""
        async with self._lock:
            if self._browser is None:
                return
            browser, self._browser = self._browser, None
            self._connected = False
            await self._close_quietly(browser)
            logger.info("Browser closed")

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class Rasterizer:
    """Turns a composed scene into an RGBA raster of exact size."""

    def __init__(
        self,
        session: BrowserSession,
        asset_timeout: float = DEFAULT_ASSET_TIMEOUT_SECONDS,
        capture_timeout: float = DEFAULT_CAPTURE_TIMEOUT_SECONDS,
    ):
        self.session = session
        self.asset_timeout = asset_timeout
        self.capture_timeout = capture_timeout

    @asynccontextmanager
    async def _isolated_page(self, width: int, height: int) -> AsyncIterator[Any]:
        browser = await self.session.acquire()
        context = await browser.createIncognitoBrowserContext()
        try:
            page = await context.newPage()
            await page.setViewport({"width": width, "height": height, "deviceScaleFactor": 1})
            yield page
        finally:
            try:
                await context.close()
            except (PyppeteerError, OSError) as e:
                logger.debug("Error closing browser context: %s", e)

    async def _wait_for_assets(self, page: Any) -> None:
        try:
            await asyncio.wait_for(page.evaluate(WAIT_FOR_ASSETS_JS), timeout=self.asset_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Fonts/images not ready after %.1fs, capturing what has loaded", self.asset_timeout
            )
        except PyppeteerError as e:
            logger.warning("Waiting for fonts/images failed, capturing anyway: %s", e)

    async def _capture(self, scene: Scene, width: int, height: int) -> bytes:
        async with self._isolated_page(width, height) as page:
            await page.setContent(scene.html)
            await self._wait_for_assets(page)
            return await page.screenshot(
                {"type": "png", "clip": {"x": 0, "y": 0, "width": width, "height": height}}
            )

    async def rasterize(self, scene: Scene, width: int, height: int) -> Image.Image:
        """Capture the scene.

        Args:
            scene: Composed scene document
            width: Raster width in pixels
            height: Raster height in pixels

        Returns:
            RGBA image of exactly ``width`` x ``height``

        Raises:
            CaptureError: If the browser fails, disconnects or times out
        """
        try:
            png = await asyncio.wait_for(self._capture(scene, width, height), timeout=self.capture_timeout)
        except CaptureError:
            raise
        except asyncio.TimeoutError as e:
            await self.session.check_alive()
            raise CaptureError(f"Capture timed out after {self.capture_timeout}s") from e
        except (PyppeteerError, OSError) as e:
            await self.session.check_alive()
            raise CaptureError(f"Capture failed: {e}") from e

        try:
            with Image.open(io.BytesIO(png)) as captured:
                image = captured.convert("RGBA")
        except (OSError, ValueError) as e:
            raise CaptureError(f"Captured raster could not be decoded: {e}") from e

        if image.size != (width, height):
            logger.debug("Captured %s, expected %dx%d; resizing", image.size, width, height)
            image = image.resize((width, height), Image.Resampling.LANCZOS)
        return image
