"""Shared fixtures for the inkscreen test suite."""

from __future__ import annotations

import datetime
import io
import logging
from collections.abc import AsyncIterator, Callable, Generator
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest
from PIL import Image, ImageColor, ImageDraw

from inkscreen.cache import CaptureStore, LookupCache
from inkscreen.core.exceptions import CaptureError
from inkscreen.core.http_client import ExternalFetcher, close_all_clients
from inkscreen.core.render_logging import NOISY_LOGGERS
from inkscreen.domain.models import Scene, ScreenDesign
from inkscreen.rendering.fonts import FontLibrary
from inkscreen.rendering.images import ImageLoader
from inkscreen.rendering.overlay import DrawingStore
from inkscreen.service import DesignEditor, RenderService
from inkscreen.stores import EnvSettingsProvider, InMemoryDesignStore
from inkscreen.widgets import GeneratorContext

FIXED_NOW = datetime.datetime(2026, 10, 18, 14, 5, 9, tzinfo=datetime.timezone.utc)

Handler = Callable[[httpx.Request], httpx.Response]


class FakeRasterizer:
    """Stands in for the headless browser.

    Paints the scene background and fills every ``rectangle`` placement in
    black, clipped to the canvas the way the browser clips the body.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.scenes: list[Scene] = []

    async def rasterize(self, scene: Scene, width: int, height: int) -> Image.Image:
        self.scenes.append(scene)
        if self.fail:
            raise CaptureError("Browser disconnected")

        try:
            background = ImageColor.getrgb(scene.background)
        except ValueError:
            background = (255, 255, 255)
        image = Image.new("RGBA", (width, height), background)
        draw = ImageDraw.Draw(image)
        for placement in scene.placements:
            if placement.kind != "rectangle":
                continue
            right = placement.x + placement.width - 1
            bottom = placement.y + placement.height - 1
            if right < placement.x or bottom < placement.y:
                continue
            draw.rectangle([placement.x, placement.y, right, bottom], fill=(0, 0, 0, 255))
        return image


def _default_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(404, request=request)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Keep host configuration out of the tests."""
    for name in (
        "INKSCREEN_TEST_TIME",
        "INKSCREEN_DEFAULT_TIMEZONE",
        "DEFAULT_TIMEZONE",
        "GITHUB_TOKEN",
        "INKSCREEN_GITHUB_TOKEN",
        "INKSCREEN_DEBUG",
        "INKSCREEN_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()


@pytest.fixture
def restore_logging() -> Generator[None, Any, None]:
    """Undo level and filter changes made by configure_logging."""
    names = ["", "inkscreen", *NOISY_LOGGERS]
    levels = {name: logging.getLogger(name).level for name in names}
    root = logging.getLogger()
    filters = {handler: list(handler.filters) for handler in root.handlers}
    yield
    for handler in root.handlers[:]:
        if handler not in filters:
            root.removeHandler(handler)
    for name, level in levels.items():
        logging.getLogger(name).setLevel(level)
    for handler, original in filters.items():
        handler.filters[:] = original


@pytest.fixture
def fixed_now() -> datetime.datetime:
    """2026-10-18 14:05:09 UTC, a Sunday."""
    return FIXED_NOW


@pytest.fixture
def make_png() -> Callable[..., bytes]:
    """Build PNG bytes of a solid colour."""

    def builder(size: tuple[int, int] = (10, 10), color: Any = (0, 0, 0), mode: str = "RGB") -> bytes:
        buffer = io.BytesIO()
        Image.new(mode, size, color).save(buffer, format="PNG")
        return buffer.getvalue()

    return builder


@pytest.fixture
async def make_fetcher() -> AsyncIterator[Callable[[Handler], ExternalFetcher]]:
    """Build an ExternalFetcher whose requests go to an in-process handler."""
    clients: list[httpx.AsyncClient] = []

    def builder(handler: Handler = _default_handler, timeout: float = 10.0) -> ExternalFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return ExternalFetcher(client=client, timeout=timeout)

    yield builder
    for client in clients:
        await client.aclose()


@pytest.fixture
def make_context(tmp_path: Path, make_fetcher: Any) -> Callable[..., GeneratorContext]:
    """Build a GeneratorContext with a mocked network and a fixed clock."""

    def builder(handler: Handler = _default_handler, **overrides: Any) -> GeneratorContext:
        fetcher = make_fetcher(handler)
        values: dict[str, Any] = {
            "fetcher": fetcher,
            "cache": LookupCache(),
            "images": ImageLoader(tmp_path / "uploads", fetcher),
            "clock": lambda: FIXED_NOW,
        }
        values.update(overrides)
        return GeneratorContext(**values)

    return builder


@pytest.fixture
def fake_rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def make_design() -> Callable[..., ScreenDesign]:
    """Build a design from camelCase widget dicts."""

    def builder(
        widgets: Optional[list[dict[str, Any]]] = None,
        design_id: Any = 1,
        width: int = 100,
        height: int = 50,
        background: str = "#ffffff",
    ) -> ScreenDesign:
        return ScreenDesign.model_validate(
            {
                "id": design_id,
                "name": f"Design {design_id}",
                "width": width,
                "height": height,
                "background": background,
                "widgets": widgets or [],
            }
        )

    return builder


@pytest.fixture
def make_service(tmp_path: Path, make_fetcher: Any, fake_rasterizer: FakeRasterizer) -> Callable[..., RenderService]:
    """Build a RenderService over in-memory designs and a fake rasterizer."""

    def builder(
        designs: Optional[list[ScreenDesign]] = None,
        handler: Handler = _default_handler,
        rasterizer: Any = None,
        custom_widgets: Any = None,
        github_token: Optional[str] = None,
    ) -> RenderService:
        fetcher = make_fetcher(handler)
        uploads = tmp_path / "uploads"
        return RenderService(
            designs=InMemoryDesignStore(designs),
            rasterizer=rasterizer or fake_rasterizer,
            fetcher=fetcher,
            cache=LookupCache(),
            images=ImageLoader(uploads, fetcher),
            fonts=FontLibrary(tmp_path / "fonts"),
            drawings=DrawingStore(uploads),
            captures=CaptureStore(uploads),
            custom_widgets=custom_widgets,
            settings=EnvSettingsProvider(github_token),
            default_timezone="UTC",
            clock=lambda: FIXED_NOW,
        )

    return builder


@pytest.fixture
def make_editor() -> Callable[[RenderService, Any], DesignEditor]:
    """Build a DesignEditor sharing a service's store and capture cache."""

    def builder(service: RenderService, notifier: Any = None) -> DesignEditor:
        return DesignEditor(service.designs, service.captures, notifier)

    return builder
