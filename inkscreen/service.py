"""Render orchestration and design mutations.

``RenderService`` drives one render end to end: load the design, check that
every input it references exists, generate widget fragments concurrently,
compose the scene, rasterize it, composite the drawing overlay and run the
e-ink pipeline. Missing inputs fail before any fetch or browser work starts.

``DesignEditor`` applies widget and design changes. Every change is persisted,
drops the cached device capture and tells devices to refresh.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections.abc import Callable
from typing import Any, Optional, Union

from PIL import Image

from inkscreen.cache.capture_store import CaptureInfo, CaptureStore
from inkscreen.cache.lookup_cache import LookupCache
from inkscreen.core.exceptions import (
    CaptureError,
    CustomWidgetNotFoundError,
    DesignNotFoundError,
    NotFoundError,
)
from inkscreen.core.http_client import ExternalFetcher
from inkscreen.core.timezone_utils import get_default_timezone, now_utc
from inkscreen.domain.layout import compose
from inkscreen.domain.models import (
    CustomWidgetConfig,
    DeviceContext,
    RenderMode,
    Scene,
    ScreenDesign,
    Widget,
    WidgetKind,
    config_for,
)
from inkscreen.protocols import (
    CustomWidgetResolver,
    DesignId,
    DesignStore,
    DeviceNotifier,
    RasterEngine,
    SettingsProvider,
)
from inkscreen.rendering import eink
from inkscreen.rendering.eink import EinkResult
from inkscreen.rendering.fonts import FontLibrary
from inkscreen.rendering.images import ImageLoader
from inkscreen.rendering.overlay import DrawingInfo, DrawingStore
from inkscreen.widgets import GeneratorContext, generate_fragment
from inkscreen.widgets.github import GitHubStars, fetch_github_stars

logger = logging.getLogger(__name__)

THUMBNAIL_MAX_WIDTH = 200
MAX_CAPTURE_ATTEMPTS = 3


class PrefetchedCustomWidgets:
    """Resolver serving content evaluated before the render started.

    Ids that were not prefetched are passed to the wrapped resolver.
    """

    def __init__(self, resolver: CustomWidgetResolver, resolved: dict[str, tuple[dict[str, Any], Any]]):
        self.resolver = resolver
        self.resolved = resolved

    async def get_rendered_content(self, custom_widget_id: DesignId) -> tuple[dict[str, Any], Any]:
        key = str(custom_widget_id)
        if key in self.resolved:
            return self.resolved[key]
        return await self.resolver.get_rendered_content(custom_widget_id)


class RenderService:
    """Renders screen designs into device images."""

    def __init__(
        self,
        designs: DesignStore,
        rasterizer: RasterEngine,
        fetcher: ExternalFetcher,
        cache: LookupCache,
        images: ImageLoader,
        fonts: FontLibrary,
        drawings: DrawingStore,
        captures: CaptureStore,
        custom_widgets: Optional[CustomWidgetResolver] = None,
        settings: Optional[SettingsProvider] = None,
        default_timezone: Optional[str] = None,
        github_token: Optional[str] = None,
        clock: Callable[[], datetime.datetime] = now_utc,
    ):
        self.designs = designs
        self.rasterizer = rasterizer
        self.fonts = fonts
        self.drawings = drawings
        self.captures = captures
        self.custom_widgets = custom_widgets
        self.context = GeneratorContext(
            fetcher=fetcher,
            cache=cache,
            images=images,
            custom_widgets=custom_widgets,
            settings=settings,
            default_timezone=default_timezone or get_default_timezone(),
            github_token=github_token,
            clock=clock,
        )

    async def load_design(self, design_id: DesignId) -> ScreenDesign:
        """Load a design snapshot.

        Raises:
            DesignNotFoundError: If the store has no such design
        """
        design = await self.designs.get_design(design_id)
        if design is None:
            raise DesignNotFoundError(design_id)
        return design

    async def _prefetch_custom_widgets(self, design: ScreenDesign) -> Optional[CustomWidgetResolver]:
        """Evaluate every custom widget the design references.

        Raises:
            CustomWidgetNotFoundError: If a referenced custom widget does not exist
        """
        if self.custom_widgets is None:
            return None

        ids: list[str] = []
        for widget in design.widgets:
            if widget.kind != WidgetKind.CUSTOM_WIDGET:
                continue
            config = config_for(widget)
            if isinstance(config, CustomWidgetConfig) and config.custom_widget_id:
                key = str(config.custom_widget_id)
                if key not in ids:
                    ids.append(key)

        if not ids:
            return self.custom_widgets

        results = await asyncio.gather(
            *(self.custom_widgets.get_rendered_content(key) for key in ids),
            return_exceptions=True,
        )

        resolved: dict[str, tuple[dict[str, Any], Any]] = {}
        for key, result in zip(ids, results):
            if isinstance(result, CustomWidgetNotFoundError):
                raise result
            if isinstance(result, BaseException):
                # The generator retries and renders its own error placeholder
                logger.warning("Custom widget %s could not be evaluated: %s", key, result)
                continue
            resolved[key] = result

        return PrefetchedCustomWidgets(self.custom_widgets, resolved)

    async def build_scene(
        self, design: ScreenDesign, device_context: Optional[DeviceContext] = None
    ) -> Scene:
        """Generate all widget fragments and compose them into a scene.

        Raises:
            CustomWidgetNotFoundError: If a referenced custom widget does not exist
        """
        resolver = await self._prefetch_custom_widgets(design)
        ctx = self.context.for_device(device_context)
        ctx.custom_widgets = resolver

        fragments = await asyncio.gather(*(generate_fragment(widget, ctx) for widget in design.widgets))
        degraded = sum(1 for item in fragments if item.degraded)
        if degraded:
            logger.info("Screen design %s: %d of %d widgets degraded", design.id, degraded, len(fragments))

        return compose(design, fragments, device_context, self.fonts.style_tag)

    def _finish(self, raster: Image.Image, design_id: DesignId, mode: RenderMode) -> EinkResult:
        composited = self.drawings.composite(raster, design_id)
        return eink.process(composited, mode)

    async def render_design_result(
        self,
        design_id: DesignId,
        device_context: Optional[DeviceContext] = None,
        mode: Union[RenderMode, str, bool, None] = RenderMode.DEVICE,
    ) -> EinkResult:
        """Render a design and report what the fitting loop did.

        Args:
            design_id: Design identifier
            device_context: Live device data, None for editor renders
            mode: Render mode (legacy boolean ``preview`` accepted)

        Returns:
            EinkResult with the final PNG bytes

        Raises:
            DesignNotFoundError: If the design does not exist
            CustomWidgetNotFoundError: If a referenced custom widget does not exist
            CaptureError: If the headless engine fails
        """
        render_mode = RenderMode.parse(mode)
        design = await self.load_design(design_id)
        started = time.perf_counter()

        scene = await self.build_scene(design, device_context)
        raster = await self.rasterizer.rasterize(scene, design.width, design.height)
        result = await asyncio.to_thread(self._finish, raster, design.id, render_mode)

        logger.info(
            "Rendered screen design %s (%s) in %.0f ms: %d bytes, %dx%d",
            design.id,
            render_mode.value,
            (time.perf_counter() - started) * 1000,
            len(result.data),
            result.width,
            result.height,
        )
        return result

    async def render_design(
        self,
        design_id: DesignId,
        device_context: Optional[DeviceContext] = None,
        mode: Union[RenderMode, str, bool, None] = RenderMode.DEVICE,
    ) -> bytes:
        """Render a design to PNG bytes. See ``render_design_result``."""
        result = await self.render_design_result(design_id, device_context, mode)
        return result.data

    async def render_preview_thumbnail(self, design_id: DesignId) -> bytes:
        """Full-colour preview scaled to at most 200 px wide."""
        png = await self.render_design(design_id, mode=RenderMode.PREVIEW)
        return await asyncio.to_thread(eink.make_thumbnail, png, THUMBNAIL_MAX_WIDTH)

    async def process_uploaded_image(self, data: bytes) -> EinkResult:
        """Convert an uploaded image for the device.

        Raises:
            ImageProcessingError: If the bytes are not a decodable image
        """
        result = await asyncio.to_thread(eink.process_upload, data)
        logger.info(
            "Processed uploaded image: %d -> %d bytes, %dx%d after %d attempt(s)",
            len(data),
            len(result.data),
            result.width,
            result.height,
            result.attempts,
        )
        return result

    async def _capture(self, design_id: DesignId) -> tuple[CaptureInfo, bytes]:
        for attempt in range(1, MAX_CAPTURE_ATTEMPTS + 1):
            generation = self.captures.generation(design_id)
            result = await self.render_design_result(design_id, mode=RenderMode.DEVICE)
            info = await asyncio.to_thread(self.captures.save, design_id, result.data, generation)
            if info is not None:
                await self.designs.touch_capture_timestamp(design_id)
                logger.info("Captured screen design %s (%d bytes)", design_id, info.size)
                return info, result.data
            logger.info(
                "Screen design %s changed during capture (attempt %d of %d), rendering again",
                design_id,
                attempt,
                MAX_CAPTURE_ATTEMPTS,
            )
        raise CaptureError(f"Screen design {design_id} kept changing during capture")

    async def capture(self, design_id: DesignId) -> CaptureInfo:
        """Render the device image and store it as the design's capture.

        A render that a design change overtakes is discarded and rendered again.

        Raises:
            CaptureError: If the headless engine fails, or the design changed
                during every attempt
        """
        info, _ = await self._capture(design_id)
        return info

    async def capture_with_drawing(self, design_id: DesignId, drawing: Optional[bytes] = None) -> CaptureInfo:
        """Store a drawing overlay (if given), then capture with it composited.

        Raises:
            DesignNotFoundError: If the design does not exist
            ImageProcessingError: If the drawing is not a PNG
        """
        await self.load_design(design_id)
        if drawing:
            await asyncio.to_thread(self.drawings.save, design_id, drawing)
        return await self.capture(design_id)

    async def upload_capture(self, design_id: DesignId, data: bytes) -> CaptureInfo:
        """Store a capture the editor rendered and dithered in the browser.

        Raises:
            DesignNotFoundError: If the design does not exist
            ImageProcessingError: If the upload is not a PNG image
        """
        await self.load_design(design_id)
        processed = await asyncio.to_thread(eink.process_browser_capture, data)
        info = await asyncio.to_thread(self.captures.save, design_id, processed)
        await self.designs.touch_capture_timestamp(design_id)
        logger.info("Stored browser capture for screen design %s (%d bytes)", design_id, info.size)
        return info

    async def get_device_image(self, design_id: DesignId) -> bytes:
        """Serve the cached capture, capturing first when there is none."""
        cached = await asyncio.to_thread(self.captures.load, design_id)
        if cached is not None:
            logger.debug("Serving cached capture for screen design %s", design_id)
            return cached
        _, data = await self._capture(design_id)
        return data

    async def drawing_info(self, design_id: DesignId) -> DrawingInfo:
        return await asyncio.to_thread(self.drawings.info, design_id)

    async def delete_drawing(self, design_id: DesignId) -> bool:
        deleted = await asyncio.to_thread(self.drawings.delete, design_id)
        if deleted:
            await asyncio.to_thread(self.captures.invalidate, design_id)
        return deleted

    async def get_github_stars(self, owner: str, repo: str) -> Optional[GitHubStars]:
        """Star count of a repository, cached for five minutes."""
        return await fetch_github_stars(owner, repo, self.context)


class DesignEditor:
    """Applies design changes and keeps captures and devices in step.

    Each change loads, modifies and saves the design while holding the
    store's lock for that design, and invalidates the capture before the lock
    is released.
    """

    def __init__(
        self,
        designs: DesignStore,
        captures: CaptureStore,
        notifier: Optional[DeviceNotifier] = None,
    ):
        self.designs = designs
        self.captures = captures
        self.notifier = notifier

    async def _load(self, design_id: DesignId) -> ScreenDesign:
        design = await self.designs.get_design(design_id)
        if design is None:
            raise DesignNotFoundError(design_id)
        return design

    async def _notify(self, design_id: DesignId) -> int:
        if self.notifier is None:
            return 0
        return await self.notifier.notify(design_id)

    async def _modify(self, design_id: DesignId, change: Callable[[ScreenDesign], ScreenDesign]) -> int:
        async with self.designs.design_lock(design_id):
            updated = change(await self._load(design_id))
            await self.designs.save_design(updated)
            await asyncio.to_thread(self.captures.invalidate, design_id)
        return await self._notify(design_id)

    @staticmethod
    def _find(design: ScreenDesign, widget_id: DesignId) -> int:
        for index, widget in enumerate(design.widgets):
            if str(widget.id) == str(widget_id):
                return index
        raise NotFoundError(f"Widget {widget_id} not found in screen design {design.id}")

    @staticmethod
    def _next_widget_id(design: ScreenDesign) -> int:
        numeric = [int(w.id) for w in design.widgets if str(w.id).isdigit()]
        return max(numeric, default=0) + 1

    async def add_widget(self, design_id: DesignId, widget: Union[Widget, dict[str, Any]]) -> int:
        """Append a widget; returns the number of devices notified.

        A widget without an id gets the next free numeric id.
        """
        if isinstance(widget, dict):
            widget = Widget.model_validate(widget)

        def change(design: ScreenDesign) -> ScreenDesign:
            added = widget
            if added.id in (0, "", None):
                added = added.model_copy(update={"id": self._next_widget_id(design)})
            logger.info("Adding %s widget %s to screen design %s", added.template_kind, added.id, design.id)
            return design.model_copy(update={"widgets": [*design.widgets, added]})

        return await self._modify(design_id, change)

    async def update_widget(self, design_id: DesignId, widget_id: DesignId, changes: dict[str, Any]) -> int:
        """Apply field changes to one widget.

        ``config`` keys are merged into the existing config; other fields
        are replaced.

        Raises:
            NotFoundError: If the design or widget does not exist
        """

        def change(design: ScreenDesign) -> ScreenDesign:
            index = self._find(design, widget_id)
            current = design.widgets[index]

            data = current.model_dump(by_alias=True)
            for key, value in changes.items():
                if key == "config" and isinstance(value, dict):
                    data["config"] = {**data["config"], **value}
                else:
                    data[key] = value
            data["id"] = current.id

            widgets = list(design.widgets)
            widgets[index] = Widget.model_validate(data)
            logger.info("Updated widget %s of screen design %s", widget_id, design.id)
            return design.model_copy(update={"widgets": widgets})

        return await self._modify(design_id, change)

    async def remove_widget(self, design_id: DesignId, widget_id: DesignId) -> int:
        """Remove one widget.

        Raises:
            NotFoundError: If the design or widget does not exist
        """

        def change(design: ScreenDesign) -> ScreenDesign:
            index = self._find(design, widget_id)
            logger.info("Removed widget %s from screen design %s", widget_id, design.id)
            return design.model_copy(update={"widgets": [w for i, w in enumerate(design.widgets) if i != index]})

        return await self._modify(design_id, change)

    async def update_design(self, design_id: DesignId, changes: dict[str, Any]) -> int:
        """Apply design-level changes (name, size, background, widgets)."""

        def change(design: ScreenDesign) -> ScreenDesign:
            data = {**design.model_dump(by_alias=True), **changes, "id": design.id}
            updated = ScreenDesign.model_validate(data)
            logger.info("Updated screen design %s (%s)", design.id, ", ".join(sorted(changes)) or "no fields")
            return updated

        return await self._modify(design_id, change)

    async def refresh_devices(self, design_id: DesignId) -> int:
        """Drop the capture and ask devices showing the design to refresh."""
        async with self.designs.design_lock(design_id):
            await self._load(design_id)
            await asyncio.to_thread(self.captures.invalidate, design_id)
        return await self._notify(design_id)
