"""Dependency injection container for the inkscreen renderer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class AppDependencies:
    """Container for all application dependencies.

    The HTTP server and the CLI both build one of these and hand its parts to
    the routes or commands that need them, which keeps tests free to swap any
    piece for a fake.
    """

    # Configuration
    settings: Any

    # Infrastructure
    fetcher: Any
    lookup_cache: Any
    image_loader: Any
    font_library: Any
    browser_session: Any
    rasterizer: Any

    # Storage
    design_store: Any
    custom_widgets: Any
    settings_provider: Any
    device_notifier: Any
    drawing_store: Any
    capture_store: Any

    # Business logic components
    render_service: Any
    design_editor: Any

    async def close(self) -> None:
        """Release the browser and the shared HTTP clients."""
        from inkscreen.core.http_client import close_all_clients

        await self.browser_session.close()
        await close_all_clients()


class DependencyContainer:
    """Factory for building application dependencies."""

    @staticmethod
    def build_dependencies(
        settings: Any,
        rasterizer: Optional[Any] = None,
        design_store: Optional[Any] = None,
        http_client: Optional[Any] = None,
    ) -> AppDependencies:
        """Build all application dependencies.

        Args:
            settings: RenderSettings instance
            rasterizer: Optional raster engine replacing the headless browser
            design_store: Optional design store replacing the JSON-file store
            http_client: Optional httpx.AsyncClient for outbound widget fetches

        Returns:
            AppDependencies container with all dependencies initialized
        """
        from inkscreen.cache import CaptureStore, LookupCache
        from inkscreen.core.http_client import ExternalFetcher
        from inkscreen.rendering.fonts import FontLibrary
        from inkscreen.rendering.images import ImageLoader
        from inkscreen.rendering.overlay import DrawingStore
        from inkscreen.rendering.rasterizer import BrowserSession, Rasterizer
        from inkscreen.service import DesignEditor, RenderService
        from inkscreen.stores import (
            EnvSettingsProvider,
            FileCustomWidgetResolver,
            JsonDesignStore,
            JsonDeviceNotifier,
        )

        fetcher = ExternalFetcher(client=http_client, timeout=settings.fetch_timeout)
        lookup_cache = LookupCache()
        image_loader = ImageLoader(settings.uploads_dir, fetcher)
        font_library = FontLibrary(settings.fonts_dir)

        browser_session = BrowserSession(executable_path=settings.chromium_path)
        if rasterizer is None:
            rasterizer = Rasterizer(browser_session, asset_timeout=settings.asset_timeout)

        design_store = design_store or JsonDesignStore(settings.data_dir)
        custom_widgets = FileCustomWidgetResolver(settings.data_dir)
        settings_provider = EnvSettingsProvider(settings.github_token)
        device_notifier = JsonDeviceNotifier(settings.data_dir)
        drawing_store = DrawingStore(settings.uploads_dir)
        capture_store = CaptureStore(settings.uploads_dir)

        render_service = RenderService(
            designs=design_store,
            rasterizer=rasterizer,
            fetcher=fetcher,
            cache=lookup_cache,
            images=image_loader,
            fonts=font_library,
            drawings=drawing_store,
            captures=capture_store,
            custom_widgets=custom_widgets,
            settings=settings_provider,
            default_timezone=settings.default_timezone,
            github_token=settings.github_token,
        )
        design_editor = DesignEditor(design_store, capture_store, device_notifier)

        return AppDependencies(
            settings=settings,
            fetcher=fetcher,
            lookup_cache=lookup_cache,
            image_loader=image_loader,
            font_library=font_library,
            browser_session=browser_session,
            rasterizer=rasterizer,
            design_store=design_store,
            custom_widgets=custom_widgets,
            settings_provider=settings_provider,
            device_notifier=device_notifier,
            drawing_store=drawing_store,
            capture_store=capture_store,
            render_service=render_service,
            design_editor=design_editor,
        )
