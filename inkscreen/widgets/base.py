"""Generator registry and the context every widget generator receives.

A generator turns one widget into a ``RenderedFragment``. Generators may do
outbound I/O through the context's fetcher and image loader. They are allowed
to raise; ``generate_fragment`` is the boundary that turns any failure into a
placeholder so a single widget can never fail a whole render.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional

from inkscreen.cache.lookup_cache import LookupCache
from inkscreen.core.http_client import ExternalFetcher
from inkscreen.core.timezone_utils import DEFAULT_SERVER_TIMEZONE, now_utc
from inkscreen.domain.models import (
    DeviceContext,
    RenderedFragment,
    Widget,
    WidgetConfig,
    WidgetKind,
    config_for,
)
from inkscreen.protocols import CustomWidgetResolver, SettingsProvider
from inkscreen.rendering.images import ImageLoader
from inkscreen.widgets.html import escape, placeholder

logger = logging.getLogger(__name__)


@dataclass
class GeneratorContext:
    """Everything a generator may use besides the widget itself."""

    fetcher: ExternalFetcher
    cache: LookupCache
    images: ImageLoader
    custom_widgets: Optional[CustomWidgetResolver] = None
    settings: Optional[SettingsProvider] = None
    device: Optional[DeviceContext] = None
    default_timezone: str = DEFAULT_SERVER_TIMEZONE
    github_token: Optional[str] = None  # environment fallback
    clock: Callable[[], datetime.datetime] = now_utc

    def now(self) -> datetime.datetime:
        return self.clock()

    def for_device(self, device: Optional[DeviceContext]) -> "GeneratorContext":
        """Copy of this context bound to one render's device data."""
        return dataclasses.replace(self, device=device)


Generator = Callable[[Widget, WidgetConfig, GeneratorContext], Awaitable[RenderedFragment]]

_GENERATORS: dict[WidgetKind, Generator] = {}


def register(kind: WidgetKind) -> Callable[[Generator], Generator]:
    """Decorator registering a generator for a widget kind."""

    def decorator(func: Generator) -> Generator:
        _GENERATORS[kind] = func
        return func

    return decorator


def get_generator(kind: WidgetKind) -> Optional[Generator]:
    return _GENERATORS.get(kind)


def registered_kinds() -> frozenset[WidgetKind]:
    return frozenset(_GENERATORS)


def fragment(
    widget: Widget, html: str, style: str = "", degraded: bool = False
) -> RenderedFragment:
    return RenderedFragment(
        widget_id=widget.id,
        kind=widget.template_kind,
        html=html,
        style=style,
        degraded=degraded,
    )


def unknown_fragment(widget: Widget) -> RenderedFragment:
    html = f'<div style="color: #999; font-size: 12px;">Unknown: {escape(widget.template_kind)}</div>'
    return fragment(widget, html, degraded=True)


async def generate_fragment(widget: Widget, ctx: GeneratorContext) -> RenderedFragment:
    """Run the widget's generator, substituting a placeholder on any failure.

    Args:
        widget: Widget to render
        ctx: Generator context for this render

    Returns:
        The generated fragment, never raises
    """
    kind = widget.kind
    generator = get_generator(kind) if kind is not None else None
    if generator is None:
        logger.warning("No generator for widget kind %r (widget %s)", widget.template_kind, widget.id)
        return unknown_fragment(widget)

    try:
        config = config_for(widget)
        return await generator(widget, config, ctx)
    except Exception as e:
        logger.warning(
            "Widget %s (%s) failed, rendering placeholder: %s",
            widget.id,
            widget.template_kind,
            e,
            exc_info=logger.isEnabledFor(logging.DEBUG),
        )
        return fragment(widget, placeholder(f"{widget.template_kind} unavailable"), degraded=True)
