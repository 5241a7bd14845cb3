"""Layout composer: places widget fragments into one HTML scene document."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

from inkscreen.domain.models import (
    DeviceContext,
    Placement,
    RenderedFragment,
    Scene,
    ScreenDesign,
    Widget,
    config_for,
)
from inkscreen.widgets.html import css_number, escape, px

logger = logging.getLogger(__name__)

BASE_STYLES = """    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
      width: %(width)s;
      height: %(height)s;
      background: %(background)s;
      position: relative;
      overflow: hidden;
      font-family: sans-serif;
      -webkit-font-smoothing: antialiased;
      -moz-osx-font-smoothing: grayscale;
      text-rendering: geometricPrecision;
    }
    .widget {
      position: absolute;
      display: flex;
      align-items: center;
      overflow: hidden;
    }"""


def intersects_canvas(widget: Widget, width: int, height: int) -> bool:
    return (
        widget.width > 0
        and widget.height > 0
        and widget.x < width
        and widget.y < height
        and widget.x + widget.width > 0
        and widget.y + widget.height > 0
    )


def widget_box_style(widget: Widget, fragment: RenderedFragment) -> str:
    """Inline style of the absolutely positioned box around a fragment."""
    parts = [
        f"left: {px(widget.x)};",
        f"top: {px(widget.y)};",
        f"width: {px(widget.width)};",
        f"height: {px(widget.height)};",
        f"z-index: {widget.z_index};",
    ]
    opacity = config_for(widget).opacity
    if opacity < 100:
        parts.append(f"opacity: {css_number(opacity / 100)};")
    if fragment.style:
        parts.append(fragment.style)
    if widget.rotation:
        parts.append(f"transform: rotate({css_number(widget.rotation)}deg); transform-origin: center center;")
    return " ".join(parts)


def compose(
    design: ScreenDesign,
    fragments: Sequence[RenderedFragment],
    device_context: Optional[DeviceContext] = None,
    font_style_tag: str = "",
) -> Scene:
    """Compose fragments into a scene of exactly the design's size.

    Args:
        design: Design snapshot
        fragments: One fragment per widget, in ``design.widgets`` order
        device_context: Device data of this render, used for logging only
        font_style_tag: ``<style>`` block of embedded fonts

    Returns:
        Scene whose placements follow paint order (z-index, then list order)

    Raises:
        ValueError: If the number of fragments does not match the widgets
    """
    if len(fragments) != len(design.widgets):
        raise ValueError(f"Expected {len(design.widgets)} fragments, got {len(fragments)}")

    width, height = design.width, design.height
    logger.debug(
        "Composing %d widgets for screen %s (%dx%d, device=%s)",
        len(design.widgets),
        design.id,
        width,
        height,
        device_context.device_name if device_context else None,
    )

    # sorted() is stable, so equal z-index keeps list order
    ordered = sorted(zip(design.widgets, fragments), key=lambda pair: pair[0].z_index)

    boxes = []
    placements = []
    for widget, fragment in ordered:
        visible = intersects_canvas(widget, width, height)
        if not visible:
            logger.debug(
                "Widget %s (%s) at (%s, %s) size %sx%s lies outside the canvas",
                widget.id,
                widget.template_kind,
                css_number(widget.x),
                css_number(widget.y),
                css_number(widget.width),
                css_number(widget.height),
            )
        boxes.append(f'<div class="widget" style="{widget_box_style(widget, fragment)}">{fragment.html}</div>')
        placements.append(
            Placement(
                widget_id=widget.id,
                kind=widget.template_kind,
                x=widget.x,
                y=widget.y,
                width=widget.width,
                height=widget.height,
                rotation=widget.rotation,
                z_index=widget.z_index,
                visible=visible,
            )
        )

    styles = BASE_STYLES % {
        "width": px(width),
        "height": px(height),
        "background": escape(design.background),
    }
    html = (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '  <meta charset="UTF-8">\n'
        f"  {font_style_tag}\n"
        f"  <style>\n{styles}\n  </style>\n"
        "</head>\n<body>\n  "
        + "\n  ".join(boxes)
        + "\n</body>\n</html>"
    )

    return Scene(
        width=width,
        height=height,
        background=design.background,
        html=html,
        placements=placements,
    )
