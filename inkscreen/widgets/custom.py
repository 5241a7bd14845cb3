"""Custom widget: renders content produced by a user-defined data widget.

The resolver returns ``(widget_config, content)``. Content comes in a handful
of shapes (text, list, label/value pair, grid of cells, arbitrary object) and
each maps onto its own markup. Image values are loaded and inlined first;
grid image cells are loaded concurrently and fail one cell at a time.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from inkscreen.core.exceptions import ImageLoadError, InkscreenError
from inkscreen.domain.models import CustomWidgetConfig, RenderedFragment, Widget, WidgetKind
from inkscreen.rendering.fonts import map_font_family
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import css_number, escape, justify_for, placeholder, px

logger = logging.getLogger(__name__)

MAX_LIST_ITEMS = 10
CELL_FONT_SCALE = 0.7
LABEL_FONT_SCALE = 0.6


def _vertical_justify(vertical_align: str) -> str:
    if vertical_align == "top":
        return "flex-start"
    if vertical_align == "bottom":
        return "flex-end"
    return "center"


def base_style(config: CustomWidgetConfig) -> str:
    return (
        f"display: flex; flex-direction: column; align-items: {justify_for(config.text_align)};"
        f" justify-content: {_vertical_justify(config.vertical_align)}; width: 100%; height: 100%;"
        f" padding: 8px; font-size: {px(config.font_size)};"
        f" font-family: {map_font_family(config.font_family)};"
        f" font-weight: {escape(config.font_weight)}; text-align: {config.text_align};"
        f" color: {escape(config.color)}; line-height: 1.2; overflow: hidden;"
    )


def is_grid(content: Any) -> bool:
    return isinstance(content, dict) and content.get("type") == "grid"


def _int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


async def load_image(url: Any, ctx: GeneratorContext) -> Optional[str]:
    """Inline an image value; None when it cannot be loaded."""
    try:
        return await ctx.images.to_data_url(str(url or ""))
    except ImageLoadError as e:
        logger.warning("Custom widget image unavailable: %s", e)
        return None


def _label_html(label: Any, cell_font: float) -> str:
    if not label:
        return ""
    return f'<div style="font-size: {px(cell_font * LABEL_FONT_SCALE)}; color: #888;">{escape(label)}</div>'


def _cell_value_text(cell: dict[str, Any]) -> str:
    value = cell.get("formattedValue")
    if value is None:
        value = cell.get("value", "")
    return escape(value)


async def render_grid(
    grid: dict[str, Any], config: CustomWidgetConfig, ctx: GeneratorContext
) -> str:
    """Render a grid descriptor as a CSS grid.

    Args:
        grid: ``{type: "grid", gridCols|cols, gridRows|rows, gridGap|gap, cells}``
        config: Widget config (fonts, cell overrides)
        ctx: Generator context used to load image cells

    Returns:
        Grid markup; a cell whose image fails shows its label and a notice
    """
    cols = _int(grid.get("gridCols", grid.get("cols")), 1)
    rows = _int(grid.get("gridRows", grid.get("rows")), 1)
    gap = _int(grid.get("gridGap", grid.get("gap")), 0)
    cells = [cell for cell in grid.get("cells") or [] if isinstance(cell, dict)]

    image_cells = [cell for cell in cells if cell.get("fieldType") == "image" and cell.get("value")]
    loaded = await asyncio.gather(*(load_image(cell.get("value"), ctx) for cell in image_cells))
    images = {id(cell): data_url for cell, data_url in zip(image_cells, loaded)}

    font_family = map_font_family(config.font_family)
    cell_font_default = config.font_size * CELL_FONT_SCALE

    parts = []
    for cell in cells:
        row = _int(cell.get("row"), 0)
        col = _int(cell.get("col"), 0)
        override = config.cell_overrides.get(f"{row}-{col}") or {}
        cell_font = override.get("fontSize") or cell_font_default
        if not isinstance(cell_font, (int, float)):
            cell_font = cell_font_default
        align = str(override.get("align") or cell.get("align") or "center")
        position = f"grid-row: {row + 1}; grid-column: {col + 1};"
        label = _label_html(cell.get("label"), cell_font)

        if id(cell) in images:
            data_url = images[id(cell)]
            if data_url is None:
                body = placeholder("Image unavailable", font_size=max(10, cell_font * LABEL_FONT_SCALE))
            else:
                body = (
                    f'<img src="{data_url}" style="max-width: 100%; max-height: 100%;'
                    ' object-fit: contain;" />'
                )
            parts.append(
                '<div style="display: flex; flex-direction: column; align-items: center;'
                f' justify-content: center; overflow: hidden; {position}">{label}{body}</div>'
            )
            continue

        weight = escape(override.get("fontWeight") or "bold")
        family = escape(override.get("fontFamily") or font_family)
        parts.append(
            f'<div style="display: flex; flex-direction: column; align-items: {justify_for(align)};'
            f" justify-content: center; overflow: hidden; text-align: {escape(align)}; {position}\">"
            f"{label}"
            f'<span style="font-size: {px(cell_font)}; font-weight: {weight}; font-family: {family};">'
            f"{_cell_value_text(cell)}</span></div>"
        )

    return (
        f'<div style="display: grid; grid-template-columns: repeat({cols}, 1fr);'
        f" grid-template-rows: repeat({rows}, 1fr); gap: {gap}px; width: 100%; height: 100%;\">"
        + "".join(parts)
        + "</div>"
    )


async def render_list(items: list[Any], config: CustomWidgetConfig, ctx: GeneratorContext) -> str:
    rendered = []
    for item in items[:MAX_LIST_ITEMS]:
        if isinstance(item, dict) and item.get("fieldType") == "image":
            data_url = await load_image(item.get("value"), ctx)
            if data_url is None:
                rendered.append(f'<li style="margin-bottom: 4px;">{placeholder("Image unavailable")}</li>')
            else:
                rendered.append(
                    f'<li style="margin-bottom: 4px;"><img src="{data_url}"'
                    ' style="max-width: 100%; object-fit: contain;" /></li>'
                )
            continue
        rendered.append(f'<li style="margin-bottom: 4px;">{escape(item)}</li>')

    return (
        f'<ul style="list-style: none; margin: 0; padding: 0; width: 100%;'
        f' text-align: {config.text_align};">{"".join(rendered)}</ul>'
    )


async def render_content(
    content: Any, widget_config: dict[str, Any], config: CustomWidgetConfig, ctx: GeneratorContext
) -> str:
    """Map resolved content onto markup inside the widget's base box."""
    style = base_style(config)

    if isinstance(content, str):
        if widget_config.get("fieldType") == "image":
            data_url = await load_image(content, ctx)
            if data_url is None:
                return f'<div style="{style}">{placeholder("Image unavailable")}</div>'
            return (
                f'<div style="{style}"><img src="{data_url}" style="max-width: 100%;'
                ' max-height: 100%; object-fit: contain;" /></div>'
            )
        return (
            f'<div style="{style}"><div style="width: 100%; text-align: {config.text_align};">'
            f"{escape(content)}</div></div>"
        )

    if isinstance(content, list):
        return f'<div style="{style}">{await render_list(content, config, ctx)}</div>'

    if is_grid(content):
        return await render_grid(content, config, ctx)

    if isinstance(content, dict):
        if ("title" in content or "label" in content) and "value" in content:
            label = content["title"] if "title" in content else content["label"]
            label_html = (
                f'<div style="font-size: {px(config.font_size * LABEL_FONT_SCALE)}; opacity: 0.6;">'
                f"{escape(label)}</div>"
            )
            if widget_config.get("valueFieldType") == "image":
                data_url = await load_image(content["value"], ctx)
                if data_url is None:
                    return f'<div style="{style}">{label_html}{placeholder("Image unavailable")}</div>'
                return (
                    f'<div style="{style}">{label_html}<img src="{data_url}" style="max-width: 100%;'
                    ' max-height: 80%; object-fit: contain; margin-top: 8px;" /></div>'
                )
            return (
                f'<div style="{style}">{label_html}'
                f'<div style="font-weight: bold;">{escape(content["value"])}</div></div>'
            )

        pretty = json.dumps(content, indent=2, default=str)
        return (
            f'<div style="{style}"><pre style="font-size: 12px; text-align: left; margin: 0;'
            f' white-space: pre-wrap;">{escape(pretty)}</pre></div>'
        )

    return placeholder("Invalid content")


@register(WidgetKind.CUSTOM_WIDGET)
async def generate_custom_widget(
    widget: Widget, config: CustomWidgetConfig, ctx: GeneratorContext
) -> RenderedFragment:
    if not config.custom_widget_id:
        return fragment(widget, placeholder("No widget ID"), degraded=True)
    if ctx.custom_widgets is None:
        logger.warning("No custom widget resolver configured for widget %s", widget.id)
        return fragment(widget, placeholder("Custom widgets unavailable"), degraded=True)

    try:
        widget_config, content = await ctx.custom_widgets.get_rendered_content(config.custom_widget_id)
    except InkscreenError as e:
        logger.warning("Custom widget %s failed: %s", config.custom_widget_id, e)
        return fragment(widget, placeholder(f"Error: {e}", color="#f00"), degraded=True)

    html = await render_content(content, widget_config or {}, config, ctx)
    logger.debug(
        "Rendered custom widget %s (%s content, font %s)",
        config.custom_widget_id,
        type(content).__name__,
        css_number(config.font_size),
    )
    return fragment(widget, html)
