"""Divider and rectangle widgets."""

from __future__ import annotations

from inkscreen.domain.models import DividerConfig, RectangleConfig, RenderedFragment, Widget, WidgetKind
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import escape, px


@register(WidgetKind.DIVIDER)
async def generate_divider(
    widget: Widget, config: DividerConfig, ctx: GeneratorContext
) -> RenderedFragment:
    color = escape(config.color)
    thickness = px(config.thickness)

    if config.style == "solid":
        line_style = f"background-color: {color};"
    else:
        line_style = (
            f"border-style: {config.style}; border-color: {color}; border-width: {thickness};"
            " background-color: transparent;"
        )

    if config.orientation == "horizontal":
        size_style = f"width: 100%; height: {thickness};"
    else:
        size_style = f"width: {thickness}; height: 100%;"

    html = (
        '<div style="display: flex; align-items: center; justify-content: center; width: 100%; height: 100%;">'
        f'<div style="{line_style} {size_style}"></div>'
        "</div>"
    )
    return fragment(widget, html)


@register(WidgetKind.RECTANGLE)
async def generate_rectangle(
    widget: Widget, config: RectangleConfig, ctx: GeneratorContext
) -> RenderedFragment:
    if config.border_width > 0:
        border = f"border: {px(config.border_width)} solid {escape(config.border_color)};"
    else:
        border = "border: none;"

    html = (
        f'<div style="width: 100%; height: 100%; background-color: {escape(config.fill)};'
        f' {border} border-radius: {px(config.border_radius)};"></div>'
    )
    return fragment(widget, html)
