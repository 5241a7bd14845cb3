"""Small HTML/CSS helpers shared by the widget generators."""

from __future__ import annotations

import html as _html
from typing import Union

from inkscreen.rendering.fonts import map_font_family

Number = Union[int, float]


def escape(text: object) -> str:
    """Escape text for element content and attribute values."""
    return _html.escape(str(text), quote=True).replace("&#x27;", "&#039;")


def css_number(value: Number) -> str:
    """Format a number for CSS without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return f"{round(float(value), 3):g}"


def px(value: Number) -> str:
    return f"{css_number(value)}px"


def justify_for(text_align: str) -> str:
    """Flex justification matching a text alignment."""
    if text_align == "left":
        return "flex-start"
    if text_align == "right":
        return "flex-end"
    return "center"


def font_style(font_size: Number, font_family: str) -> str:
    return f"font-size: {px(font_size)}; font-family: {map_font_family(font_family)};"


def placeholder(message: str, color: str = "#999", font_size: Number = 12) -> str:
    """Grey inline notice used whenever a widget cannot show its content."""
    return f'<div style="color: {color}; font-size: {px(font_size)};">{escape(message)}</div>'
