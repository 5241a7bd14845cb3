"""Image widget."""

from __future__ import annotations

import logging

from inkscreen.core.exceptions import ImageLoadError
from inkscreen.domain.models import ImageConfig, RenderedFragment, Widget, WidgetKind
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import placeholder

logger = logging.getLogger(__name__)


@register(WidgetKind.IMAGE)
async def generate_image(
    widget: Widget, config: ImageConfig, ctx: GeneratorContext
) -> RenderedFragment:
    url = config.source
    if not url:
        return fragment(widget, placeholder("No image URL"), degraded=True)

    try:
        data_url = await ctx.images.to_data_url(url)
    except ImageLoadError as e:
        logger.warning("Image widget %s: %s", widget.id, e)
        message = "Image not found" if e.not_found else "Image Error"
        return fragment(widget, placeholder(message), degraded=True)

    html = (
        '<div style="width: 100%; height: 100%; display: flex; align-items: center;'
        ' justify-content: center; background: white;">'
        f'<img src="{data_url}" alt="Image" style="max-width: 100%; max-height: 100%;'
        f' object-fit: {config.fit};" />'
        "</div>"
    )
    return fragment(widget, html)
