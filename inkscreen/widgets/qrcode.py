"""QR code widget.

The code image comes from api.qrserver.com and is inlined as a data URL, so
the capture does not depend on the QR service being reachable mid-render.
"""

from __future__ import annotations

import base64
import logging
from urllib.parse import urlencode

from inkscreen.core.http_client import FetchError
from inkscreen.domain.models import QRCodeConfig, RenderedFragment, Widget, WidgetKind
from inkscreen.widgets.base import GeneratorContext, fragment, register
from inkscreen.widgets.html import escape, placeholder, px

logger = logging.getLogger(__name__)

QR_SERVICE_URL = "https://api.qrserver.com/v1/create-qr-code/"
CAPTION_MAX_CHARS = 30


def qr_size_for(config: QRCodeConfig, widget: Widget) -> int:
    if config.size:
        return config.size
    return max(1, int(min(min(widget.width, widget.height) - 20, 100)))


def qr_image_url(content: str, size: int) -> str:
    query = urlencode({"size": f"{size}x{size}", "data": content, "margin": 1})
    return f"{QR_SERVICE_URL}?{query}"


def caption_for(content: str) -> str:
    if len(content) > CAPTION_MAX_CHARS:
        return content[:CAPTION_MAX_CHARS] + "..."
    return content


@register(WidgetKind.QRCODE)
async def generate_qrcode(
    widget: Widget, config: QRCodeConfig, ctx: GeneratorContext
) -> RenderedFragment:
    content = config.content or "https://example.com"
    size = qr_size_for(config, widget)

    try:
        png = await ctx.fetcher.get_bytes(qr_image_url(content, size))
    except FetchError as e:
        logger.warning("QR code for widget %s unavailable: %s", widget.id, e)
        return fragment(widget, placeholder("QR unavailable"), "justify-content: center;", degraded=True)

    data_url = "data:image/png;base64," + base64.b64encode(png).decode("ascii")
    html = (
        '<div style="display: flex; flex-direction: column; align-items: center;">'
        f'<img src="{data_url}" alt="QR" style="width: {px(size)}; height: {px(size)};" />'
        '<div style="font-size: 10px; color: #888; margin-top: 4px; max-width: 100%;'
        f' overflow: hidden; text-overflow: ellipsis;">{escape(caption_for(content))}</div>'
        "</div>"
    )
    return fragment(widget, html, "justify-content: center;")
