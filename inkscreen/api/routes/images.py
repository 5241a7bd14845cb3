"""Widget image uploads and the GitHub stars proxy."""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from pathlib import Path
from typing import Any

from inkscreen.stores import write_bytes_atomic

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 25 * 1024 * 1024
ALLOWED_IMAGE_TYPES = re.compile(r"/(jpg|jpeg|png|gif|bmp|webp)$")


def widget_image_filename() -> str:
    """``widget_<epoch ms>_<16 hex>.png``."""
    return f"widget_{int(time.time() * 1000)}_{secrets.token_hex(8)}.png"


def register_image_routes(app: Any, render_service: Any, uploads_dir: Path) -> None:
    """Register image upload and GitHub proxy routes.

    Args:
        app: aiohttp web application
        render_service: RenderService instance
        uploads_dir: Root of the uploads tree
    """
    from aiohttp import web

    widgets_dir = Path(uploads_dir) / "widgets"

    async def upload_widget_image(request: Any) -> Any:
        """Convert an uploaded image to a 1-bit PNG and store it for image widgets."""
        field = None
        if request.content_type.startswith("multipart/"):
            form = await request.post()
            field = form.get("file")
        if not isinstance(field, web.FileField):
            return web.json_response(
                {"error": 'No file uploaded. Make sure to send file with field name "file"'}, status=400
            )
        if not ALLOWED_IMAGE_TYPES.search(field.content_type or ""):
            return web.json_response({"error": "Only image files are allowed"}, status=400)

        data = field.file.read()
        if len(data) > MAX_UPLOAD_BYTES:
            return web.json_response({"error": "File too large"}, status=413)

        logger.info(
            "Upload request received: %s (%d bytes, %s)", field.filename, len(data), field.content_type
        )
        result = await render_service.process_uploaded_image(data)

        filename = widget_image_filename()
        await asyncio.to_thread(write_bytes_atomic, widgets_dir / filename, result.data)

        return web.json_response(
            {
                "url": f"/uploads/widgets/{filename}",
                "filename": filename,
                "originalName": field.filename,
                "size": len(result.data),
                "width": result.width,
                "height": result.height,
                "compressed": len(result.data) < len(data),
            },
            status=201,
        )

    async def github_stars(request: Any) -> Any:
        """Star count for a repository, proxied so the token stays server-side."""
        stars = await render_service.get_github_stars(
            request.match_info["owner"], request.match_info["repo"]
        )
        if stars is None:
            return web.json_response(None)
        return web.json_response({"stars": stars.stars, "name": stars.name})

    app.router.add_post("/api/upload-widget-image", upload_widget_image)
    app.router.add_get("/api/github-stars/{owner}/{repo}", github_stars)

    logger.debug("Registered image routes")
