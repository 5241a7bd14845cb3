"""Screen design routes: rendering, captures, drawings and widget edits."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from inkscreen.domain.models import DeviceContext, RenderMode

logger = logging.getLogger(__name__)

PNG_CONTENT_TYPE = "image/png"

# Query parameters that make up a device context on /render
DEVICE_QUERY_KEYS = ("battery", "wifi", "deviceName", "firmwareVersion", "macAddress")


def device_context_from_query(query: Any) -> Optional[DeviceContext]:
    """Build a DeviceContext from query parameters; None when none are given.

    Raises:
        ValueError: If a value cannot be parsed
    """
    values = {key: query[key] for key in DEVICE_QUERY_KEYS if query.get(key) not in (None, "")}
    if not values:
        return None
    return DeviceContext.model_validate(values)


def render_mode_from_query(query: Any) -> RenderMode:
    """Read ``mode``, falling back to the legacy ``preview`` flag."""
    if query.get("mode"):
        return RenderMode.parse(query["mode"])
    preview = str(query.get("preview", "")).lower()
    return RenderMode.parse(preview in ("1", "true", "yes"))


def register_design_routes(app: Any, render_service: Any, design_editor: Any) -> None:
    """Register screen design routes.

    Args:
        app: aiohttp web application
        render_service: RenderService instance
        design_editor: DesignEditor instance
    """
    from aiohttp import web

    def bad_request(message: str) -> Any:
        return web.json_response({"error": message}, status=400)

    async def read_json(request: Any) -> Any:
        try:
            return await request.json()
        except ValueError:
            return None

    async def render(request: Any) -> Any:
        """Render a design to PNG."""
        design_id = request.match_info["design_id"]
        try:
            mode = render_mode_from_query(request.query)
            device_context = device_context_from_query(request.query)
        except ValueError as e:
            return bad_request(str(e))

        result = await render_service.render_design_result(design_id, device_context, mode)
        headers = {
            "X-Render-Width": str(result.width),
            "X-Render-Height": str(result.height),
            "X-Render-Scale": f"{result.scale:.4f}",
            "Cache-Control": "no-store",
        }
        return web.Response(body=result.data, content_type=PNG_CONTENT_TYPE, headers=headers)

    async def preview(request: Any) -> Any:
        """Render a preview thumbnail."""
        png = await render_service.render_preview_thumbnail(request.match_info["design_id"])
        return web.Response(body=png, content_type=PNG_CONTENT_TYPE)

    async def device_image(request: Any) -> Any:
        """Serve the cached device capture, capturing first if needed."""
        png = await render_service.get_device_image(request.match_info["design_id"])
        return web.Response(body=png, content_type=PNG_CONTENT_TYPE)

    async def capture(request: Any) -> Any:
        info = await render_service.capture(request.match_info["design_id"])
        return web.json_response(
            {"captureUrl": info.capture_url, "filename": info.filename, "size": info.size}, status=201
        )

    async def capture_with_drawing(request: Any) -> Any:
        """Capture with an optional multipart ``drawing`` PNG composited on top."""
        drawing: Optional[bytes] = None
        if request.content_type.startswith("multipart/"):
            form = await request.post()
            field = form.get("drawing")
            if isinstance(field, web.FileField):
                if field.content_type != PNG_CONTENT_TYPE:
                    return bad_request("Drawing must be a PNG image")
                drawing = field.file.read()

        info = await render_service.capture_with_drawing(request.match_info["design_id"], drawing)
        return web.json_response(
            {"captureUrl": info.capture_url, "filename": info.filename, "size": info.size}, status=201
        )

    async def upload_capture(request: Any) -> Any:
        """Store a capture that the editor dithered in the browser."""
        field = None
        if request.content_type.startswith("multipart/"):
            form = await request.post()
            field = form.get("image")
        if not isinstance(field, web.FileField):
            return bad_request('No file uploaded. Make sure to send file with field name "image"')
        if field.content_type != PNG_CONTENT_TYPE:
            return bad_request("Only PNG files are allowed")

        info = await render_service.upload_capture(request.match_info["design_id"], field.file.read())
        return web.json_response(
            {"captureUrl": info.capture_url, "filename": info.filename, "size": info.size}, status=201
        )

    async def get_drawing(request: Any) -> Any:
        info = await render_service.drawing_info(request.match_info["design_id"])
        return web.json_response(
            {
                "exists": info.exists,
                "url": info.url,
                "size": info.size,
                "updatedAt": info.updated_at.isoformat() if info.updated_at else None,
            }
        )

    async def delete_drawing(request: Any) -> Any:
        deleted = await render_service.delete_drawing(request.match_info["design_id"])
        body: dict[str, Any] = {"deleted": deleted}
        if not deleted:
            body["message"] = "No drawing to delete"
        return web.json_response(body)

    async def refresh_devices(request: Any) -> Any:
        count = await design_editor.refresh_devices(request.match_info["design_id"])
        return web.json_response({"devicesRefreshed": count})

    async def add_widget(request: Any) -> Any:
        data = await read_json(request)
        if not isinstance(data, dict):
            return bad_request("invalid json")
        try:
            count = await design_editor.add_widget(request.match_info["design_id"], data)
        except ValidationError as e:
            return bad_request(f"Invalid widget: {e.error_count()} error(s)")
        return web.json_response({"devicesRefreshed": count}, status=201)

    async def update_widget(request: Any) -> Any:
        data = await read_json(request)
        if not isinstance(data, dict):
            return bad_request("invalid json")
        try:
            count = await design_editor.update_widget(
                request.match_info["design_id"], request.match_info["widget_id"], data
            )
        except ValidationError as e:
            return bad_request(f"Invalid widget: {e.error_count()} error(s)")
        return web.json_response({"devicesRefreshed": count})

    async def remove_widget(request: Any) -> Any:
        count = await design_editor.remove_widget(
            request.match_info["design_id"], request.match_info["widget_id"]
        )
        return web.json_response({"devicesRefreshed": count})

    async def update_design(request: Any) -> Any:
        data = await read_json(request)
        if not isinstance(data, dict):
            return bad_request("invalid json")
        try:
            count = await design_editor.update_design(request.match_info["design_id"], data)
        except ValidationError as e:
            return bad_request(f"Invalid design: {e.error_count()} error(s)")
        return web.json_response({"devicesRefreshed": count})

    prefix = "/api/designs/{design_id}"
    app.router.add_get(f"{prefix}/render", render)
    app.router.add_get(f"{prefix}/preview", preview)
    app.router.add_get(f"{prefix}/device-image", device_image)
    app.router.add_post(f"{prefix}/capture", capture)
    app.router.add_post(f"{prefix}/capture-with-drawing", capture_with_drawing)
    app.router.add_post(f"{prefix}/upload-capture", upload_capture)
    app.router.add_get(f"{prefix}/drawing", get_drawing)
    app.router.add_delete(f"{prefix}/drawing", delete_drawing)
    app.router.add_post(f"{prefix}/refresh-devices", refresh_devices)
    app.router.add_put(prefix, update_design)
    app.router.add_post(f"{prefix}/widgets", add_widget)
    app.router.add_put(f"{prefix}/widgets/{{widget_id}}", update_widget)
    app.router.add_delete(f"{prefix}/widgets/{{widget_id}}", remove_widget)

    logger.debug("Registered screen design routes")
