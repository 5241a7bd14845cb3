"""Request middlewares: correlation IDs and error mapping.

Every render request gets an ID that is stored in a context variable, added
to log records by ``CorrelationIdFilter``, forwarded on outbound widget
fetches and echoed back in the ``X-Request-ID`` response header.
"""

import logging
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any

from aiohttp import web

from inkscreen.core.exceptions import CaptureError, ImageProcessingError, InkscreenError, NotFoundError

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@web.middleware
async def correlation_id_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    """Extract or generate correlation ID for request tracking.

    Priority: X-Request-ID, then X-Correlation-ID, else a new UUID.

    Args:
        request: aiohttp request object
        handler: Next handler in middleware chain

    Returns:
        Response with correlation ID added to headers
    """
    correlation_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid.uuid4())
    )

    token = request_id_var.set(correlation_id)
    request["correlation_id"] = correlation_id
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers["X-Request-ID"] = correlation_id
        raise
    finally:
        request_id_var.reset(token)

    response.headers["X-Request-ID"] = correlation_id
    return response


def get_request_id() -> str:
    """Get current request correlation ID from context.

    Returns:
        Current request correlation ID, or "no-request-id" if not set
    """
    request_id = request_id_var.get()
    return request_id if request_id else "no-request-id"


def _error_status(error: InkscreenError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ImageProcessingError):
        return 400
    if isinstance(error, CaptureError):
        return 502
    return 500


@web.middleware
async def error_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    """Map inkscreen errors onto JSON error responses.

    NotFoundError -> 404, ImageProcessingError -> 400, CaptureError -> 502.
    Anything else is logged with its traceback and answered with 500.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except InkscreenError as e:
        status = _error_status(e)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, e)
        else:
            logger.info("%s %s rejected (%d): %s", request.method, request.path, status, e)
        return web.json_response({"error": str(e)}, status=status)
    except Exception:
        logger.exception("Unhandled error in %s %s", request.method, request.path)
        return web.json_response({"error": "Internal server error"}, status=500)
