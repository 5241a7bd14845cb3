"""Health check route."""

from __future__ import annotations

import logging
import os
import time
from typing import Any

logger = logging.getLogger(__name__)


def register_health_routes(app: Any, browser_session: Any, lookup_cache: Any, time_provider: Any) -> None:
    """Register health routes.

    Args:
        app: aiohttp web application
        browser_session: BrowserSession whose state is reported
        lookup_cache: LookupCache whose stats are reported
        time_provider: Callable returning the current UTC datetime
    """
    from aiohttp import web

    started = time.monotonic()

    async def health_check(_request: Any) -> Any:
        """Health check endpoint for monitoring system status."""
        return web.json_response(
            {
                "status": "ok",
                "server_time_iso": time_provider().isoformat(),
                "server_status": {
                    "uptime_s": int(time.monotonic() - started),
                    "pid": os.getpid(),
                },
                "browser": {
                    "connected": browser_session.is_connected,
                    "launch_count": browser_session.launch_count,
                },
                "lookup_cache": lookup_cache.get_stats(),
            }
        )

    app.router.add_get("/api/health", health_check)
