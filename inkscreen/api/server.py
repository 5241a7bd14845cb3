"""aiohttp server for inkscreen.

Builds the dependency container, wires the routes and runs until SIGINT or
SIGTERM. The headless browser is launched lazily by the first render.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any, Optional

from aiohttp import web

from inkscreen.api.middleware import correlation_id_middleware, error_middleware
from inkscreen.api.routes import (
    register_design_routes,
    register_health_routes,
    register_image_routes,
)
from inkscreen.api.routes.images import MAX_UPLOAD_BYTES
from inkscreen.core.config_manager import RenderSettings, get_config_value
from inkscreen.core.dependencies import AppDependencies, DependencyContainer
from inkscreen.core.timezone_utils import now_utc

logger = logging.getLogger(__name__)

MAX_PORT_ATTEMPTS = 10


def create_app(deps: AppDependencies) -> web.Application:
    """Create the aiohttp application with all routes registered.

    Args:
        deps: Dependency container

    Returns:
        Configured web.Application
    """
    app = web.Application(
        middlewares=[correlation_id_middleware, error_middleware],
        client_max_size=MAX_UPLOAD_BYTES + 1024 * 1024,
    )
    app["deps"] = deps

    register_design_routes(app, deps.render_service, deps.design_editor)
    register_image_routes(app, deps.render_service, deps.settings.uploads_dir)
    register_health_routes(app, deps.browser_session, deps.lookup_cache, now_utc)

    uploads_dir = deps.settings.uploads_dir
    uploads_dir.mkdir(parents=True, exist_ok=True)
    app.router.add_static("/uploads/", uploads_dir)

    async def _shutdown(_app: web.Application) -> None:
        logger.info("Application shutdown requested")
        await deps.close()

    app.on_shutdown.append(_shutdown)
    return app


async def _start_site(runner: web.AppRunner, host: str, configured_port: int) -> int:
    """Bind the configured port, trying the next ones if it is in use.

    Returns:
        Port actually bound

    Raises:
        RuntimeError: If no port in the range is free
    """
    for port_offset in range(MAX_PORT_ATTEMPTS):
        port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, port)
                raise
            logger.debug("Port %d in use, trying next port", port)
            continue

        if port != configured_port:
            logger.warning("Configured port %d was in use, using port %d instead", configured_port, port)
        return port

    raise RuntimeError(
        f"No available port found in range {configured_port}-{configured_port + MAX_PORT_ATTEMPTS - 1}"
    )


async def _serve(config: Any, external_stop_event: Optional[asyncio.Event] = None) -> None:
    """Run the server until signalled to stop.

    Args:
        config: Configuration dict
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are NOT registered (caller owns signal handling).
    """
    settings = RenderSettings.from_config(config)
    deps = DependencyContainer.build_dependencies(settings)
    await asyncio.to_thread(deps.font_library.load)

    app = create_app(deps)
    runner = web.AppRunner(app)
    await runner.setup()

    host = get_config_value(config, "server_bind", settings.server_bind)
    port = await _start_site(runner, host, int(get_config_value(config, "server_port", settings.server_port)))
    logger.info("Server started successfully on %s:%d", host, port)

    stop_event = external_stop_event or asyncio.Event()
    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Args:
        config: dict with the keys understood by RenderSettings (server_bind,
            server_port, uploads_dir, data_dir, ...)

    Blocks until SIGINT/SIGTERM is received.
    """
    try:
        logger.debug("Running asyncio event loop for server")
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
