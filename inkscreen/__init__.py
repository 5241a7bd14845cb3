"""inkscreen - screen design renderer for monochrome e-ink displays.

Turns a declarative screen design (a canvas of positioned widgets) into a
1-bit image that fits the device byte budget. Imports are kept light so the
package can be inspected without launching a browser or opening sockets.
"""

__version__ = "0.1.0"

from typing import Optional


def run_server(args: Optional[object] = None) -> None:
    """Start the inkscreen HTTP server.

    Args:
        args: Optional argparse namespace; ``port`` overrides the configured port
            and ``env_file`` names the .env file to read
    """
    from inkscreen.api.server import start_server
    from inkscreen.core.config_manager import ConfigManager
    from inkscreen.core.render_logging import configure_logging

    config = ConfigManager(getattr(args, "env_file", None)).load_full_config()
    port = getattr(args, "port", None)
    if port:
        config["server_port"] = int(port)

    configure_logging(debug_mode=bool(getattr(args, "debug", False)))
    start_server(config)


__all__ = ["__version__", "run_server"]
