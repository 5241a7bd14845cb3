"""Command-line entry for inkscreen.

Examples:
  python -m inkscreen render design.json -o screen.png
  python -m inkscreen render 42 -o screen.png --mode einkPreview
  python -m inkscreen process-image photo.jpg -o photo.png
  python -m inkscreen serve --port 3000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import run_server

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the inkscreen CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="inkscreen",
        description="inkscreen - render screen designs for monochrome e-ink displays",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  inkscreen render design.json -o screen.png             # Device image (dithered, inverted)
  inkscreen render 42 -o screen.png --mode preview       # Design 42 from the data directory
  inkscreen render design.json -o s.png --battery 40     # With live device data
  inkscreen process-image photo.jpg -o photo.png         # 1-bit image for an image widget
  inkscreen serve --port 3000                            # HTTP API
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--env-file", type=Path, metavar="PATH", help="Read defaults from this .env file")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    render = subparsers.add_parser("render", help="Render a screen design to PNG")
    render.add_argument("design", help="Design JSON file, or a design id in the data directory")
    render.add_argument("-o", "--output", type=Path, required=True, help="Output PNG path")
    render.add_argument(
        "--mode",
        choices=["device", "preview", "einkPreview"],
        default="device",
        help="Render mode (default: device)",
    )
    render.add_argument("--battery", type=float, help="Device battery level, 0-100")
    render.add_argument("--wifi", type=int, help="Device wifi signal in dBm")
    render.add_argument("--device-name", help="Device name for device-info widgets")
    render.add_argument("--firmware-version", help="Firmware version for device-info widgets")
    render.add_argument("--mac-address", help="MAC address for device-info widgets")

    process = subparsers.add_parser("process-image", help="Convert an image to a 1-bit PNG within budget")
    process.add_argument("input", type=Path, help="Input image")
    process.add_argument("-o", "--output", type=Path, required=True, help="Output PNG path")

    serve = subparsers.add_parser("serve", help="Run the HTTP server")
    serve.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from INKSCREEN_SERVER_PORT)",
    )

    return parser


def _device_context(args: argparse.Namespace):  # type: ignore[no-untyped-def]
    from inkscreen.domain.models import DeviceContext

    values = {
        "battery": args.battery,
        "wifi": args.wifi,
        "device_name": args.device_name,
        "firmware_version": args.firmware_version,
        "mac_address": args.mac_address,
    }
    if all(value is None for value in values.values()):
        return None
    return DeviceContext(**values)


async def _render(args: argparse.Namespace, config: dict) -> int:
    from inkscreen.core.config_manager import RenderSettings
    from inkscreen.core.dependencies import DependencyContainer
    from inkscreen.domain.models import ScreenDesign
    from inkscreen.stores import InMemoryDesignStore

    settings = RenderSettings.from_config(config)
    design_path = Path(args.design)

    design_store = None
    design_id = args.design
    if design_path.suffix == ".json" or design_path.is_file():
        with design_path.open("r", encoding="utf-8") as fh:
            design = ScreenDesign.model_validate(json.load(fh))
        design_store = InMemoryDesignStore([design])
        design_id = design.id

    deps = DependencyContainer.build_dependencies(settings, design_store=design_store)
    try:
        await asyncio.to_thread(deps.font_library.load)
        result = await deps.render_service.render_design_result(design_id, _device_context(args), args.mode)
    finally:
        await deps.close()

    args.output.write_bytes(result.data)
    print(
        f"Wrote {args.output} ({len(result.data)} bytes, {result.width}x{result.height}"
        + (f", scaled {result.scale:.3f}" if result.scaled else "")
        + ")"
    )
    return 0


def _process_image(args: argparse.Namespace) -> int:
    from inkscreen.rendering.eink import process_upload

    result = process_upload(args.input.read_bytes())
    args.output.write_bytes(result.data)
    print(
        f"Wrote {args.output} ({len(result.data)} bytes, {result.width}x{result.height},"
        f" {result.attempts} attempt(s))"
    )
    return 0 if result.within_budget else 2


def main(argv: Optional[list[str]] = None) -> int:
    """Run the inkscreen CLI.

    Returns:
        Process exit code: 0 on success, 1 on error, 2 when an image could not
        be brought under the byte budget
    """
    from inkscreen.core.config_manager import ConfigManager
    from inkscreen.core.exceptions import InkscreenError
    from inkscreen.core.render_logging import configure_logging

    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        run_server(args)
        return 0

    configure_logging(debug_mode=args.debug)
    config = ConfigManager(args.env_file).load_full_config()

    try:
        if args.command == "render":
            return asyncio.run(_render(args, config))
        return _process_image(args)
    except InkscreenError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
