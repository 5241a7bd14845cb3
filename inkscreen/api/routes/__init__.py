"""Route modules for the inkscreen server."""

from .designs import register_design_routes
from .health import register_health_routes
from .images import register_image_routes

__all__ = [
    "register_design_routes",
    "register_health_routes",
    "register_image_routes",
]
