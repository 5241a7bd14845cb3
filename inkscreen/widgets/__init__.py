"""Widget content generators.

Importing this package registers a generator for every known widget kind.
"""

from . import custom, github, image, qrcode, shapes, system, time_widgets, weather  # noqa: F401
from .base import GeneratorContext, generate_fragment, registered_kinds

__all__ = ["GeneratorContext", "generate_fragment", "registered_kinds"]
