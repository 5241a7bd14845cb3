"""Embedded web fonts for the headless renderer.

Fonts are inlined as base64 ``@font-face`` rules with ``font-display: block`` so
the browser never paints fallback glyphs before the real face has loaded.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FontFile:
    name: str
    weight: int
    family: str


FONT_FILES: tuple[FontFile, ...] = (
    FontFile("Inter-Regular", 400, "Inter"),
    FontFile("Inter-Medium", 500, "Inter"),
    FontFile("Inter-SemiBold", 600, "Inter"),
    FontFile("Inter-Bold", 700, "Inter"),
    FontFile("RobotoMono-Regular", 400, "Roboto Mono"),
    FontFile("RobotoMono-Medium", 500, "Roboto Mono"),
    FontFile("RobotoMono-Bold", 700, "Roboto Mono"),
    FontFile("Merriweather-Regular", 400, "Merriweather"),
    FontFile("Merriweather-Bold", 700, "Merriweather"),
)

GENERIC_FAMILY_MAP: dict[str, str] = {
    "sans-serif": "'Inter', sans-serif",
    "monospace": "'Roboto Mono', monospace",
    "serif": "'Merriweather', serif",
}


def map_font_family(font_family: str) -> str:
    """Map a generic CSS family onto the embedded font stack.

    Args:
        font_family: Family from widget config

    Returns:
        CSS font-family value
    """
    family = (font_family or "sans-serif").strip()
    if family in GENERIC_FAMILY_MAP:
        return GENERIC_FAMILY_MAP[family]
    return family if "," in family else f"{family}, sans-serif"


class FontLibrary:
    """Loads the woff2 files once and renders the ``<style>`` block."""

    def __init__(self, fonts_dir: Path):
        self.fonts_dir = Path(fonts_dir)
        self._faces: list[str] | None = None

    def load(self) -> int:
        """Read font files from disk.

        Missing files or a missing directory are logged and skipped; text then
        renders with the browser's fallback fonts.

        Returns:
            Number of font faces loaded
        """
        faces: list[str] = []
        if not self.fonts_dir.is_dir():
            logger.warning("Fonts directory not found: %s", self.fonts_dir)
            self._faces = faces
            return 0

        for font in FONT_FILES:
            font_path = self.fonts_dir / f"{font.name}.woff2"
            try:
                encoded = base64.b64encode(font_path.read_bytes()).decode("ascii")
            except FileNotFoundError:
                logger.warning("Font file not found: %s", font_path)
                continue
            faces.append(
                "@font-face {"
                f" font-family: '{font.family}'; font-style: normal; font-weight: {font.weight};"
                f" font-display: block; src: url(data:font/woff2;base64,{encoded}) format('woff2');"
                " }"
            )

        self._faces = faces
        logger.info("Loaded %d fonts for rendering", len(faces))
        return len(faces)

    @property
    def style_tag(self) -> str:
        if self._faces is None:
            self.load()
        if not self._faces:
            return ""
        return "<style>\n" + "\n".join(self._faces) + "\n</style>"
