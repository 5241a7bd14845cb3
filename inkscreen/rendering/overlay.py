"""Free-hand drawing overlays stored per design and composited over renders."""

from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from PIL import Image
from pydantic import BaseModel

from inkscreen.core.exceptions import ImageProcessingError
from inkscreen.stores import write_bytes_atomic

logger = logging.getLogger(__name__)

DesignId = Union[int, str]


class DrawingInfo(BaseModel):
    exists: bool
    url: Optional[str] = None
    size: Optional[int] = None
    updated_at: Optional[datetime] = None


class DrawingStore:
    """Stores overlays as ``<uploads>/drawings/drawing_{id}.png``.

    A drawing is a transparent PNG at design size. Existence is checked on
    every composite, so adding or deleting a drawing takes effect on the next
    render without any cache to flush.
    """

    def __init__(self, uploads_dir: Path):
        self.uploads_dir = Path(uploads_dir)
        self.directory = self.uploads_dir / "drawings"

    @staticmethod
    def filename_for(design_id: DesignId) -> str:
        return f"drawing_{design_id}.png"

    def path_for(self, design_id: DesignId) -> Path:
        return self.directory / self.filename_for(design_id)

    def url_for(self, design_id: DesignId) -> str:
        return f"/uploads/drawings/{self.filename_for(design_id)}"

    def exists(self, design_id: DesignId) -> bool:
        return self.path_for(design_id).is_file()

    def load(self, design_id: DesignId) -> Optional[bytes]:
        try:
            with self.path_for(design_id).open("rb") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def save(self, design_id: DesignId, data: bytes) -> DrawingInfo:
        """Validate and store a drawing, replacing any previous one.

        Raises:
            ImageProcessingError: If the data is not a PNG image
        """
        try:
            with Image.open(io.BytesIO(data)) as drawing:
                if drawing.format != "PNG":
                    raise ImageProcessingError(f"Drawing must be a PNG, got {drawing.format}")
                drawing.verify()
        except (OSError, ValueError) as e:
            raise ImageProcessingError(f"Invalid drawing image: {e}") from e

        write_bytes_atomic(self.path_for(design_id), data)
        logger.info("Saved drawing for screen design %s (%d bytes)", design_id, len(data))
        return self.info(design_id)

    def delete(self, design_id: DesignId) -> bool:
        """Delete the drawing. Returns False when there was none."""
        try:
            self.path_for(design_id).unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted drawing for screen design %s", design_id)
        return True

    def info(self, design_id: DesignId) -> DrawingInfo:
        try:
            stat = self.path_for(design_id).stat()
        except FileNotFoundError:
            return DrawingInfo(exists=False)
        return DrawingInfo(
            exists=True,
            url=self.url_for(design_id),
            size=stat.st_size,
            updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def composite(self, raster: Image.Image, design_id: DesignId) -> Image.Image:
        """Alpha-composite the design's drawing at (0, 0), if it has one.

        A drawing that cannot be decoded is skipped with a warning; the
        render goes ahead without it.
        """
        data = self.load(design_id)
        if data is None:
            return raster

        try:
            with Image.open(io.BytesIO(data)) as opened:
                drawing = opened.convert("RGBA")
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable drawing for screen design %s: %s", design_id, e)
            return raster

        base = raster if raster.mode == "RGBA" else raster.convert("RGBA")
        if drawing.size != base.size:
            layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
            layer.paste(drawing, (0, 0))
            drawing = layer

        logger.debug("Compositing drawing overlay for screen design %s", design_id)
        return Image.alpha_composite(base, drawing)
