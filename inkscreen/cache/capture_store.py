"""Per-design cache of the last device-mode capture."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel

from inkscreen.stores import write_bytes_atomic

logger = logging.getLogger(__name__)

DesignId = Union[int, str]


class CaptureInfo(BaseModel):
    """Where a capture was stored."""

    capture_url: str
    filename: str
    size: int


class CaptureStore:
    """Stores captures as ``<uploads>/captures/capture_{id}.png``.

    Any design mutation must call ``invalidate`` so a stale capture is never
    served to a device. Each invalidation bumps the design's generation; a
    save made against an older generation is dropped.
    """

    def __init__(self, uploads_dir: Path):
        self.uploads_dir = Path(uploads_dir)
        self.directory = self.uploads_dir / "captures"
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    @staticmethod
    def filename_for(design_id: DesignId) -> str:
        return f"capture_{design_id}.png"

    def path_for(self, design_id: DesignId) -> Path:
        return self.directory / self.filename_for(design_id)

    def url_for(self, design_id: DesignId) -> str:
        return f"/uploads/captures/{self.filename_for(design_id)}"

    def exists(self, design_id: DesignId) -> bool:
        return self.path_for(design_id).is_file()

    def generation(self, design_id: DesignId) -> int:
        """Number of invalidations seen for the design."""
        with self._lock:
            return self._generations.get(str(design_id), 0)

    def save(self, design_id: DesignId, data: bytes, generation: Optional[int] = None) -> Optional[CaptureInfo]:
        """Write capture bytes, replacing any previous capture.

        Args:
            design_id: Design identifier
            data: PNG bytes
            generation: Value of ``generation`` read before rendering; the
                write is skipped if the design was invalidated since

        Returns:
            CaptureInfo, or None when the capture was already stale
        """
        path = self.path_for(design_id)
        with self._lock:
            current = self._generations.get(str(design_id), 0)
            if generation is not None and generation != current:
                logger.debug(
                    "Dropping stale capture for screen design %s (generation %d, now %d)",
                    design_id,
                    generation,
                    current,
                )
                return None
            write_bytes_atomic(path, data)
        logger.debug("Saved capture for design %s (%d bytes)", design_id, len(data))
        return CaptureInfo(
            capture_url=self.url_for(design_id),
            filename=self.filename_for(design_id),
            size=len(data),
        )

    def load(self, design_id: DesignId) -> Optional[bytes]:
        """Return the cached capture, or None if there is none."""
        try:
            with self.path_for(design_id).open("rb") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def invalidate(self, design_id: DesignId) -> bool:
        """Delete the cached capture and bump the design's generation.

        Returns:
            True if a capture was deleted, False if none existed
        """
        with self._lock:
            key = str(design_id)
            self._generations[key] = self._generations.get(key, 0) + 1
            try:
                self.path_for(design_id).unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                logger.warning("Failed to invalidate capture for screen design %s: %s", design_id, e)
                return False

        logger.debug("Invalidated capture for screen design %s", design_id)
        return True
