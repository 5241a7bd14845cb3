"""Image loading for widgets.

Every image a widget shows is turned into an inline ``data:`` URL before the
scene reaches the browser, so a capture never waits on the network. Images are
flattened onto white, converted to grayscale and contrast-stretched on the way.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from pathlib import Path

from PIL import Image

from inkscreen.core.exceptions import ImageLoadError
from inkscreen.core.http_client import ExternalFetcher, FetchError
from inkscreen.rendering.eink import encode_png, flatten_to_white, to_normalized_gray

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"


def normalize_image_bytes(data: bytes) -> bytes:
    """Flatten, grayscale and contrast-stretch an image; return PNG bytes.

    Raises:
        ImageLoadError: If the bytes are not a decodable image
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            flattened = flatten_to_white(opened)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageLoadError(f"Cannot decode image: {e}") from e
    return encode_png(to_normalized_gray(flattened))


def png_data_url(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


class ImageLoader:
    """Loads local uploads and remote images as normalized data URLs."""

    def __init__(self, uploads_dir: Path, fetcher: ExternalFetcher):
        self.uploads_dir = Path(uploads_dir)
        self.fetcher = fetcher

    def resolve_local(self, url: str) -> Path:
        """Map a ``/uploads/...`` URL onto a file inside the uploads directory.

        Raises:
            ImageLoadError: If the path escapes the uploads directory
        """
        relative = url[len(UPLOADS_PREFIX):].split("?", 1)[0]
        root = self.uploads_dir.resolve()
        path = (root / relative).resolve()
        if root != path and root not in path.parents:
            raise ImageLoadError(f"Image path outside uploads: {url}", not_found=True)
        return path

    async def load_bytes(self, url: str) -> bytes:
        """Read the raw bytes behind an image URL.

        Raises:
            ImageLoadError: If the file is missing or the fetch fails
        """
        if url.startswith(UPLOADS_PREFIX):
            path = self.resolve_local(url)
            try:
                return await asyncio.to_thread(path.read_bytes)
            except FileNotFoundError as e:
                raise ImageLoadError(f"Image not found: {url}", not_found=True) from e
            except OSError as e:
                raise ImageLoadError(f"Cannot read image {url}: {e}") from e

        if url.startswith(("http://", "https://")):
            try:
                return await self.fetcher.get_bytes(url)
            except FetchError as e:
                raise ImageLoadError(f"Cannot fetch image {url}: {e}") from e

        raise ImageLoadError(f"Unsupported image URL: {url[:80]}")

    async def to_data_url(self, url: str) -> str:
        """Load and normalize an image into an inline data URL.

        Existing data URLs are passed through untouched.

        Raises:
            ImageLoadError: If the image cannot be loaded or decoded
        """
        url = (url or "").strip()
        if not url:
            raise ImageLoadError("No image URL")
        if url.startswith("data:"):
            return url

        data = await self.load_bytes(url)
        png = await asyncio.to_thread(normalize_image_bytes, data)
        logger.debug("Normalized image %s (%d -> %d bytes)", url[:80], len(data), len(png))
        return png_data_url(png)
