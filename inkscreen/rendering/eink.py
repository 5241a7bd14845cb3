"""E-ink processing: grayscale, contrast stretch, dithering, size fitting.

Everything here is pure and synchronous; callers run it in a worker thread.
The numeric constants (thresholds, snap bounds, diffusion weights, shrink
factors, attempt limits and the byte budget) are part of the output contract:
changing any of them changes the bytes a device receives.
"""

from __future__ import annotations

import io
import logging
import math
from array import array
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps

from inkscreen.core.exceptions import ImageProcessingError
from inkscreen.domain.models import RenderMode

logger = logging.getLogger(__name__)

DEVICE_MAX_BYTES = 90_000

# Pre-dither snap: strictly above/below these become pure white/black
SNAP_WHITE_ABOVE = 200
SNAP_BLACK_BELOW = 55

# Contrast stretch ignores this percentage of darkest and lightest pixels
NORMALIZE_CUTOFF_PERCENT = 1

BLACK = 0
WHITE = 255
_BILEVEL_PALETTE = [0, 0, 0, 255, 255, 255]


@dataclass(frozen=True)
class EinkProfile:
    """Call-site specific dithering and fitting constants."""

    name: str
    threshold: int
    scale_factor: float
    max_attempts: int
    max_bytes: int = DEVICE_MAX_BYTES
    snap: bool = True
    # Upload counts the first encode as attempt 1; screen captures count
    # only the shrink passes.
    count_first_pass: bool = False


SCREEN_PROFILE = EinkProfile(
    name="screen",
    threshold=140,  # biased toward white
    scale_factor=0.9,
    max_attempts=10,
)

UPLOAD_PROFILE = EinkProfile(
    name="upload",
    threshold=128,
    scale_factor=0.85,
    max_attempts=15,
    snap=False,
    count_first_pass=True,
)


@dataclass(frozen=True)
class EinkResult:
    """Encoded output plus what the fitting loop did to get there."""

    data: bytes
    width: int
    height: int
    attempts: int = 0
    scale: float = 1.0
    within_budget: bool = True

    @property
    def scaled(self) -> bool:
        return self.scale < 1.0


@dataclass(frozen=True)
class FitStep:
    """One pass of the fitting loop."""

    data: bytes
    width: int
    height: int
    scale: float
    attempt: int
    next_scale: float
    done: bool


def round_half_up(value: float) -> int:
    """Round halves toward +infinity (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def flatten_to_white(image: Image.Image) -> Image.Image:
    """Composite any transparency onto white and return an RGB image."""
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        return Image.alpha_composite(background, rgba).convert("RGB")
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def to_normalized_gray(image: Image.Image) -> Image.Image:
    """Single-channel grayscale with a percentile contrast stretch.

    A flat image is returned unchanged.
    """
    gray = image if image.mode == "L" else image.convert("L")
    return ImageOps.autocontrast(gray, cutoff=NORMALIZE_CUTOFF_PERCENT)


def _snap_table(snap: bool) -> list[float]:
    table = []
    for value in range(256):
        if snap and value > SNAP_WHITE_ABOVE:
            table.append(float(WHITE))
        elif snap and value < SNAP_BLACK_BELOW:
            table.append(float(BLACK))
        else:
            table.append(float(value))
    return table


def floyd_steinberg_dither(
    gray: bytes, width: int, height: int, threshold: int, snap: bool = True
) -> bytes:
    """Dither 8-bit grayscale to black/white with Floyd-Steinberg diffusion.

    Row-major scan, error weights 7/16 right, 3/16 below-left, 5/16 below,
    1/16 below-right. Working values are float32 so results are bit-for-bit
    reproducible across runs and platforms.

    Args:
        gray: width*height luminance bytes
        width: Image width
        height: Image height
        threshold: Values below become black, others white
        snap: Apply the pre-dither snap of near-white/near-black values

    Returns:
        width*height bytes, each 0 or 255
    """
    if len(gray) != width * height:
        raise ValueError(f"Expected {width * height} bytes, got {len(gray)}")

    table = _snap_table(snap)
    pixels = array("f", [table[v] for v in gray])
    output = bytearray(width * height)

    for y in range(height):
        row = y * width
        below = row + width
        has_below = y + 1 < height
        for x in range(width):
            idx = row + x
            old = pixels[idx]
            if old < threshold:
                error = old
            else:
                output[idx] = WHITE
                error = old - WHITE
            if not error:
                continue

            if x + 1 < width:
                pixels[idx + 1] += (error * 7) / 16
            if has_below:
                if x > 0:
                    pixels[below + x - 1] += (error * 3) / 16
                pixels[below + x] += (error * 5) / 16
                if x + 1 < width:
                    pixels[below + x + 1] += (error * 1) / 16

    return bytes(output)


def encode_bilevel_png(levels: bytes, width: int, height: int, invert: bool = False) -> bytes:
    """Encode 0/255 levels as a 1-bit, 2-colour palette PNG."""
    image = Image.frombytes("L", (width, height), levels)
    if invert:
        image = ImageOps.invert(image)

    indexed = image.point(lambda v: 1 if v >= 128 else 0)
    indexed.putpalette(_BILEVEL_PALETTE)

    buffer = io.BytesIO()
    indexed.save(buffer, format="PNG", optimize=True, bits=1)
    return buffer.getvalue()


def dither_pass(
    source: Image.Image, scale: float, profile: EinkProfile, invert: bool
) -> tuple[bytes, int, int]:
    """Resize, grayscale, normalize, dither and encode one candidate.

    Returns:
        (png_bytes, width, height)
    """
    width, height = source.size
    if scale < 1.0:
        width = max(1, round_half_up(source.width * scale))
        height = max(1, round_half_up(source.height * scale))
        source = source.resize((width, height), Image.Resampling.LANCZOS)

    gray = to_normalized_gray(source)
    levels = floyd_steinberg_dither(gray.tobytes(), width, height, profile.threshold, profile.snap)
    return encode_bilevel_png(levels, width, height, invert=invert), width, height


def fit_step(
    source: Image.Image, scale: float, attempt: int, profile: EinkProfile, invert: bool
) -> FitStep:
    """Encode ``source`` at ``scale`` and decide whether fitting is done.

    Args:
        source: Flattened full-size raster
        scale: Cumulative scale applied to the source
        attempt: Attempt number of this pass
        profile: Dithering and fitting constants
        invert: Invert the dithered output

    Returns:
        FitStep with the encoded bytes and the scale for the next pass
    """
    data, width, height = dither_pass(source, scale, profile, invert)
    done = len(data) <= profile.max_bytes or attempt >= profile.max_attempts
    return FitStep(
        data=data,
        width=width,
        height=height,
        scale=scale,
        attempt=attempt,
        next_scale=scale * profile.scale_factor,
        done=done,
    )


def fit_to_budget(source: Image.Image, profile: EinkProfile, invert: bool) -> EinkResult:
    """Run ``fit_step`` until the budget holds or attempts run out.

    The smallest candidate is returned when the budget cannot be met.
    """
    scale = 1.0
    attempt = 1 if profile.count_first_pass else 0
    best: Optional[FitStep] = None

    while True:
        step = fit_step(source, scale, attempt, profile, invert)
        if best is None or len(step.data) < len(best.data):
            best = step
        if step.done:
            break
        logger.debug(
            "E-ink output too large (%d bytes > %d), scaling to %.3f",
            len(step.data),
            profile.max_bytes,
            step.next_scale,
        )
        scale = step.next_scale
        attempt += 1

    within_budget = len(best.data) <= profile.max_bytes
    if not within_budget:
        logger.warning(
            "E-ink output still %d bytes after %d attempts (budget %d); using smallest result",
            len(best.data),
            step.attempt,
            profile.max_bytes,
        )
    elif best.scale < 1.0:
        logger.info(
            "E-ink output scaled to %dx%d (scale %.3f) to fit %d bytes",
            best.width,
            best.height,
            best.scale,
            profile.max_bytes,
        )

    return EinkResult(
        data=best.data,
        width=best.width,
        height=best.height,
        attempts=step.attempt,
        scale=best.scale,
        within_budget=within_budget,
    )


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def process(
    image: Image.Image, mode: RenderMode, profile: EinkProfile = SCREEN_PROFILE
) -> EinkResult:
    """Apply the e-ink pipeline for a render mode.

    PREVIEW returns the raster as PNG untouched. DEVICE and EINK_PREVIEW
    dither; only DEVICE inverts.

    Args:
        image: Composited scene raster
        mode: Render mode
        profile: Dithering and fitting constants

    Returns:
        EinkResult with the encoded bytes
    """
    if mode == RenderMode.PREVIEW:
        data = encode_png(image)
        return EinkResult(data=data, width=image.width, height=image.height)

    invert = mode == RenderMode.DEVICE
    result = fit_to_budget(flatten_to_white(image), profile, invert)
    logger.debug(
        "E-ink processing complete: %d bytes, %dx%d, invert=%s",
        len(result.data),
        result.width,
        result.height,
        invert,
    )
    return result


def process_upload(data: bytes) -> EinkResult:
    """Convert an uploaded image to a 1-bit PNG within the device budget.

    Raises:
        ImageProcessingError: If the bytes are not a decodable image
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            opened.load()
            source = flatten_to_white(opened)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"Failed to process image: {e}") from e

    return fit_to_budget(source, UPLOAD_PROFILE, invert=False)


def process_browser_capture(data: bytes) -> bytes:
    """Store-ready version of a capture that a browser already dithered.

    Transparency is flattened onto white and the image converted to
    grayscale. No inversion: the colours are already what the device shows.

    Raises:
        ImageProcessingError: If the bytes are not a PNG image
    """
    try:
        with Image.open(io.BytesIO(data)) as opened:
            if opened.format != "PNG":
                raise ImageProcessingError(f"Capture must be a PNG, got {opened.format}")
            opened.load()
            gray = flatten_to_white(opened).convert("L")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"Failed to process capture: {e}") from e

    buffer = io.BytesIO()
    gray.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


def make_thumbnail(png: bytes, max_width: int = 200) -> bytes:
    """Downscale a PNG to ``max_width`` keeping aspect ratio; never enlarges."""
    with Image.open(io.BytesIO(png)) as opened:
        opened.load()
        image = opened.copy()
    if image.width > max_width:
        height = max(1, round_half_up(image.height * max_width / image.width))
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)
    return encode_png(image)
