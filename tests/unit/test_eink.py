"""Unit tests for inkscreen.rendering.eink module."""

import io
import random

import pytest
from PIL import Image

from inkscreen.core.exceptions import ImageProcessingError
from inkscreen.domain.models import RenderMode
from inkscreen.rendering import eink
from inkscreen.rendering.eink import EinkProfile

pytestmark = pytest.mark.unit


def _noise(size: int = 64, seed: int = 0) -> Image.Image:
    rng = random.Random(seed)
    data = bytes(rng.randrange(256) for _ in range(size * size))
    return Image.frombytes("L", (size, size), data).convert("RGB")


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


class TestRoundHalfUp:
    """Tests for round_half_up."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(2.5, 3), (-2.5, -2), (0.49, 0), (21.5, 22), (-0.5, 0)],
    )
    def test_round_half_up_rounds_halves_toward_positive_infinity(self, value, expected):
        """Test halves round up and other values round to nearest."""
        assert eink.round_half_up(value) == expected


class TestFloydSteinbergDither:
    """Tests for the error diffusion ditherer."""

    def test_dither_when_white_then_stays_white(self):
        """Test a white image produces only white pixels."""
        levels = eink.floyd_steinberg_dither(bytes([255] * 16), 4, 4, threshold=140)

        assert set(levels) == {255}

    def test_dither_when_mid_gray_then_mixes_black_and_white(self):
        """Test mid gray diffuses into a mix of both levels."""
        levels = eink.floyd_steinberg_dither(bytes([128] * 64), 8, 8, threshold=128, snap=False)

        assert set(levels) == {0, 255}
        # Roughly half of the pixels end up white
        assert 20 <= levels.count(255) <= 44

    def test_dither_when_snap_enabled_then_near_white_becomes_white(self):
        """Test values above 200 snap to white before dithering."""
        snapped = eink.floyd_steinberg_dither(bytes([201] * 16), 4, 4, threshold=140, snap=True)
        unsnapped = eink.floyd_steinberg_dither(bytes([201] * 16), 4, 4, threshold=255, snap=False)

        assert set(snapped) == {255}
        assert 0 in unsnapped

    def test_dither_when_snap_enabled_then_boundary_values_are_not_snapped(self):
        """Test 200 and 55 themselves are dithered, not snapped."""
        table = eink._snap_table(True)

        assert table[200] == 200.0
        assert table[201] == 255.0
        assert table[55] == 55.0
        assert table[54] == 0.0

    def test_dither_when_size_mismatch_then_raises(self):
        """Test byte count must match the dimensions."""
        with pytest.raises(ValueError, match="Expected 16 bytes"):
            eink.floyd_steinberg_dither(bytes(10), 4, 4, threshold=128)

    def test_dither_is_deterministic(self):
        """Test the same input always yields the same bytes."""
        gray = _noise(32).convert("L").tobytes()

        first = eink.floyd_steinberg_dither(gray, 32, 32, threshold=140)
        second = eink.floyd_steinberg_dither(gray, 32, 32, threshold=140)

        assert first == second


class TestProcess:
    """Tests for the render mode branches of process()."""

    def test_process_when_no_widgets_in_device_mode_then_all_black(self):
        """Test a blank white canvas comes out fully inverted."""
        canvas = Image.new("RGBA", (100, 50), (255, 255, 255, 255))

        result = eink.process(canvas, RenderMode.DEVICE)
        image = _open(result.data)

        assert image.format == "PNG"
        assert image.size == (100, 50)
        assert image.convert("L").getextrema() == (0, 0)

    def test_process_when_preview_then_returns_raw_png(self):
        """Test preview mode keeps colours and skips dithering."""
        canvas = Image.new("RGB", (20, 10), (200, 30, 30))

        result = eink.process(canvas, RenderMode.PREVIEW)
        image = _open(result.data)

        assert image.convert("RGB").getpixel((5, 5)) == (200, 30, 30)
        assert result.attempts == 0

    def test_process_when_device_then_inverse_of_eink_preview(self):
        """Test DEVICE output is EINK_PREVIEW with every pixel inverted."""
        source = _noise(48)

        device = _open(eink.process(source, RenderMode.DEVICE).data).convert("L")
        preview = _open(eink.process(source, RenderMode.EINK_PREVIEW).data).convert("L")

        assert device.size == preview.size
        assert [255 - v for v in preview.getdata()] == list(device.getdata())

    def test_process_when_dithered_then_bilevel_palette_png(self):
        """Test dithered output is a two-colour palette image."""
        result = eink.process(_noise(32), RenderMode.EINK_PREVIEW)
        image = _open(result.data)

        assert image.mode in ("P", "1")
        assert set(image.convert("L").getdata()) <= {0, 255}

    def test_process_is_byte_identical_across_runs(self):
        """Test identical input yields identical bytes."""
        source = _noise(40, seed=7)

        assert eink.process(source, RenderMode.DEVICE).data == eink.process(source, RenderMode.DEVICE).data

    def test_process_when_transparent_then_flattened_onto_white(self):
        """Test fully transparent pixels count as white."""
        canvas = Image.new("RGBA", (10, 10), (0, 0, 0, 0))

        result = eink.process(canvas, RenderMode.EINK_PREVIEW)

        assert _open(result.data).convert("L").getextrema() == (255, 255)


class TestFitToBudget:
    """Tests for the size fitting loop."""

    def test_fit_when_within_budget_then_single_pass(self):
        """Test a small image is encoded once at full scale."""
        result = eink.fit_to_budget(_noise(16), eink.SCREEN_PROFILE, invert=False)

        assert result.within_budget
        assert result.attempts == 0
        assert result.scale == 1.0
        assert (result.width, result.height) == (16, 16)

    def test_fit_when_budget_unreachable_then_stops_at_max_attempts(self):
        """Test the loop gives up after max_attempts and returns the smallest candidate."""
        profile = EinkProfile(name="tiny", threshold=128, scale_factor=0.5, max_attempts=3, max_bytes=10)

        result = eink.fit_to_budget(_noise(64), profile, invert=False)

        assert not result.within_budget
        assert result.attempts == 3
        assert result.width < 64
        assert result.scaled

    def test_fit_when_shrinking_helps_then_stops_once_within_budget(self):
        """Test the loop stops at the first candidate under the budget."""
        full = eink.fit_to_budget(_noise(64), eink.SCREEN_PROFILE, invert=False)
        profile = EinkProfile(
            name="half", threshold=140, scale_factor=0.5, max_attempts=10, max_bytes=len(full.data) - 1
        )

        result = eink.fit_to_budget(_noise(64), profile, invert=False)

        assert result.within_budget
        assert len(result.data) <= profile.max_bytes
        assert result.scale < 1.0

    def test_fit_when_upload_profile_then_first_pass_counts(self):
        """Test the upload profile numbers its first encode as attempt 1."""
        result = eink.fit_to_budget(_noise(16), eink.UPLOAD_PROFILE, invert=False)

        assert result.attempts == 1


class TestProcessUpload:
    """Tests for process_upload."""

    def test_process_upload_when_png_then_bilevel_not_inverted(self, make_png):
        """Test an uploaded white image stays white."""
        result = eink.process_upload(make_png((30, 20), (255, 255, 255)))

        image = _open(result.data)
        assert image.size == (30, 20)
        assert image.convert("L").getextrema() == (255, 255)
        assert result.within_budget

    def test_process_upload_when_not_an_image_then_raises(self):
        """Test undecodable bytes raise ImageProcessingError."""
        with pytest.raises(ImageProcessingError):
            eink.process_upload(b"definitely not an image")


class TestProcessBrowserCapture:
    """Tests for process_browser_capture."""

    def test_process_browser_capture_when_png_then_grayscale(self, make_png):
        """Test a transparent PNG is flattened onto white and stored as grayscale."""
        data = eink.process_browser_capture(make_png((8, 8), (0, 0, 0, 0), mode="RGBA"))

        image = _open(data)
        assert image.mode == "L"
        assert image.getextrema() == (255, 255)

    def test_process_browser_capture_when_black_then_not_inverted(self, make_png):
        """Test colours are stored as sent."""
        image = _open(eink.process_browser_capture(make_png((8, 8), (0, 0, 0))))

        assert image.getextrema() == (0, 0)

    def test_process_browser_capture_when_jpeg_then_raises(self):
        """Test only PNG captures are accepted."""
        buffer = io.BytesIO()
        Image.new("RGB", (8, 8), (10, 10, 10)).save(buffer, format="JPEG")

        with pytest.raises(ImageProcessingError, match="PNG"):
            eink.process_browser_capture(buffer.getvalue())


class TestMakeThumbnail:
    """Tests for make_thumbnail."""

    def test_make_thumbnail_when_wide_then_scaled_to_max_width(self, make_png):
        """Test wide images shrink to 200 px keeping aspect ratio."""
        thumb = _open(eink.make_thumbnail(make_png((400, 100), (0, 0, 0))))

        assert thumb.size == (200, 50)

    def test_make_thumbnail_when_narrow_then_unchanged(self, make_png):
        """Test narrow images are never enlarged."""
        thumb = _open(eink.make_thumbnail(make_png((120, 60), (0, 0, 0))))

        assert thumb.size == (120, 60)
