"""Unit tests for inkscreen.rendering.overlay module."""

import io

import pytest
from PIL import Image

from inkscreen.core.exceptions import ImageProcessingError
from inkscreen.rendering.overlay import DrawingStore

pytestmark = pytest.mark.unit


def _stroke_png(size=(10, 10)) -> bytes:
    drawing = Image.new("RGBA", size, (0, 0, 0, 0))
    drawing.putpixel((2, 3), (0, 0, 0, 255))
    buffer = io.BytesIO()
    drawing.save(buffer, format="PNG")
    return buffer.getvalue()


class TestDrawingStore:
    """Tests for DrawingStore."""

    def test_save_and_info(self, tmp_path):
        """Test a saved drawing reports its URL and size."""
        store = DrawingStore(tmp_path)
        data = _stroke_png()

        info = store.save(4, data)

        assert info.exists
        assert info.url == "/uploads/drawings/drawing_4.png"
        assert info.size == len(data)
        assert info.updated_at is not None
        assert (tmp_path / "drawings" / "drawing_4.png").is_file()
        assert [p.name for p in (tmp_path / "drawings").iterdir()] == ["drawing_4.png"]

    def test_info_when_missing(self, tmp_path):
        """Test a design without drawing reports exists=False."""
        info = DrawingStore(tmp_path).info(4)

        assert not info.exists
        assert info.url is None

    def test_save_rejects_non_png(self, tmp_path):
        """Test only PNG drawings are accepted."""
        buffer = io.BytesIO()
        Image.new("RGB", (4, 4)).save(buffer, format="GIF")
        store = DrawingStore(tmp_path)

        with pytest.raises(ImageProcessingError):
            store.save(1, buffer.getvalue())
        with pytest.raises(ImageProcessingError):
            store.save(1, b"garbage")
        assert not store.exists(1)

    def test_delete(self, tmp_path):
        """Test delete removes the drawing once."""
        store = DrawingStore(tmp_path)
        store.save(1, _stroke_png())

        assert store.delete(1) is True
        assert store.delete(1) is False


class TestComposite:
    """Tests for compositing drawings over renders."""

    def test_composite_without_drawing_returns_raster(self, tmp_path):
        """Test the raster is untouched when there is no drawing."""
        raster = Image.new("RGBA", (10, 10), (255, 255, 255, 255))

        assert DrawingStore(tmp_path).composite(raster, 1) is raster

    def test_composite_draws_strokes_over_raster(self, tmp_path):
        """Test opaque drawing pixels replace raster pixels, transparent ones keep them."""
        store = DrawingStore(tmp_path)
        store.save(1, _stroke_png())
        raster = Image.new("RGB", (10, 10), (255, 255, 255))

        result = store.composite(raster, 1)

        assert result.getpixel((2, 3))[:3] == (0, 0, 0)
        assert result.getpixel((5, 5))[:3] == (255, 255, 255)

    def test_composite_when_sizes_differ_then_anchored_top_left(self, tmp_path):
        """Test a smaller drawing is placed at the origin."""
        store = DrawingStore(tmp_path)
        store.save(1, _stroke_png((5, 5)))
        raster = Image.new("RGBA", (20, 10), (255, 255, 255, 255))

        result = store.composite(raster, 1)

        assert result.size == (20, 10)
        assert result.getpixel((2, 3))[:3] == (0, 0, 0)

    def test_composite_when_drawing_corrupt_then_skipped(self, tmp_path):
        """Test an unreadable drawing file does not fail the render."""
        store = DrawingStore(tmp_path)
        store.directory.mkdir(parents=True)
        store.path_for(1).write_bytes(b"not a png")
        raster = Image.new("RGBA", (10, 10), (255, 255, 255, 255))

        assert store.composite(raster, 1) is raster
