"""Tests for image buffers, regions and recognized lines."""

import numpy as np
import pytest

from micrline.errors import ImageError
from micrline.models import (
    ClassificationCandidate,
    Glyph,
    ImageBuffer,
    PixelFormat,
    RecognizedLine,
    Region,
    display_char,
)


class TestImageBuffer:
    def test_from_array_gray(self):
        arr = np.full((10, 20), 200, dtype=np.uint8)
        buf = ImageBuffer.from_array(arr)
        assert buf.pixel_format == PixelFormat.Y
        assert (buf.width, buf.height, buf.stride) == (20, 10, 20)
        assert buf.gray().shape == (10, 20)

    def test_from_array_copies_storage(self):
        arr = np.full((10, 20), 200, dtype=np.uint8)
        buf = ImageBuffer.from_array(arr)
        arr[:] = 0
        assert buf.gray().min() == 200

    def test_from_array_bgr_and_bgra(self):
        bgr = np.zeros((8, 8, 3), dtype=np.uint8)
        bgra = np.zeros((8, 8, 4), dtype=np.uint8)
        assert ImageBuffer.from_array(bgr).pixel_format == PixelFormat.BGR24
        assert ImageBuffer.from_array(bgra).pixel_format == PixelFormat.BGRA32

    def test_rgb_luminance(self):
        rgb = np.zeros((4, 4, 3), dtype=np.uint8)
        rgb[..., 0] = 255  # pure red
        gray_rgb = ImageBuffer.from_array(rgb, PixelFormat.RGB24).gray()
        gray_bgr = ImageBuffer.from_array(rgb, PixelFormat.BGR24).gray()
        # red weighs more than blue in luminance
        assert gray_rgb[0, 0] > gray_bgr[0, 0]

    def test_nv12_uses_y_plane(self):
        w, h = 6, 4
        y_plane = np.arange(w * h, dtype=np.uint8)
        chroma = np.full(PixelFormat.NV12.chroma_size(w, h), 128, dtype=np.uint8)
        buf = ImageBuffer.from_bytes(
            np.concatenate([y_plane, chroma]).tobytes(), w, h, PixelFormat.NV12
        )
        assert np.array_equal(buf.gray(), y_plane.reshape(h, w))

    def test_padded_stride(self):
        w, h, stride = 5, 3, 8
        rows = np.zeros((h, stride), dtype=np.uint8)
        rows[:, :w] = 100
        rows[:, w:] = 7  # padding bytes must be ignored
        buf = ImageBuffer.from_bytes(rows.tobytes(), w, h, PixelFormat.Y, stride=stride)
        assert buf.gray().shape == (h, w)
        assert np.all(buf.gray() == 100)

    def test_zero_dimensions_rejected(self):
        with pytest.raises(ImageError):
            ImageBuffer(0, 10, PixelFormat.Y, np.zeros(10, dtype=np.uint8))

    def test_small_stride_rejected(self):
        with pytest.raises(ImageError):
            ImageBuffer.from_bytes(bytes(300), 10, 10, PixelFormat.RGB24, stride=20)

    def test_short_storage_rejected(self):
        with pytest.raises(ImageError):
            ImageBuffer.from_bytes(bytes(99), 10, 10, PixelFormat.Y)

    def test_missing_chroma_rejected(self):
        with pytest.raises(ImageError):
            ImageBuffer.from_bytes(bytes(100), 10, 10, PixelFormat.YUV420P)

    def test_wrong_dtype_rejected(self):
        with pytest.raises(ImageError):
            ImageBuffer.from_array(np.zeros((4, 4), dtype=np.float32))

    def test_image_error_is_value_error(self):
        with pytest.raises(ValueError):
            ImageBuffer.from_array(np.zeros((0, 0), dtype=np.uint8))


class TestRegion:
    def test_contains(self):
        outer = Region(0, 0, 100, 50)
        assert outer.contains(Region(10, 10, 20, 20))
        assert not outer.contains(Region(90, 10, 20, 20))

    def test_clip(self):
        assert Region(-10, -5, 50, 50).clip(30, 30) == Region(0, 0, 30, 30)
        assert Region(40, 40, 10, 10).clip(30, 30) is None

    def test_to_dict(self):
        assert Region(1, 2, 3, 4).to_dict() == {"x": 1, "y": 2, "w": 3, "h": 4}


class TestRecognizedLine:
    def test_text_uses_display_characters(self):
        line = RecognizedLine(
            symbols=["transit", "1", "?", "on_us"],
            glyph_confidences=[0.9, 0.8, 0.0, 0.7],
            confidence=0.6,
            region=Region(0, 0, 10, 10),
        )
        assert line.text == "⑆1?⑈"
        assert line.placeholder_count == 1

    def test_display_char(self):
        assert display_char("amount") == "⑇"
        assert display_char("dash") == "⑉"
        assert display_char("S3") == "C"
        assert display_char("7") == "7"

    def test_glyph_best(self):
        glyph = Glyph(region=Region(0, 0, 1, 1), index=0, image=np.zeros((1, 1), np.uint8))
        assert glyph.best is None
        glyph.candidates = [ClassificationCandidate("3", 0.9), ClassificationCandidate("8", 0.5)]
        assert glyph.best.symbol == "3"
