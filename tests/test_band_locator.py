"""Tests for MICR band location."""

import cv2
import numpy as np
import pytest

from micrline.models import ImageBuffer, PixelFormat, Region
from micrline.preprocessing.band_locator import BandLocator


class TestBandLocator:
    def test_finds_line_on_page(self, line_image, on_page):
        gray, boxes = line_image("⑆267084131⑆ 790319013⑈1024")
        page, (dx, dy) = on_page(gray)
        bands = BandLocator().locate(ImageBuffer.from_array(page))
        assert bands
        band = bands[0]
        for box in boxes:
            shifted = Region(box.x + dx, box.y + dy, box.w, box.h)
            assert band.contains(shifted)

    def test_regions_inside_image(self, line_image, on_page):
        gray, _ = line_image("123456789")
        page, _ = on_page(gray, top=0)
        h, w = page.shape
        for band in BandLocator().locate(ImageBuffer.from_array(page)):
            assert Region(0, 0, w, h).contains(band)

    @pytest.mark.parametrize("accuracy", ["low", "medium", "high"])
    def test_all_accuracies(self, line_image, on_page, accuracy):
        gray, _ = line_image("123456789")
        page, _ = on_page(gray)
        assert BandLocator(accuracy=accuracy).locate(ImageBuffer.from_array(page))

    def test_blank_image(self, blank_image):
        assert BandLocator().locate(ImageBuffer.from_array(blank_image)) == []

    def test_solid_block_is_not_a_band(self, square_image):
        assert BandLocator().locate(ImageBuffer.from_array(square_image)) == []

    def test_thin_rule_is_not_a_band(self):
        img = np.full((200, 600), 255, dtype=np.uint8)
        cv2.line(img, (20, 100), (580, 100), 0, 2)
        assert BandLocator().locate(ImageBuffer.from_array(img)) == []

    def test_roi_restricts_search(self, line_image, on_page):
        gray, _ = line_image("123456789")
        page, (dx, dy) = on_page(gray)
        buf = ImageBuffer.from_array(page)
        assert BandLocator().locate(buf, Region(0, 0, page.shape[1], dy - 10)) == []
        roi = Region(0, dy - 10, page.shape[1], gray.shape[0] + 10)
        bands = BandLocator().locate(buf, roi)
        assert bands and all(roi.contains(b) for b in bands)

    def test_roi_outside_image(self, line_image):
        gray, _ = line_image("123")
        assert BandLocator().locate(ImageBuffer.from_array(gray), Region(5000, 5000, 10, 10)) == []

    def test_lower_band_first_on_tie(self, line_image):
        gray, _ = line_image("123456789")
        h, w = gray.shape
        page = np.full((2 * h + 40, w), 255, dtype=np.uint8)
        page[:h] = gray
        page[h + 40:] = gray
        bands = BandLocator().locate(ImageBuffer.from_array(page))
        assert len(bands) == 2
        assert bands[0].y > bands[1].y

    def test_max_bands(self, line_image):
        gray, _ = line_image("123456789")
        page = np.vstack([gray] * 3)
        assert len(BandLocator(max_bands=1).locate(ImageBuffer.from_array(page))) == 1

    def test_camera_frame(self, line_image, on_page):
        gray, _ = line_image("123456789")
        page, _ = on_page(gray)
        h, w = page.shape
        chroma = np.full(((h + 1) // 2) * ((w + 1) // 2) * 2, 128, dtype=np.uint8)
        data = np.concatenate([page.reshape(-1), chroma]).tobytes()
        buf = ImageBuffer.from_bytes(data, w, h, PixelFormat.NV12)
        assert BandLocator().locate(buf)

    def test_scored_confidences_descending(self, line_image, on_page):
        gray, _ = line_image("123456789")
        page, _ = on_page(gray)
        scored = BandLocator().locate_scored(ImageBuffer.from_array(page))
        confidences = [c for _, c in scored]
        assert confidences == sorted(confidences, reverse=True)
        assert all(0.0 <= c <= 1.0 for c in confidences)
