"""Shared fixtures: synthetic MICR lines rendered from the built-in fonts."""

import cv2
import numpy as np
import pytest

from micrline.fonts import render_line
from micrline.models import ImageBuffer


def _line_image(text, height=80, font="e13b", **kwargs):
    gray, boxes = render_line(text, height=height, font=font, **kwargs)
    return gray, boxes


def _on_page(gray, page_h=400, page_w=None, top=None):
    """Paste a rendered line near the bottom of a larger white page."""
    h, w = gray.shape
    page_w = page_w or w + 100
    top = page_h - h - 20 if top is None else top
    page = np.full((page_h, page_w), 255, dtype=np.uint8)
    page[top: top + h, 50: 50 + w] = gray
    return page, (50, top)


@pytest.fixture
def line_image():
    """Factory: (gray image, ink boxes) for a MICR display string."""
    return _line_image


@pytest.fixture
def line_buffer():
    """Factory: (ImageBuffer, ink boxes) for a MICR display string."""

    def make(text, height=80, font="e13b", **kwargs):
        gray, boxes = _line_image(text, height, font, **kwargs)
        return ImageBuffer.from_array(gray), boxes

    return make


@pytest.fixture
def on_page():
    return _on_page


@pytest.fixture
def blank_image():
    return np.full((200, 600), 255, dtype=np.uint8)


@pytest.fixture
def square_image():
    img = np.full((300, 300), 255, dtype=np.uint8)
    cv2.rectangle(img, (60, 60), (240, 240), 0, -1)
    return img
