"""Tests for the reference font renderers."""

import numpy as np
import pytest

from micrline.fonts import parse_symbols, render_alphabet, render_glyph, render_line
from micrline.models import CMC7_ALPHABET, E13B_ALPHABET


class TestRenderGlyph:
    def test_every_symbol_has_ink(self):
        for font, alphabet in (("e13b", E13B_ALPHABET), ("cmc7", CMC7_ALPHABET)):
            glyphs = render_alphabet(font)
            assert set(glyphs) == set(alphabet)
            for symbol, glyph in glyphs.items():
                assert glyph.dtype == np.uint8
                assert np.any(glyph), f"{font} {symbol} rendered empty"

    def test_scales_with_height(self):
        small = render_glyph("8", 20)
        large = render_glyph("8", 160)
        assert large.shape[0] > 4 * small.shape[0] - 8

    def test_unknown_symbol(self):
        with pytest.raises(ValueError):
            render_glyph("S1", font="e13b")

    def test_cmc7_has_seven_strokes(self):
        glyph = render_glyph("0", 80, "cmc7")
        cols = np.count_nonzero(glyph, axis=0) > 0
        starts = np.sum(cols[1:] & ~cols[:-1]) + int(cols[0])
        assert starts == 7


class TestParseSymbols:
    def test_display_string(self):
        assert parse_symbols("⑆12⑆ 3⑈") == ["transit", "1", "2", "transit", " ", "3", "on_us"]

    def test_amount_and_dash(self):
        assert parse_symbols("⑇0⑇⑉") == ["amount", "0", "amount", "dash"]

    def test_cmc7_specials(self):
        assert parse_symbols("A1E", font="cmc7") == ["S1", "1", "S5"]

    def test_foreign_character(self):
        with pytest.raises(ValueError):
            parse_symbols("12x")


class TestRenderLine:
    def test_boxes_left_to_right(self):
        gray, boxes = render_line("123456789")
        assert len(boxes) == 9
        assert all(a.right < b.x for a, b in zip(boxes, boxes[1:]))

    def test_dark_ink_on_white(self):
        gray, boxes = render_line("0")
        assert gray[0, 0] == 255
        box = boxes[0]
        assert gray[box.y: box.bottom, box.x: box.right].min() == 0

    def test_boxes_inside_image(self):
        gray, boxes = render_line("⑆0⑆ ⑉", height=40)
        h, w = gray.shape
        for box in boxes:
            assert box.x >= 0 and box.y >= 0
            assert box.right <= w and box.bottom <= h

    def test_space_advances(self):
        _, tight = render_line("11")
        _, spaced = render_line("1 1")
        assert spaced[1].x - spaced[0].x > tight[1].x - tight[0].x
