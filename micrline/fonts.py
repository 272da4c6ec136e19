"""
Reference glyph shapes for the E-13B and CMC-7 MICR fonts.

E-13B characters are drawn as bar patterns in a 56 x 80 reference cell.
CMC-7 characters are seven vertical strokes separated by six gaps, two of
which are long; the long-gap positions encode the character.

The renderers back the built-in reference sets of the classifier backends,
asset generation (scripts/generate_templates.py) and synthetic test images.
"""

from typing import Sequence, Union

import cv2
import numpy as np

from micrline.models import CHAR_DISPLAY, FONT_ALPHABETS, Region

# Reference cell (pixels at scale 1.0)
CELL_HEIGHT = 80
CELL_WIDTH = 56

# Bars are (x, y, w, h) in the reference cell, drawn inclusive.
E13B_BARS: dict[str, list[tuple[int, int, int, int]]] = {
    "0": [
        (8, 0, 8, 80),    # left vertical bar
        (40, 0, 8, 80),   # right vertical bar
        (8, 0, 40, 8),    # top horizontal bar
        (8, 72, 40, 8),   # bottom horizontal bar
    ],
    "1": [
        (22, 0, 12, 80),  # center vertical bar
    ],
    "2": [
        (8, 0, 40, 8),
        (40, 0, 8, 40),   # top-right vertical (upper half)
        (8, 36, 40, 8),
        (8, 36, 8, 44),   # bottom-left vertical (lower half)
        (8, 72, 40, 8),
    ],
    "3": [
        (8, 0, 40, 8),
        (40, 0, 8, 80),
        (8, 36, 40, 8),
        (8, 72, 40, 8),
    ],
    "4": [
        (8, 0, 8, 44),    # left vertical (upper half + middle)
        (8, 36, 40, 8),
        (40, 0, 8, 80),
    ],
    "5": [
        (8, 0, 40, 8),
        (8, 0, 8, 44),    # top-left vertical (upper half)
        (8, 36, 40, 8),
        (40, 36, 8, 44),  # bottom-right vertical (lower half)
        (8, 72, 40, 8),
    ],
    "6": [
        (8, 0, 40, 8),
        (8, 0, 8, 80),
        (8, 36, 40, 8),
        (40, 36, 8, 44),
        (8, 72, 40, 8),
    ],
    "7": [
        (8, 0, 40, 8),
        (40, 0, 8, 80),
    ],
    "8": [
        (8, 0, 8, 80),
        (40, 0, 8, 80),
        (8, 0, 40, 8),
        (8, 36, 40, 8),
        (8, 72, 40, 8),
    ],
    "9": [
        (8, 0, 40, 8),
        (8, 0, 8, 44),
        (40, 0, 8, 80),
        (8, 36, 40, 8),
        (8, 72, 40, 8),
    ],
    "transit": [
        (8, 0, 10, 80),   # tall left vertical bar
        (30, 10, 14, 14),  # upper dot
        (30, 56, 14, 14),  # lower dot
    ],
    "amount": [
        (18, 0, 20, 80),  # thick center vertical bar
        (4, 20, 48, 10),  # middle horizontal bar
        (4, 50, 48, 10),  # lower horizontal bar
    ],
    "on_us": [
        (12, 0, 10, 80),  # left vertical bar
        (34, 0, 10, 80),  # right vertical bar
    ],
    "dash": [
        (4, 32, 48, 16),  # center horizontal bar
    ],
}

# Long-gap positions (1 = long) for the six CMC-7 inter-stroke gaps
CMC7_CODES: dict[str, str] = {
    "0": "001100",
    "1": "100010",
    "2": "011000",
    "3": "101000",
    "4": "100100",
    "5": "000110",
    "6": "001010",
    "7": "110000",
    "8": "010010",
    "9": "010100",
    "S1": "100001",
    "S2": "010001",
    "S3": "001001",
    "S4": "000101",
    "S5": "000011",
}

# CMC-7 stroke geometry in reference-cell units
CMC7_STROKE = 6.0
CMC7_SHORT_GAP = 5.0
CMC7_LONG_GAP = 12.0

_DISPLAY_TO_SYMBOL = {v: k for k, v in CHAR_DISPLAY.items()}


def _draw_e13b(symbol: str, height: int) -> np.ndarray:
    scale = height / CELL_HEIGHT
    canvas = np.zeros(
        (int(round(CELL_HEIGHT * scale)) + 1, int(round(CELL_WIDTH * scale)) + 1),
        dtype=np.uint8,
    )
    for x, y, w, h in E13B_BARS[symbol]:
        pt1 = (int(round(x * scale)), int(round(y * scale)))
        pt2 = (int(round((x + w) * scale)), int(round((y + h) * scale)))
        cv2.rectangle(canvas, pt1, pt2, 255, -1)
    return canvas


def _draw_cmc7(symbol: str, height: int) -> np.ndarray:
    scale = height / CELL_HEIGHT
    code = CMC7_CODES[symbol]
    edges = []
    pos = 0.0
    for i in range(7):
        edges.append((pos, pos + CMC7_STROKE))
        pos += CMC7_STROKE
        if i < 6:
            pos += CMC7_LONG_GAP if code[i] == "1" else CMC7_SHORT_GAP
    canvas = np.zeros(
        (int(round(CELL_HEIGHT * scale)) + 1, int(round(pos * scale)) + 2),
        dtype=np.uint8,
    )
    for start, end in edges:
        x0 = int(round(start * scale))
        x1 = max(x0 + 1, int(round(end * scale)))
        canvas[:, x0:x1] = 255
    return canvas


def trim_ink(binary: np.ndarray, axis: str = "xy") -> np.ndarray:
    """Crop a binary glyph to its ink bounding box along the given axes."""
    ys, xs = np.where(binary > 0)
    if len(xs) == 0:
        return binary
    out = binary
    if "x" in axis:
        out = out[:, xs.min(): xs.max() + 1]
    if "y" in axis:
        out = out[ys.min(): ys.max() + 1, :]
    return out


def render_glyph(symbol: str, height: int = CELL_HEIGHT, font: str = "e13b",
                 trim: str = "xy") -> np.ndarray:
    """
    Render one reference glyph as a binary image (ink=255, bg=0).

    Args:
        symbol: Symbol name from the font's alphabet.
        height: Cell height in pixels.
        font: "e13b" or "cmc7".
        trim: Axes to crop to the ink box ("xy", "x" keeps the cell's
              vertical placement, "" keeps the whole cell).
    """
    if font not in FONT_ALPHABETS or symbol not in FONT_ALPHABETS[font]:
        raise ValueError(f"Unknown {font} symbol: {symbol!r}")
    if font == "cmc7":
        canvas = _draw_cmc7(symbol, height)
    else:
        canvas = _draw_e13b(symbol, height)
    return trim_ink(canvas, trim) if trim else canvas


def render_alphabet(font: str = "e13b", height: int = CELL_HEIGHT) -> dict[str, np.ndarray]:
    """Render every symbol of a font."""
    return {s: render_glyph(s, height, font) for s in FONT_ALPHABETS[font]}


def parse_symbols(text: str, font: str = "e13b") -> list[str]:
    """
    Convert a display string (e.g. "⑆267084131⑆") into symbol names.

    Spaces are kept as " " and render as a blank advance.
    """
    alphabet = FONT_ALPHABETS[font]
    symbols = []
    for ch in text:
        if ch == " ":
            symbols.append(" ")
            continue
        name = ch if ch.isdigit() else _DISPLAY_TO_SYMBOL.get(ch)
        if name is None or name not in alphabet:
            raise ValueError(f"Character {ch!r} is not part of the {font} alphabet")
        symbols.append(name)
    return symbols


def render_line(
    symbols: Union[str, Sequence[str]],
    height: int = CELL_HEIGHT,
    font: str = "e13b",
    gap: int | None = None,
    margin: int | None = None,
) -> tuple[np.ndarray, list[Region]]:
    """
    Render a MICR line as dark ink on white paper.

    Returns:
        (gray_image, boxes) where boxes holds the ink bounding box of every
        rendered glyph in image coordinates, left to right.
    """
    if isinstance(symbols, str):
        symbols = parse_symbols(symbols, font)
    if gap is None:
        gap = int(round(height * 0.35))
    if margin is None:
        margin = height // 2

    cells = []
    for s in symbols:
        if s == " ":
            cells.append(None)
        else:
            cells.append(render_glyph(s, height, font, trim="x"))

    blank = int(round(height * 0.6))
    cell_h = max((c.shape[0] for c in cells if c is not None), default=height + 1)
    total_w = sum(blank if c is None else c.shape[1] for c in cells)
    total_w += gap * max(0, len(cells) - 1)

    canvas = np.zeros((cell_h + 2 * margin, total_w + 2 * margin), dtype=np.uint8)
    boxes = []
    x = margin
    for cell in cells:
        if cell is None:
            x += blank + gap
            continue
        h, w = cell.shape
        canvas[margin: margin + h, x: x + w] = cell
        ys, xs = np.where(cell > 0)
        boxes.append(Region(
            x + int(xs.min()),
            margin + int(ys.min()),
            int(xs.max() - xs.min()) + 1,
            int(ys.max() - ys.min()) + 1,
        ))
        x += w + gap

    return cv2.bitwise_not(canvas), boxes
