"""Split a located MICR band into ordered glyphs."""

import math
from typing import NamedTuple, Optional

import numpy as np

from micrline.logging_config import get_logger
from micrline.models import Glyph, ImageBuffer, Region
from micrline.preprocessing.common import (
    INTERPOLATIONS,
    binarize_otsu,
    has_contrast,
    resize_to_height,
    row_runs,
)

logger = get_logger(__name__)

# Standard height for band normalization. All segmentation thresholds
# (valley depth, grouping distances, split widths) are tuned for it.
STANDARD_LINE_HEIGHT = 100

# Valley depth (fraction of ink height) and recursive split depth per accuracy
_VALLEY_RATIOS = {"low": 0.02, "medium": 0.03, "high": 0.04}
_SPLIT_DEPTHS = {"low": 1, "medium": 2, "high": 3}

CROP_PAD = 2


class Box(NamedTuple):
    """Fragment bounds in normalized band coordinates (end-exclusive)."""

    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def w(self) -> int:
        return self.x1 - self.x0

    @property
    def h(self) -> int:
        return self.y1 - self.y0

    def union(self, other: "Box") -> "Box":
        return Box(
            min(self.x0, other.x0),
            min(self.y0, other.y0),
            max(self.x1, other.x1),
            max(self.y1, other.y1),
        )


class GlyphSegmenter:
    """
    Projection-profile segmenter for MICR bands.

    Works by:
    1. Normalizing the band to a standard height and binarizing it
    2. Splitting at valleys of the vertical projection profile
    3. Recovering broken characters (sliver merging, symbol part grouping)
    4. Recovering touching characters (recursive valley split)
    """

    def __init__(
        self,
        interpolation: str = "bilinear",
        accuracy: str = "high",
        font: str = "e13b",
    ):
        self.interpolation = interpolation
        self.accuracy = accuracy
        self.font = font

    def segment(self, band: Region, image: ImageBuffer) -> list[Glyph]:
        """Return the band's glyphs, strictly ordered left to right."""
        gray = image.gray()
        crop = gray[band.y: band.bottom, band.x: band.right]
        if crop.size == 0:
            return []

        normalized, sx, sy = self._normalize(crop)
        binary = self._binarize(normalized)
        binary = _mask_text_band(binary)

        boxes = self._segment_boxes(binary)
        if not boxes:
            logger.debug("No valid split in band %s, using whole band", band)
            return [Glyph(region=band, index=0, image=binary.copy(), fallback=True)]

        boxes.sort(key=lambda b: (b.x0, b.y0))
        glyphs = []
        for index, box in enumerate(boxes):
            region = _to_image_region(box, sx, sy, band)
            crop_bin = np.pad(
                binary[box.y0: box.y1, box.x0: box.x1], CROP_PAD, constant_values=0
            )
            glyphs.append(Glyph(region=region, index=index, image=crop_bin))
        return glyphs

    def _normalize(self, crop: np.ndarray) -> tuple[np.ndarray, float, float]:
        """
        Resize a band crop to STANDARD_LINE_HEIGHT.

        Crops already near the standard height (80-120px) are returned
        as-is to avoid unnecessary resampling artifacts.
        """
        h = crop.shape[0]
        if 80 <= h <= 120:
            return crop, 1.0, 1.0
        return resize_to_height(
            crop, STANDARD_LINE_HEIGHT, INTERPOLATIONS[self.interpolation]
        )

    @staticmethod
    def _binarize(gray: np.ndarray) -> np.ndarray:
        if not has_contrast(gray):
            return np.zeros_like(gray)
        return binarize_otsu(gray)

    def _segment_boxes(self, binary: np.ndarray) -> list[Box]:
        col_ink = np.count_nonzero(binary, axis=0)
        ink_rows = np.where(np.count_nonzero(binary, axis=1) > 0)[0]
        if len(ink_rows) == 0:
            return []
        ink_h = int(ink_rows[-1] - ink_rows[0]) + 1

        threshold = ink_h * _VALLEY_RATIOS[self.accuracy]
        boxes = [
            box for box in (
                _fragment(binary, s, e) for s, e in row_runs(col_ink > threshold)
            ) if box is not None
        ]
        if not boxes:
            return []

        stroke = _estimate_stroke_width(binary)
        median_h = float(np.median([b.h for b in boxes]))

        boxes = _merge_slivers(
            boxes, min_width=max(2.0, stroke * 0.5), max_gap=median_h * 0.20
        )
        if not boxes:
            return []

        typical_w = _typical_width(boxes, median_h, stroke)
        max_group_w = typical_w * 1.2 if self.font == "e13b" else None
        boxes = _group_parts(boxes, median_h * 0.20, max_group_w)

        typical_w = _typical_width(boxes, median_h, stroke)
        split = []
        for box in boxes:
            if box.w > typical_w * 1.5:
                split.extend(
                    _split_wide(binary, box, typical_w, _SPLIT_DEPTHS[self.accuracy])
                )
            else:
                split.append(box)
        return split


def _mask_text_band(binary: np.ndarray) -> np.ndarray:
    """
    Mask out noise above and below the main MICR text band.

    Uses horizontal projection to find the vertical extent of the
    actual characters. Rows with content above 10% of the peak are
    considered text rows.
    """
    h = binary.shape[0]
    row_sums = np.count_nonzero(binary, axis=1)
    max_sum = row_sums.max() if row_sums.size else 0
    if max_sum == 0:
        return binary

    active_indices = np.where(row_sums > max_sum * 0.10)[0]
    top = int(active_indices[0])
    bottom = int(active_indices[-1])

    margin = max(2, int(h * 0.02))
    top = max(0, top - margin)
    bottom = min(h - 1, bottom + margin)

    if top <= 0 and bottom >= h - 1:
        return binary

    result = binary.copy()
    if top > 0:
        result[:top, :] = 0
    if bottom < h - 1:
        result[bottom + 1:, :] = 0
    return result


def _fragment(binary: np.ndarray, x0: int, x1: int) -> Optional[Box]:
    """Tight box of the ink between two columns."""
    rows = np.where(np.count_nonzero(binary[:, x0:x1], axis=1) > 0)[0]
    if len(rows) == 0:
        return None
    return Box(x0, int(rows[0]), x1, int(rows[-1]) + 1)


def _estimate_stroke_width(binary: np.ndarray) -> float:
    """Median ink run length, the smaller of the horizontal and vertical estimate."""
    estimates = []
    for image in (binary, binary.T):
        ink = np.pad(image > 0, ((0, 0), (1, 1))).astype(np.int8)
        diff = np.diff(ink, axis=1)
        starts = np.where(diff == 1)[1]
        ends = np.where(diff == -1)[1]
        if len(starts):
            estimates.append(float(np.median(ends - starts)))
    return min(estimates) if estimates else 1.0


def _typical_width(boxes: list[Box], median_h: float, stroke: float) -> float:
    """Median width of full-height fragments wider than two strokes."""
    widths = [b.w for b in boxes if b.h >= 0.8 * median_h and b.w >= 2 * stroke]
    if not widths:
        widths = [b.w for b in boxes]
    return float(np.median(widths))


def _merge_slivers(boxes: list[Box], min_width: float, max_gap: float) -> list[Box]:
    """
    Merge fragments narrower than a stroke into their nearest neighbour.

    Slivers are pieces of broken characters; a sliver with no close
    neighbour is noise and is dropped.
    """
    result = list(boxes)
    i = 0
    while i < len(result):
        box = result[i]
        if box.w >= min_width or len(result) == 1:
            i += 1
            continue
        left_gap = box.x0 - result[i - 1].x1 if i > 0 else math.inf
        right_gap = result[i + 1].x0 - box.x1 if i + 1 < len(result) else math.inf
        if min(left_gap, right_gap) > max_gap:
            del result[i]
        elif left_gap <= right_gap:
            result[i - 1] = result[i - 1].union(box)
            del result[i]
        else:
            result[i + 1] = box.union(result[i + 1])
            del result[i]
    return result


def _group_parts(
    boxes: list[Box], max_gap: float, max_width: Optional[float]
) -> list[Box]:
    """
    Group nearby fragments that belong to the same character.

    E-13B Transit and On-Us are made of separate bars and dots; every
    CMC-7 character is seven separate strokes.
    """
    groups = [boxes[0]]
    for box in boxes[1:]:
        prev = groups[-1]
        merged = prev.union(box)
        if box.x0 - prev.x1 < max_gap and (max_width is None or merged.w <= max_width):
            groups[-1] = merged
        else:
            groups.append(box)
    return groups


def _split_wide(binary: np.ndarray, box: Box, typical_w: float, depth: int) -> list[Box]:
    """Recursively split a too-wide fragment at vertical projection valleys."""
    if depth <= 0 or box.w <= typical_w * 1.5:
        return [box]
    parts = _split_at_valley(binary, box, typical_w)
    if parts is None:
        return [box]
    result = []
    for part in parts:
        result.extend(_split_wide(binary, part, typical_w, depth - 1))
    return result


def _split_at_valley(binary: np.ndarray, box: Box, typical_w: float) -> Optional[list[Box]]:
    """
    Split a wide merged fragment at its deepest central valley.

    Touching characters form one fragment spanning both. The gap between
    them shows up as a low run in the vertical projection profile.

    Returns None if no clean split point is found.
    """
    roi = binary[box.y0: box.y1, box.x0: box.x1]
    w = box.w
    v_proj = np.count_nonzero(roi, axis=0).astype(float)
    peak = v_proj.max()
    if peak == 0:
        return None

    # Look for a valley in the middle region (25%-75% of width)
    search_start = int(w * 0.25)
    search_end = int(w * 0.75)
    if search_end <= search_start:
        return None

    search_region = v_proj[search_start:search_end]
    min_idx = int(np.argmin(search_region))
    if search_region[min_idx] > peak * 0.25:
        return None

    split_col = search_start + min_idx

    # Extent of the gap (consecutive low columns)
    gap_threshold = peak * 0.20
    gap_start = split_col
    while gap_start > search_start and v_proj[gap_start - 1] < gap_threshold:
        gap_start -= 1
    gap_end = split_col
    while gap_end < search_end - 1 and v_proj[gap_end + 1] < gap_threshold:
        gap_end += 1

    parts = []
    if gap_start > typical_w * 0.3:
        parts.append(_fragment(binary, box.x0, box.x0 + gap_start))
    if w - gap_end - 1 > typical_w * 0.3:
        parts.append(_fragment(binary, box.x0 + gap_end + 1, box.x1))

    parts = [p for p in parts if p is not None]
    return parts if len(parts) >= 2 else None


def _to_image_region(box: Box, sx: float, sy: float, band: Region) -> Region:
    """Map a normalized box back to source image coordinates."""
    x0 = band.x + int(math.floor(box.x0 * sx))
    y0 = band.y + int(math.floor(box.y0 * sy))
    x1 = band.x + int(math.ceil(box.x1 * sx))
    y1 = band.y + int(math.ceil(box.y1 * sy))
    region = Region(x0, y0, max(1, x1 - x0), max(1, y1 - y0))
    return region.intersection(band) or band
