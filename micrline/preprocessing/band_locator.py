"""Locate MICR band regions within a check image."""

import math
from typing import Optional

import cv2
import numpy as np

from micrline.logging_config import get_logger
from micrline.models import ImageBuffer, Region
from micrline.preprocessing.camera_pipeline import preprocess_camera
from micrline.preprocessing.common import (
    binarize_adaptive,
    binarize_otsu,
    has_contrast,
    remove_noise_morphological,
    row_runs,
    to_device,
    to_host,
)
from micrline.preprocessing.scanner_pipeline import preprocess_scanner

logger = get_logger(__name__)

# MICR bands are long and short: anything closer to square is not a band
MIN_BAND_ASPECT = 2.0
MIN_BAND_HEIGHT = 6

# Row activity threshold relative to the busiest row
_ROW_THRESHOLDS = {"low": 0.10, "medium": 0.10, "high": 0.08}


class BandLocator:
    """
    Finds candidate MICR bands using the horizontal projection profile.

    Works by:
    1. Binarizing the (ROI-restricted) luminance plane
    2. Grouping active rows into horizontal strips
    3. Splitting strips into clusters of nearby ink columns
    4. Scoring each cluster by aspect ratio, ink density and blob count
    """

    def __init__(
        self,
        accuracy: str = "high",
        min_score: float = 0.3,
        max_bands: int = 4,
        use_opencl: bool = False,
    ):
        self.accuracy = accuracy
        self.min_score = min_score
        self.max_bands = max_bands
        self.use_opencl = use_opencl

    def locate(self, image: ImageBuffer, roi: Optional[Region] = None) -> list[Region]:
        """
        Return band regions ordered by descending detection confidence.

        An empty list means no band qualified; this is not an error.
        """
        return [region for region, _ in self.locate_scored(image, roi)]

    def locate_scored(
        self, image: ImageBuffer, roi: Optional[Region] = None
    ) -> list[tuple[Region, float]]:
        """Like locate() but keeps the confidence of every band."""
        gray = image.gray()
        img_h, img_w = gray.shape[:2]

        search = Region(0, 0, img_w, img_h)
        if roi is not None:
            clipped = roi.clip(img_w, img_h)
            if clipped is None:
                logger.debug("ROI %s lies outside the %dx%d image", roi, img_w, img_h)
                return []
            search = clipped

        sub = gray[search.y: search.bottom, search.x: search.right]
        if not has_contrast(sub):
            return []

        binary, sx, sy = self._binarize(sub, camera=image.pixel_format.is_yuv)

        candidates = []
        for top, bottom in self._find_strips(binary):
            for (x0, y0, x1, y1), confidence in self._score_strip(binary, top, bottom):
                if confidence < self.min_score:
                    logger.debug(
                        "Dropping strip rows %d-%d: confidence %.3f < %.3f",
                        top, bottom, confidence, self.min_score,
                    )
                    continue
                region = self._to_image_region(x0, y0, x1, y1, sx, sy, search)
                candidates.append((region, confidence))

        candidates.sort(key=lambda c: (-c[1], -c[0].bottom, c[0].x))
        return candidates[: self.max_bands]

    def _binarize(self, gray: np.ndarray, camera: bool) -> tuple[np.ndarray, float, float]:
        """
        Binarize the search area (text=white, bg=black).

        Low accuracy analyses a half-resolution copy; high accuracy adds an
        adaptive threshold on top of Otsu to recover faint strokes.
        """
        work = gray
        h, w = gray.shape[:2]
        if self.accuracy == "low" and min(h, w) >= 64:
            work = cv2.resize(gray, (w // 2, h // 2), interpolation=cv2.INTER_AREA)

        mat = to_device(work, self.use_opencl)
        mat = preprocess_camera(mat) if camera else preprocess_scanner(mat)

        binary = binarize_otsu(mat)
        if self.accuracy == "high":
            block = max(15, min(work.shape[:2]) // 8)
            binary = cv2.bitwise_or(binary, binarize_adaptive(mat, block, 15))
        if camera:
            binary = remove_noise_morphological(binary, kernel_size=2)

        binary = to_host(binary)
        return binary, w / work.shape[1], h / work.shape[0]

    def _find_strips(self, binary: np.ndarray) -> list[tuple[int, int]]:
        """Group rows with significant content into horizontal strips."""
        row_ink = np.count_nonzero(binary, axis=1)
        peak = row_ink.max()
        if peak == 0:
            return []

        active = row_ink > peak * _ROW_THRESHOLDS[self.accuracy]
        tolerance = max(1, int(round(binary.shape[0] * 0.01)))

        strips: list[tuple[int, int]] = []
        for start, end in row_runs(active):
            if strips and start - strips[-1][1] <= tolerance:
                strips[-1] = (strips[-1][0], end)
            else:
                strips.append((start, end))

        return [(s, e) for s, e in strips if e - s >= MIN_BAND_HEIGHT]

    @staticmethod
    def _score_strip(
        binary: np.ndarray, top: int, bottom: int
    ) -> list[tuple[tuple[int, int, int, int], float]]:
        """
        Split a strip into column clusters and score each one.

        Returns a list of ((x0, y0, x1, y1), confidence) in binary coordinates.
        """
        strip = binary[top:bottom]
        strip_h = bottom - top
        col_ink = np.count_nonzero(strip, axis=0)
        runs = row_runs(col_ink > 0)
        if not runs:
            return []

        # Columns further apart than a few glyph heights belong to other content
        max_gap = 2.5 * strip_h
        clusters = [[runs[0]]]
        for run in runs[1:]:
            if run[0] - clusters[-1][-1][1] <= max_gap:
                clusters[-1].append(run)
            else:
                clusters.append([run])

        results = []
        for cluster in clusters:
            x0, x1 = cluster[0][0], cluster[-1][1]
            block = strip[:, x0:x1]
            rows = np.where(np.count_nonzero(block, axis=1) > 0)[0]
            if len(rows) == 0:
                continue
            y0, y1 = int(rows[0]), int(rows[-1]) + 1
            ink_w, ink_h = x1 - x0, y1 - y0
            if ink_h < MIN_BAND_HEIGHT:
                continue

            aspect = ink_w / ink_h
            if aspect < MIN_BAND_ASPECT:
                continue

            density = np.count_nonzero(block[y0:y1]) / float(ink_w * ink_h)
            confidence = _band_confidence(aspect, density, len(cluster))
            results.append(((x0, top + y0, x1, top + y1), confidence))

        return results

    @staticmethod
    def _to_image_region(
        x0: int, y0: int, x1: int, y1: int, sx: float, sy: float, search: Region
    ) -> Region:
        """Map a box from analysis coordinates to padded image coordinates."""
        left = search.x + int(math.floor(x0 * sx))
        right = search.x + int(math.ceil(x1 * sx))
        top = search.y + int(math.floor(y0 * sy))
        bottom = search.y + int(math.ceil(y1 * sy))

        pad = max(2, int(round((bottom - top) * 0.25)))
        padded = Region(left - pad, top - pad, right - left + 2 * pad, bottom - top + 2 * pad)
        return padded.intersection(search) or Region(left, top, right - left, bottom - top)


def _band_confidence(aspect: float, density: float, blobs: int) -> float:
    """
    Score how much a strip looks like a MICR band.

    E-13B and CMC-7 lines are long, moderately inked and made of many
    separate strokes; solid blocks, thin rules and lone marks score low.
    """
    aspect_term = min(1.0, max(0.0, (aspect - 1.0) / 3.0))

    if density < 0.08:
        density_term = density / 0.08
    elif density > 0.65:
        density_term = max(0.0, (0.95 - density) / 0.30)
    else:
        density_term = 1.0

    blob_term = min(1.0, blobs / 4.0)

    return aspect_term * density_term * blob_term
