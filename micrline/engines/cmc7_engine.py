"""CMC-7 gap-signature backend."""

import numpy as np

from micrline.engines.base import ClassifierBackend
from micrline.engines.features import trim_roi
from micrline.fonts import CMC7_CODES, CMC7_LONG_GAP, CMC7_SHORT_GAP
from micrline.preprocessing.common import row_runs

STROKES_PER_CHAR = 7

# Expected gap vector per symbol, in reference-cell units
_EXPECTED_GAPS = {
    symbol: np.array(
        [CMC7_LONG_GAP if bit == "1" else CMC7_SHORT_GAP for bit in code], dtype=float
    )
    for symbol, code in CMC7_CODES.items()
}


class Cmc7BarEngine(ClassifierBackend):
    """
    Scores CMC-7 glyphs from the widths of the six inter-stroke gaps.

    The measured gap vector is fitted to each symbol's expected pattern of
    short and long gaps (least squares over a free scale factor); the
    relative residual of the fit becomes the score.
    """

    fonts = frozenset({"cmc7"})

    @property
    def name(self) -> str:
        return "cmc7_bars"

    def score(self, glyph_image: np.ndarray) -> dict[str, float]:
        if glyph_image.shape[0] < 3 or glyph_image.shape[1] < 3:
            return {}
        roi = trim_roi(glyph_image)
        v_proj = np.count_nonzero(roi, axis=0)
        if v_proj.max() == 0:
            return {}

        strokes = row_runs(v_proj > v_proj.max() * 0.3)
        if len(strokes) != STROKES_PER_CHAR:
            return {}

        gaps = np.array(
            [strokes[i + 1][0] - strokes[i][1] for i in range(len(strokes) - 1)],
            dtype=float,
        )
        energy = float(np.dot(gaps, gaps))
        if energy == 0:
            return {}

        scores = {}
        for symbol, expected in _EXPECTED_GAPS.items():
            scale = float(np.dot(gaps, expected) / np.dot(expected, expected))
            residual = float(np.sum((gaps - scale * expected) ** 2)) / energy
            scores[symbol] = max(0.0, 1.0 - 2.0 * residual)
        return scores
