"""Template matching backend for MICR glyph classification."""

from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from micrline.engines.base import ClassifierBackend
from micrline.engines.features import compare_features, compute_features, trim_roi
from micrline.fonts import render_glyph
from micrline.logging_config import get_logger
from micrline.models import FONT_ALPHABETS

logger = get_logger(__name__)


class TemplateMatchingEngine(ClassifierBackend):
    """
    Glyph scoring by structural feature matching.

    Each glyph is compared with one reference image per symbol using Hu
    moments, projection profiles, densities, symmetry and zoning.
    References come from ``<templates_dir>/<symbol>.png`` when present,
    otherwise from the built-in font tables.
    """

    fonts = frozenset({"e13b", "cmc7"})

    def __init__(self, font: str = "e13b", templates_dir: Path | str | None = None):
        self.font = font
        self.templates_dir = Path(templates_dir) if templates_dir else None
        self._ref_features: dict[str, dict] = {}
        self._load_reference_features()

    @property
    def name(self) -> str:
        return "template"

    def _load_reference_features(self):
        """Load reference templates and compute their feature vectors."""
        loaded = 0
        for char_name in FONT_ALPHABETS[self.font]:
            tpl_bin = self._load_template(char_name)
            if tpl_bin is None:
                tpl_bin = render_glyph(char_name, font=self.font)
            else:
                loaded += 1
            self._ref_features[char_name] = compute_features(trim_roi(tpl_bin))

        if self.templates_dir is not None:
            logger.info(
                "Loaded %d/%d %s templates from %s",
                loaded, len(self._ref_features), self.font, self.templates_dir,
            )

    def _load_template(self, char_name: str) -> Optional[np.ndarray]:
        if self.templates_dir is None:
            return None
        path = self.templates_dir / f"{char_name}.png"
        if not path.exists():
            return None
        tpl = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if tpl is None:
            logger.warning("Cannot read template %s", path)
            return None
        _, tpl_bin = cv2.threshold(tpl, 127, 255, cv2.THRESH_BINARY)
        # Ensure text=white on black background; the border is background
        border = np.concatenate([tpl_bin[0], tpl_bin[-1], tpl_bin[:, 0], tpl_bin[:, -1]])
        if np.mean(border) > 127:
            tpl_bin = cv2.bitwise_not(tpl_bin)
        if not np.any(tpl_bin):
            logger.warning("Template %s holds no ink", path)
            return None
        return tpl_bin

    def score(self, glyph_image: np.ndarray) -> dict[str, float]:
        """Similarity of the glyph to every reference symbol."""
        if glyph_image.shape[0] < 3 or glyph_image.shape[1] < 3:
            return {}

        roi = trim_roi(glyph_image)
        if roi.shape[0] < 3 or roi.shape[1] < 3 or not np.any(roi):
            return {}

        roi_features = compute_features(roi)
        return {
            char_name: compare_features(roi_features, ref_features)
            for char_name, ref_features in self._ref_features.items()
        }
