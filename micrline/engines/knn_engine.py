"""k-nearest-neighbour backend for MICR glyph classification."""

import math
from pathlib import Path

import cv2
import numpy as np

from micrline.engines.base import ClassifierBackend
from micrline.engines.features import CANVAS_SIZE, glyph_canvas, trim_roi
from micrline.errors import ResourceError
from micrline.fonts import render_glyph
from micrline.logging_config import get_logger
from micrline.models import FONT_ALPHABETS

logger = get_logger(__name__)

# Render heights used to build the training set
TRAINING_HEIGHTS = (20, 28, 40, 56, 80, 112)


def _sample(binary: np.ndarray) -> np.ndarray:
    return glyph_canvas(trim_roi(binary)).reshape(1, -1)


def build_training_set(font: str = "e13b") -> tuple[np.ndarray, np.ndarray]:
    """
    Render augmented reference glyphs for every symbol of a font.

    Each symbol is rendered at several heights, plus thickened and
    thinned variants to mimic ink spread and dropout.

    Returns:
        (samples, responses): float32 (N, CANVAS_SIZE**2) and (N, 1).
    """
    kernel = np.ones((3, 3), dtype=np.uint8)
    samples = []
    responses = []
    for index, symbol in enumerate(FONT_ALPHABETS[font]):
        for height in TRAINING_HEIGHTS:
            glyph = render_glyph(symbol, height, font)
            variants = [glyph, cv2.dilate(np.pad(glyph, 1), kernel)]
            if height >= 40:
                variants.append(cv2.erode(glyph, kernel))
            for variant in variants:
                if not np.any(variant):
                    continue
                samples.append(_sample(variant))
                responses.append(index)

    return (
        np.vstack(samples).astype(np.float32),
        np.array(responses, dtype=np.float32).reshape(-1, 1),
    )


class KNearestEngine(ClassifierBackend):
    """
    Learned glyph model based on OpenCV's k-nearest-neighbour classifier.

    The model is loaded from ``model_path`` when it exists, otherwise
    trained at construction on rendered reference glyphs.
    """

    fonts = frozenset({"e13b", "cmc7"})

    def __init__(self, font: str = "e13b", model_path: Path | str | None = None, k: int = 5):
        self.font = font
        self.k = k
        self._alphabet = FONT_ALPHABETS[font]
        self._dims = CANVAS_SIZE * CANVAS_SIZE

        model_path = Path(model_path) if model_path else None
        if model_path is not None and model_path.exists():
            try:
                self._model = cv2.ml.KNearest_load(str(model_path))
            except cv2.error as e:
                raise ResourceError(f"Cannot load kNN model {model_path}: {e}") from e
            if self._model.empty() or self._model.getVarCount() != self._dims:
                raise ResourceError(f"kNN model {model_path} does not match the {font} canvas")
            logger.info("Loaded %s kNN model from %s", font, model_path)
        else:
            self._model = cv2.ml.KNearest_create()
            samples, responses = build_training_set(font)
            self._model.train(samples, cv2.ml.ROW_SAMPLE, responses)
            logger.debug("Trained %s kNN model on %d samples", font, len(samples))

    @property
    def name(self) -> str:
        return "knn"

    def save(self, path: Path | str):
        """Persist the model so later engines can load it from the assets folder."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._model.save(str(path))

    def score(self, glyph_image: np.ndarray) -> dict[str, float]:
        """
        Score symbols from the k nearest training samples.

        A symbol's score is the similarity of its closest neighbour
        (1 - RMS canvas difference), weighted by its share of the votes.
        """
        if glyph_image.shape[0] < 3 or glyph_image.shape[1] < 3 or not np.any(glyph_image):
            return {}

        sample = _sample(glyph_image)
        _, _, neighbours, dists = self._model.findNearest(sample, self.k)

        best: dict[str, float] = {}
        votes: dict[str, int] = {}
        for label, dist in zip(neighbours[0], dists[0]):
            symbol = self._alphabet[int(label)]
            similarity = max(0.0, 1.0 - math.sqrt(max(0.0, float(dist)) / self._dims))
            best[symbol] = max(best.get(symbol, 0.0), similarity)
            votes[symbol] = votes.get(symbol, 0) + 1

        return {
            symbol: best[symbol] * (0.5 + 0.5 * votes[symbol] / self.k)
            for symbol in best
        }
