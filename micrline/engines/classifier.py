"""Glyph classification over one or more scoring backends."""

from concurrent.futures import Executor
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from micrline.engines.base import ClassifierBackend
from micrline.errors import ConfigError
from micrline.logging_config import get_logger
from micrline.models import FONT_ALPHABETS, ClassificationCandidate, Glyph

logger = get_logger(__name__)

_AGGREGATORS = {
    "min": np.min,
    "max": np.max,
    "avg": np.mean,
}


def build_backend(
    name: str, font: str, assets_folder: Optional[Path] = None
) -> ClassifierBackend:
    """
    Instantiate a backend by configuration name.

    Assets, when provided, are looked up as
    ``<assets>/templates/<font>/<symbol>.png`` and
    ``<assets>/models/knn_<font>.xml``.
    """
    if name == "template":
        from micrline.engines.template_engine import TemplateMatchingEngine

        templates_dir = assets_folder / "templates" / font if assets_folder else None
        backend = TemplateMatchingEngine(font=font, templates_dir=templates_dir)
    elif name == "knn":
        from micrline.engines.knn_engine import KNearestEngine

        model_path = assets_folder / "models" / f"knn_{font}.xml" if assets_folder else None
        backend = KNearestEngine(font=font, model_path=model_path)
    elif name == "cmc7_bars":
        from micrline.engines.cmc7_engine import Cmc7BarEngine

        backend = Cmc7BarEngine()
    else:
        raise ConfigError(f"Unknown backend: {name!r}")

    if font not in backend.fonts:
        raise ConfigError(f"Backend {name!r} does not support the {font} font")
    return backend


class GlyphClassifier:
    """
    Ranks the font's symbols for each glyph.

    Per-symbol scores from every backend are aggregated with the configured
    policy ("min", "max" or "avg"); glyphs whose best score is below
    ``min_score`` are flagged as rejected rather than raising.
    """

    def __init__(
        self,
        backends: Sequence[ClassifierBackend],
        font: str = "e13b",
        score_type: str = "min",
        min_score: float = 0.3,
        executor: Optional[Executor] = None,
    ):
        if not backends:
            raise ConfigError("At least one classifier backend is required")
        self.backends = list(backends)
        self.alphabet = FONT_ALPHABETS[font]
        self.score_type = score_type
        self.min_score = min_score
        self._aggregate = _AGGREGATORS[score_type]
        self._executor = executor

    def classify(self, glyph: Glyph) -> list[ClassificationCandidate]:
        """
        Score a glyph against the alphabet.

        Returns:
            Candidates sorted by non-increasing score; ties keep the
            alphabet's canonical order.
        """
        per_backend = [backend.score(glyph.image) for backend in self.backends]

        candidates = []
        for symbol in self.alphabet:
            values = [scores.get(symbol, 0.0) for scores in per_backend]
            score = float(np.clip(self._aggregate(values), 0.0, 1.0))
            candidates.append(ClassificationCandidate(symbol=symbol, score=score))

        order = {symbol: i for i, symbol in enumerate(self.alphabet)}
        candidates.sort(key=lambda c: (-c.score, order[c.symbol]))
        return candidates

    def classify_all(self, glyphs: list[Glyph]) -> list[Glyph]:
        """Classify glyphs (in parallel when a pool is attached), in place."""
        if self._executor is not None and len(glyphs) > 1:
            ranked = list(self._executor.map(self.classify, glyphs))
        else:
            ranked = [self.classify(glyph) for glyph in glyphs]

        for glyph, candidates in zip(glyphs, ranked):
            glyph.candidates = candidates
            top = candidates[0].score if candidates else 0.0
            glyph.rejected = top < self.min_score
            if glyph.rejected:
                logger.debug(
                    "Glyph %d rejected: best %s=%.3f < %.3f",
                    glyph.index,
                    candidates[0].symbol if candidates else None,
                    top,
                    self.min_score,
                )
        return glyphs

    def close(self):
        for backend in self.backends:
            backend.close()
