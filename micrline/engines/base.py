"""Abstract base class for glyph classifier backends."""

from abc import ABC, abstractmethod

import numpy as np


class ClassifierBackend(ABC):
    """
    Base interface for glyph scoring backends.

    A backend only maps a glyph crop to per-symbol scores; ranking,
    aggregation across backends and rejection live in GlyphClassifier.
    """

    #: Fonts whose alphabet the backend can score
    fonts: frozenset[str] = frozenset()

    @abstractmethod
    def score(self, glyph_image: np.ndarray) -> dict[str, float]:
        """
        Score a binary glyph crop against every symbol of the font.

        Args:
            glyph_image: Binary crop of one glyph (ink=255, bg=0).

        Returns:
            Mapping symbol -> score in [0, 1]; missing symbols score 0.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier name."""

    def close(self):
        """Release backend resources."""
