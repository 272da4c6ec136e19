"""Turn classified glyphs into a recognized line."""

from typing import Optional, Sequence

from micrline.models import PLACEHOLDER, Glyph, RecognizedLine, Region


class LineAssembler:
    """
    Resolves each glyph to its top candidate.

    Rejected or unscored glyphs become the ``?`` placeholder with score 0.
    Line confidence is the mean of the per-glyph scores, 0 for an empty line.
    """

    def __init__(self, font: str = "e13b"):
        self.font = font

    def assemble(self, glyphs: Sequence[Glyph], band: Optional[Region] = None) -> RecognizedLine:
        symbols = []
        scores = []
        for glyph in glyphs:
            best = glyph.best
            if glyph.rejected or best is None:
                symbols.append(PLACEHOLDER)
                scores.append(0.0)
            else:
                symbols.append(best.symbol)
                scores.append(best.score)

        confidence = sum(scores) / len(scores) if scores else 0.0
        if band is None:
            band = _bounding_region(glyphs)

        return RecognizedLine(
            symbols=symbols,
            glyph_confidences=scores,
            confidence=confidence,
            region=band,
            font=self.font,
            glyphs=list(glyphs),
        )


def _bounding_region(glyphs: Sequence[Glyph]) -> Region:
    if not glyphs:
        return Region(0, 0, 0, 0)
    x0 = min(g.region.x for g in glyphs)
    y0 = min(g.region.y for g in glyphs)
    x1 = max(g.region.right for g in glyphs)
    y1 = max(g.region.bottom for g in glyphs)
    return Region(x0, y0, x1 - x0, y1 - y0)
