#!/usr/bin/env python3
"""
Extract MICR reference templates from a check image with a known line.

Runs band location and glyph segmentation on the image, maps each glyph
to its ground-truth symbol and saves the crops as templates into
<assets>/templates/<font>/.

Example:
    python scripts/extract_templates_from_image.py MICR.png "⑆267084131⑆ 790319013⑈1024"
"""

import argparse
import logging
from pathlib import Path

import cv2

from micrline.api import load_image
from micrline.fonts import parse_symbols
from micrline.logging_config import setup_logging
from micrline.preprocessing.band_locator import BandLocator
from micrline.segmentation.glyph_segmenter import GlyphSegmenter

logger = logging.getLogger("extract_templates")

ASSETS_DIR = Path(__file__).parent.parent / "assets"


def extract_templates(image_path: Path, ground_truth: str, assets_dir: Path, font: str) -> int:
    """Save the best (largest) crop of every symbol; return the number saved."""
    expected = [s for s in parse_symbols(ground_truth, font) if s != " "]
    image = load_image(image_path)

    bands = BandLocator().locate(image)
    if not bands:
        logger.error("No MICR band found in %s", image_path)
        return 0

    glyphs = GlyphSegmenter(font=font).segment(bands[0], image)
    logger.info("Found %d glyphs, expected %d", len(glyphs), len(expected))

    if len(glyphs) != len(expected):
        logger.warning("Count mismatch! Listing all glyphs:")
        for glyph in glyphs:
            truth = expected[glyph.index] if glyph.index < len(expected) else "???"
            r = glyph.region
            logger.warning("  [%2d] x=%4d w=%3d h=%3d -> %s", glyph.index, r.x, r.w, r.h, truth)
        return 0

    out_dir = assets_dir / "templates" / font
    out_dir.mkdir(parents=True, exist_ok=True)
    saved: dict[str, int] = {}

    for glyph, symbol in zip(glyphs, expected):
        area = glyph.region.area
        if symbol in saved and area <= saved[symbol]:
            logger.info("  [%2d] Skipped %8s (already have better)", glyph.index, symbol)
            continue
        path = out_dir / f"{symbol}.png"
        cv2.imwrite(str(path), 255 - glyph.image)
        saved[symbol] = area
        logger.info(
            "  [%2d] Saved %8s -> %s (%dx%d)",
            glyph.index, symbol, path.name, glyph.region.w, glyph.region.h,
        )

    logger.info("Extracted %d unique templates to %s", len(saved), out_dir)
    return len(saved)


def main():
    parser = argparse.ArgumentParser(description="Extract MICR templates from a known image")
    parser.add_argument("image", type=Path, help="Check or MICR line image")
    parser.add_argument("text", help="Ground-truth MICR line (display characters)")
    parser.add_argument("--assets", type=Path, default=ASSETS_DIR, help="Assets folder")
    parser.add_argument("--font", choices=["e13b", "cmc7"], default="e13b")
    args = parser.parse_args()

    setup_logging()
    extract_templates(args.image, args.text, args.assets, args.font)


if __name__ == "__main__":
    main()
