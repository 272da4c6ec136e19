#!/usr/bin/env python3
"""
Generate MICR reference assets from the built-in font tables.

Writes, for each requested font:
    <assets>/templates/<font>/<symbol>.png   reference glyph per symbol
    <assets>/models/knn_<font>.xml           trained k-nearest-neighbour model

E-13B has 14 symbols (0-9, Transit, Amount, On-Us, Dash); CMC-7 has 15
(0-9, S1-S5).
"""

import argparse
import logging
from pathlib import Path

import cv2
import numpy as np

from micrline.engines.knn_engine import KNearestEngine
from micrline.fonts import CELL_HEIGHT, render_glyph
from micrline.logging_config import setup_logging
from micrline.models import FONT_ALPHABETS

logger = logging.getLogger("generate_templates")

ASSETS_DIR = Path(__file__).parent.parent / "assets"


def generate_templates(assets_dir: Path, font: str, height: int = CELL_HEIGHT) -> int:
    """Save one dark-on-white PNG per symbol; return the number written."""
    out_dir = assets_dir / "templates" / font
    out_dir.mkdir(parents=True, exist_ok=True)

    margin = max(2, height // 8)
    for symbol in FONT_ALPHABETS[font]:
        glyph = np.pad(render_glyph(symbol, height, font), margin)
        path = out_dir / f"{symbol}.png"
        cv2.imwrite(str(path), 255 - glyph)
        logger.info("  %-8s -> %s (%dx%d)", symbol, path.name, glyph.shape[1], glyph.shape[0])

    return len(FONT_ALPHABETS[font])


def generate_model(assets_dir: Path, font: str) -> Path:
    path = assets_dir / "models" / f"knn_{font}.xml"
    KNearestEngine(font=font).save(path)
    logger.info("Saved %s kNN model to %s", font, path)
    return path


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--assets", type=Path, default=ASSETS_DIR, help="Assets folder")
    parser.add_argument(
        "--font",
        choices=sorted(FONT_ALPHABETS) + ["all"],
        default="all",
        help="Font to generate (default: all)",
    )
    parser.add_argument("--height", type=int, default=CELL_HEIGHT, help="Template height")
    parser.add_argument("--no-model", action="store_true", help="Skip kNN model training")
    args = parser.parse_args()

    setup_logging()
    fonts = sorted(FONT_ALPHABETS) if args.font == "all" else [args.font]
    for font in fonts:
        logger.info("Generating %s templates into %s", font, args.assets)
        count = generate_templates(args.assets, font, args.height)
        logger.info("Wrote %d %s templates", count, font)
        if not args.no_model:
            generate_model(args.assets, font)


if __name__ == "__main__":
    main()
