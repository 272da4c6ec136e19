"""Public API for MICR line recognition from image files and arrays."""

from pathlib import Path

import cv2
import numpy as np

from micrline.config import EngineConfig
from micrline.engine import Engine
from micrline.errors import ImageError
from micrline.models import ImageBuffer
from micrline.parsing.formatter import StructuredResult


def load_image(image_path: str | Path) -> ImageBuffer:
    """
    Decode an image file into an ImageBuffer.

    Raises:
        FileNotFoundError: If the image file doesn't exist.
        ImageError: If the image cannot be decoded.
    """
    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image not found: {image_path}")

    image = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageError(f"Cannot read image: {image_path}")
    if image.dtype != np.uint8:
        # 16-bit scans
        image = cv2.convertScaleAbs(image, alpha=255.0 / 65535.0)
    return ImageBuffer.from_array(image)


class MICRReader:
    """
    Convenience wrapper owning an initialized Engine.

    Usage:
        with MICRReader(assets_folder="assets") as reader:
            result = reader.read("path/to/check.png")
            for line in result.lines:
                print(line["text"])
                print(line["fields"]["routing_number"])
    """

    def __init__(self, config: EngineConfig | dict | str | None = None, **options):
        """
        Initialize the reader.

        Args:
            config: Engine configuration (EngineConfig, dict or JSON string).
            **options: Config keys merged over a dict/None ``config``,
                e.g. ``assets_folder``, ``format``, ``backends``.
        """
        if options:
            if isinstance(config, (EngineConfig, str)):
                raise TypeError("Keyword options require a dict or no config")
            config = {**(config or {}), **options}
        self._engine = Engine()
        self._engine.init(config)

    @property
    def engine(self) -> Engine:
        return self._engine

    def read(self, image_path: str | Path) -> StructuredResult:
        """Recognize the MICR line(s) of an image file."""
        return self._engine.process(load_image(image_path))

    def read_array(self, image: np.ndarray) -> StructuredResult:
        """Recognize the MICR line(s) of a numpy image (gray, BGR or BGRA)."""
        return self._engine.process(ImageBuffer.from_array(image))

    def close(self):
        self._engine.deinit()

    def __enter__(self) -> "MICRReader":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
