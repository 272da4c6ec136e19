"""Data models for the MICR recognition pipeline."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from micrline.errors import ImageError

DIGITS = tuple(str(d) for d in range(10))

# Canonical alphabet order per font; candidate ties are broken by this order.
E13B_ALPHABET = DIGITS + ("transit", "amount", "on_us", "dash")
CMC7_ALPHABET = DIGITS + ("S1", "S2", "S3", "S4", "S5")

FONT_ALPHABETS = {
    "e13b": E13B_ALPHABET,
    "cmc7": CMC7_ALPHABET,
}

# Symbol name to display string mapping
CHAR_DISPLAY = {
    "transit": "⑆",  # U+2446 surrounds routing number
    "amount": "⑇",  # U+2447 surrounds amount field
    "on_us": "⑈",  # U+2448 separates account/check fields
    "dash": "⑉",  # U+2449 separator within account number
    "S1": "A",
    "S2": "B",
    "S3": "C",
    "S4": "D",
    "S5": "E",
}

PLACEHOLDER = "?"


def display_char(symbol: str) -> str:
    return CHAR_DISPLAY.get(symbol, symbol)


class PixelFormat(Enum):
    """Raster layouts accepted by the engine."""

    Y = "y"
    RGB24 = "rgb24"
    BGR24 = "bgr24"
    RGBA32 = "rgba32"
    BGRA32 = "bgra32"
    NV12 = "nv12"
    NV21 = "nv21"
    YUV420P = "yuv420p"
    YVU420P = "yvu420p"
    YUV422P = "yuv422p"
    YUV444P = "yuv444p"

    @property
    def bytes_per_pixel(self) -> int:
        """Bytes per pixel of the first (or only) plane."""
        return {
            PixelFormat.RGB24: 3,
            PixelFormat.BGR24: 3,
            PixelFormat.RGBA32: 4,
            PixelFormat.BGRA32: 4,
        }.get(self, 1)

    @property
    def is_yuv(self) -> bool:
        return self not in (
            PixelFormat.Y,
            PixelFormat.RGB24,
            PixelFormat.BGR24,
            PixelFormat.RGBA32,
            PixelFormat.BGRA32,
        )

    def chroma_size(self, width: int, height: int) -> int:
        """Size in bytes of the tightly packed chroma planes."""
        cw = math.ceil(width / 2)
        ch = math.ceil(height / 2)
        if self in (PixelFormat.NV12, PixelFormat.NV21,
                    PixelFormat.YUV420P, PixelFormat.YVU420P):
            return 2 * cw * ch
        if self == PixelFormat.YUV422P:
            return 2 * cw * height
        if self == PixelFormat.YUV444P:
            return 2 * width * height
        return 0


_GRAY_CONVERSIONS = {
    PixelFormat.RGB24: cv2.COLOR_RGB2GRAY,
    PixelFormat.BGR24: cv2.COLOR_BGR2GRAY,
    PixelFormat.RGBA32: cv2.COLOR_RGBA2GRAY,
    PixelFormat.BGRA32: cv2.COLOR_BGRA2GRAY,
}


@dataclass
class ImageBuffer:
    """
    Normalized raster owned by the engine for the duration of one call.

    ``data`` is a flat uint8 array holding every plane; ``stride`` is the
    byte length of one row of the first plane.
    """

    width: int
    height: int
    pixel_format: PixelFormat
    data: np.ndarray
    stride: int = 0
    _gray: Optional[np.ndarray] = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if self.stride == 0:
            self.stride = self.width * self.pixel_format.bytes_per_pixel
        self.validate()

    def validate(self):
        """Raise ImageError if the buffer violates its layout invariants."""
        if self.width <= 0 or self.height <= 0:
            raise ImageError(
                f"Invalid image dimensions: {self.width}x{self.height}"
            )
        min_stride = self.width * self.pixel_format.bytes_per_pixel
        if self.stride < min_stride:
            raise ImageError(
                f"Stride {self.stride} is smaller than width x bytes-per-pixel "
                f"({min_stride})"
            )
        if not isinstance(self.data, np.ndarray) or self.data.dtype != np.uint8:
            raise ImageError("Pixel storage must be a uint8 numpy array")
        required = self.stride * self.height + self.pixel_format.chroma_size(
            self.width, self.height
        )
        if self.data.size < required:
            raise ImageError(
                f"Pixel storage holds {self.data.size} bytes, "
                f"{required} required for {self.pixel_format.value} "
                f"{self.width}x{self.height}"
            )

    @classmethod
    def from_array(
        cls, image: np.ndarray, pixel_format: Optional[PixelFormat] = None
    ) -> "ImageBuffer":
        """
        Build a buffer from a numpy image (OpenCV layout).

        2-D arrays are grayscale; 3 channels default to BGR24 and
        4 channels to BGRA32, matching what cv2.imread returns.
        """
        if not isinstance(image, np.ndarray) or image.size == 0:
            raise ImageError("Image array is empty")
        if image.dtype != np.uint8:
            raise ImageError(f"Unsupported image dtype: {image.dtype}")

        if image.ndim == 2:
            fmt = pixel_format or PixelFormat.Y
        elif image.ndim == 3 and image.shape[2] == 3:
            fmt = pixel_format or PixelFormat.BGR24
        elif image.ndim == 3 and image.shape[2] == 4:
            fmt = pixel_format or PixelFormat.BGRA32
        else:
            raise ImageError(f"Unsupported image shape: {image.shape}")

        channels = 1 if image.ndim == 2 else image.shape[2]
        if channels != fmt.bytes_per_pixel:
            raise ImageError(
                f"{fmt.value} expects {fmt.bytes_per_pixel} channel(s), "
                f"array has {channels}"
            )

        h, w = image.shape[:2]
        data = np.ascontiguousarray(image).reshape(-1).copy()
        return cls(width=w, height=h, pixel_format=fmt, data=data,
                   stride=w * channels)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        width: int,
        height: int,
        pixel_format: PixelFormat,
        stride: Optional[int] = None,
    ) -> "ImageBuffer":
        """Build a buffer from raw bytes (camera frames, decoded files)."""
        buf = np.frombuffer(bytes(data), dtype=np.uint8).copy()
        return cls(
            width=width,
            height=height,
            pixel_format=pixel_format,
            data=buf,
            stride=stride or 0,
        )

    def gray(self) -> np.ndarray:
        """Return the 8-bit luminance plane as a (height, width) array."""
        if self._gray is None:
            bpp = self.pixel_format.bytes_per_pixel
            rows = self.data[: self.stride * self.height].reshape(
                self.height, self.stride
            )
            packed = rows[:, : self.width * bpp]
            if self.pixel_format in _GRAY_CONVERSIONS:
                pixels = np.ascontiguousarray(packed).reshape(
                    self.height, self.width, bpp
                )
                gray = cv2.cvtColor(pixels, _GRAY_CONVERSIONS[self.pixel_format])
            else:
                # Y plane of every YUV layout, or plain grayscale
                gray = packed
            self._gray = np.ascontiguousarray(gray)
        return self._gray


@dataclass(frozen=True)
class Region:
    """Axis-aligned rectangle (x, y, w, h) in image pixel coordinates."""

    x: int
    y: int
    w: int
    h: int

    @property
    def right(self) -> int:
        return self.x + self.w

    @property
    def bottom(self) -> int:
        return self.y + self.h

    @property
    def area(self) -> int:
        return max(0, self.w) * max(0, self.h)

    @property
    def is_empty(self) -> bool:
        return self.w <= 0 or self.h <= 0

    def contains(self, other: "Region") -> bool:
        return (
            other.x >= self.x
            and other.y >= self.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )

    def intersection(self, other: "Region") -> Optional["Region"]:
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.right, other.right)
        y1 = min(self.bottom, other.bottom)
        if x1 <= x0 or y1 <= y0:
            return None
        return Region(x0, y0, x1 - x0, y1 - y0)

    def clip(self, width: int, height: int) -> Optional["Region"]:
        """Clip to an image of the given size; None if nothing remains."""
        return self.intersection(Region(0, 0, width, height))

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    @classmethod
    def from_sequence(cls, values) -> "Region":
        x, y, w, h = (int(v) for v in values)
        return cls(x, y, w, h)


@dataclass(frozen=True)
class ClassificationCandidate:
    """A (symbol, score) pair with score in [0, 1]."""

    symbol: str
    score: float


@dataclass
class Glyph:
    """A segmented character candidate within a band."""

    region: Region
    index: int
    image: np.ndarray  # owned binary crop, ink=255
    candidates: list[ClassificationCandidate] = field(default_factory=list)
    rejected: bool = False  # top score below min_score
    fallback: bool = False  # whole band, segmentation found no split

    @property
    def best(self) -> Optional[ClassificationCandidate]:
        return self.candidates[0] if self.candidates else None


@dataclass
class RecognizedLine:
    """A band resolved to one symbol per glyph."""

    symbols: list[str]
    glyph_confidences: list[float]
    confidence: float
    region: Region
    font: str = "e13b"
    glyphs: list[Glyph] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(display_char(s) for s in self.symbols)

    @property
    def placeholder_count(self) -> int:
        return sum(1 for s in self.symbols if s == PLACEHOLDER)


@dataclass
class MICRFields:
    """Check fields parsed from an E-13B line."""

    routing_number: Optional[str] = None
    account_number: Optional[str] = None
    check_number: Optional[str] = None
    amount: Optional[str] = None
    routing_valid: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "routing_number": self.routing_number,
            "account_number": self.account_number,
            "check_number": self.check_number,
            "amount": self.amount,
            "routing_valid": self.routing_valid,
            "warnings": list(self.warnings),
        }
