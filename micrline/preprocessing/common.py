"""Common image preprocessing utilities for MICR recognition."""

from typing import Union

import cv2
import numpy as np

INTERPOLATIONS = {
    "nearest": cv2.INTER_NEAREST,
    "bilinear": cv2.INTER_LINEAR,
}

# Gray range below which an image is treated as blank paper
MIN_CONTRAST = 32

Mat = Union[np.ndarray, cv2.UMat]


def to_device(image: np.ndarray, use_opencl: bool) -> Mat:
    """Wrap an array in a UMat so OpenCV runs the following ops through OpenCL."""
    return cv2.UMat(image) if use_opencl else image


def to_host(image: Mat) -> np.ndarray:
    return image.get() if isinstance(image, cv2.UMat) else image


def has_contrast(gray: np.ndarray, min_range: int = MIN_CONTRAST) -> bool:
    """Whether the image holds anything darker than its background."""
    if gray.size == 0:
        return False
    return int(gray.max()) - int(gray.min()) >= min_range


def binarize_otsu(gray: Mat) -> Mat:
    """Binarize using Otsu's method. Returns binary image (text=white, bg=black)."""
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    return binary


def binarize_adaptive(gray: Mat, block_size: int = 35, c: int = 15) -> Mat:
    """Binarize using adaptive Gaussian thresholding. Returns binary (text=white, bg=black)."""
    block_size = max(3, block_size | 1)
    binary = cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY_INV, block_size, c
    )
    return binary


def remove_noise_morphological(binary: Mat, kernel_size: int = 2) -> Mat:
    """Remove small noise using morphological opening."""
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (kernel_size, kernel_size))
    return cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)


def resize_to_height(
    image: np.ndarray, target_height: int, interpolation: int = cv2.INTER_LINEAR
) -> tuple[np.ndarray, float, float]:
    """
    Resize image to a target height while preserving aspect ratio.

    Returns:
        (resized, scale_x, scale_y) where the scale factors map resized
        coordinates back to the original image.
    """
    h, w = image.shape[:2]
    if h == target_height:
        return image, 1.0, 1.0
    scale = target_height / h
    new_w = max(1, int(round(w * scale)))
    resized = cv2.resize(image, (new_w, target_height), interpolation=interpolation)
    return resized, w / new_w, h / target_height


def row_runs(mask: np.ndarray) -> list[tuple[int, int]]:
    """Return [start, end) index pairs of consecutive True values in a 1-D mask."""
    padded = np.concatenate(([False], mask.astype(bool), [False]))
    diff = np.diff(padded.astype(np.int8))
    starts = np.where(diff == 1)[0]
    ends = np.where(diff == -1)[0]
    return [(int(s), int(e)) for s, e in zip(starts, ends)]
