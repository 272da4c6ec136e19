"""Preprocessing pipeline optimized for scanner/check-scanner images."""

import cv2

from micrline.preprocessing.common import Mat


def preprocess_scanner(gray: Mat) -> Mat:
    """
    Light preprocessing for clean scanner images and RGB-family inputs.

    A small Gaussian blur smooths scanner artifacts before binarization.
    """
    return cv2.GaussianBlur(gray, (3, 3), 0)
