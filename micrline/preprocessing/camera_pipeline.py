"""Preprocessing pipeline for camera frames (YUV-family inputs)."""

import cv2

from micrline.preprocessing.common import Mat


def preprocess_camera(gray: Mat) -> Mat:
    """
    Stronger preprocessing for camera/phone frames.

    Handles variable lighting and sensor noise while keeping geometry
    unchanged, so detected regions stay in source image coordinates.

    Steps:
    1. Bilateral filtering (noise reduction, edge preservation)
    2. CLAHE (contrast enhancement under uneven illumination)
    """
    gray = cv2.bilateralFilter(gray, 9, 75, 75)

    clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
    return clahe.apply(gray)
