"""Feature extraction shared by the glyph classifier backends."""

import cv2
import numpy as np

# Side of the aspect-preserving canvas used for zoning and kNN samples
CANVAS_SIZE = 32

# Smallest Hu moment magnitude kept apart from zero
HU_FLOOR = 1e-10


def trim_roi(roi: np.ndarray, ratio: float = 0.05) -> np.ndarray:
    """
    Trim low-density edges from a character ROI.

    Noise artifacts can add thin trailing pixels that inflate the bounding
    box. This trims columns/rows from the edges where the projection is
    below ``ratio`` of the peak, restoring the true character dimensions.
    """
    h, w = roi.shape[:2]
    if h < 3 or w < 3:
        return roi

    # Trim columns from left and right
    v_proj = np.sum(roi > 0, axis=0)
    v_peak = v_proj.max()
    if v_peak == 0:
        return roi

    v_threshold = v_peak * ratio
    left = 0
    while left < w and v_proj[left] < v_threshold:
        left += 1
    right = w - 1
    while right > left and v_proj[right] < v_threshold:
        right -= 1

    # Trim rows from top and bottom
    h_proj = np.sum(roi > 0, axis=1)
    h_threshold = h_proj.max() * ratio
    top = 0
    while top < h and h_proj[top] < h_threshold:
        top += 1
    bottom = h - 1
    while bottom > top and h_proj[bottom] < h_threshold:
        bottom -= 1

    trimmed = roi[top:bottom + 1, left:right + 1]
    if trimmed.shape[0] < 3 or trimmed.shape[1] < 3:
        return roi
    return trimmed


def glyph_canvas(binary_roi: np.ndarray, size: int = CANVAS_SIZE) -> np.ndarray:
    """Fit a glyph into a square canvas, keeping its aspect ratio. Values in [0, 1]."""
    h, w = binary_roi.shape[:2]
    scale = (size - 2) / max(h, w, 1)
    new_h = max(1, int(round(h * scale)))
    new_w = max(1, int(round(w * scale)))
    resized = cv2.resize(binary_roi, (new_w, new_h), interpolation=cv2.INTER_AREA)

    canvas = np.zeros((size, size), dtype=np.float32)
    y0 = (size - new_h) // 2
    x0 = (size - new_w) // 2
    canvas[y0:y0 + new_h, x0:x0 + new_w] = resized.astype(np.float32) / 255.0
    return canvas


def compute_features(binary_roi: np.ndarray) -> dict:
    """Compute a feature vector for a binary character image."""
    h, w = binary_roi.shape[:2]

    total_pixels = h * w
    white_pixels = np.sum(binary_roi > 0)
    density = white_pixels / max(total_pixels, 1)
    aspect_ratio = w / max(h, 1)

    # Hu moments (log-transformed). Symmetric glyphs have zero odd-order
    # moments while their crops land near zero, so both clamp to the floor.
    moments = cv2.moments(binary_roi)
    hu_moments = cv2.HuMoments(moments).flatten()
    hu_log = np.array([
        (-1.0 if hm < -HU_FLOOR else 1.0) * -np.log10(max(abs(hm), HU_FLOOR))
        for hm in hu_moments
    ])

    # Horizontal projection profile (normalized, resampled to 16 bins)
    h_proj = np.sum(binary_roi, axis=1).astype(float)
    if h_proj.max() > 0:
        h_proj /= h_proj.max()
    h_proj_fixed = cv2.resize(
        h_proj.reshape(-1, 1), (1, 16), interpolation=cv2.INTER_LINEAR
    ).flatten()

    # Vertical projection profile (normalized, resampled to 16 bins)
    v_proj = np.sum(binary_roi, axis=0).astype(float)
    if v_proj.max() > 0:
        v_proj /= v_proj.max()
    v_proj_fixed = cv2.resize(
        v_proj.reshape(-1, 1), (1, 16), interpolation=cv2.INTER_LINEAR
    ).flatten()

    n_labels, _ = cv2.connectedComponents(binary_roi)
    n_components = n_labels - 1

    # Horizontal symmetry
    resized = cv2.resize(binary_roi, (32, 32))
    flipped_h = cv2.flip(resized, 1)
    h_sym = np.sum(resized == flipped_h) / (32 * 32)

    # Half densities
    mid_h = max(1, h // 2)
    mid_w = max(1, w // 2)
    top_density = np.sum(binary_roi[:mid_h, :] > 0) / max(mid_h * w, 1)
    bottom_density = np.sum(binary_roi[mid_h:, :] > 0) / max((h - mid_h) * w, 1)
    left_density = np.sum(binary_roi[:, :mid_w] > 0) / max(h * mid_w, 1)
    right_density = np.sum(binary_roi[:, mid_w:] > 0) / max(h * (w - mid_w), 1)

    return {
        "density": density,
        "aspect_ratio": aspect_ratio,
        "hu_moments": hu_log,
        "h_proj": h_proj_fixed,
        "v_proj": v_proj_fixed,
        "n_components": n_components,
        "h_symmetry": h_sym,
        "top_density": top_density,
        "bottom_density": bottom_density,
        "left_density": left_density,
        "right_density": right_density,
        # Zoning separates mirror pairs (2/5) that the global features cannot
        "zones": glyph_canvas(binary_roi),
    }


def compare_features(feat1: dict, feat2: dict) -> float:
    """
    Compare two feature vectors and return a similarity score [0, 1].
    """
    scores = []
    weights = []

    # Zoning: mean absolute difference of the normalized canvases
    zone_diff = float(np.mean(np.abs(feat1["zones"] - feat2["zones"])))
    scores.append(max(0.0, 1.0 - zone_diff * 2.0))
    weights.append(4.0)

    # Hu moments distance (first 4 moments)
    hu_dist = np.linalg.norm(feat1["hu_moments"][:4] - feat2["hu_moments"][:4])
    scores.append(max(0.0, 1.0 - hu_dist / 10.0))
    weights.append(3.0)

    density_diff = abs(feat1["density"] - feat2["density"])
    scores.append(max(0.0, 1.0 - density_diff * 4.0))
    weights.append(2.0)

    ar_diff = abs(feat1["aspect_ratio"] - feat2["aspect_ratio"])
    scores.append(max(0.0, 1.0 - ar_diff * 3.0))
    weights.append(2.0)

    # Projection profile correlations
    for key in ("h_proj", "v_proj"):
        with np.errstate(divide="ignore", invalid="ignore"):
            corr = np.corrcoef(feat1[key], feat2[key])[0, 1]
        if np.isnan(corr):
            # Flat profiles (bars) correlate with nothing; compare levels instead
            corr = 1.0 - 2.0 * float(np.mean(np.abs(feat1[key] - feat2[key])))
        scores.append(max(0.0, (corr + 1.0) / 2.0))
        weights.append(1.5)

    comp_diff = abs(feat1["n_components"] - feat2["n_components"])
    scores.append(max(0.0, 1.0 - comp_diff * 0.3))
    weights.append(1.0)

    sym_diff = abs(feat1["h_symmetry"] - feat2["h_symmetry"])
    scores.append(max(0.0, 1.0 - sym_diff * 3.0))
    weights.append(0.5)

    td = abs(feat1["top_density"] - feat2["top_density"])
    bd = abs(feat1["bottom_density"] - feat2["bottom_density"])
    ld = abs(feat1["left_density"] - feat2["left_density"])
    rd = abs(feat1["right_density"] - feat2["right_density"])
    scores.append(max(0.0, 1.0 - (td + bd + ld + rd)))
    weights.append(1.0)

    total_weight = sum(weights)
    weighted_sum = sum(s * w for s, w in zip(scores, weights))

    return float(min(1.0, max(0.0, weighted_sum / total_weight)))
