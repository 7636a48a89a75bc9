"""Turn the input image into the inverted, blurred edge map used for matching."""

from __future__ import annotations

import logging

import cv2
import numpy as np

from .config import DetectionConfig

logger = logging.getLogger(__name__)


def as_image_array(pixels, width: int, height: int, channels: int) -> np.ndarray:
    """View an interleaved 8-bit buffer as an ``(h, w, c)`` array without copying."""
    if isinstance(pixels, np.ndarray):
        flat = pixels.reshape(-1)
    else:
        flat = np.frombuffer(pixels, dtype=np.uint8)
    return flat[: width * height * channels].reshape(height, width, channels)


def to_bgra(image: np.ndarray) -> np.ndarray:
    """Bring an RGB or RGBA image into OpenCV's BGRA layout."""
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
    return cv2.cvtColor(image, cv2.COLOR_RGB2BGRA)


def build_edge_map(image: np.ndarray, config: DetectionConfig) -> np.ndarray:
    """Canny edges, inverted so edges are dark, then Gaussian smoothed.

    Args:
        image: RGB or RGBA uint8 array (H x W x 3 or 4).
        config: Supplies the Canny thresholds and blur kernel size.

    Returns:
        Single-channel uint8 array the same size as ``image``.
    """
    bgra = to_bgra(np.ascontiguousarray(image))
    gray = cv2.cvtColor(bgra, cv2.COLOR_BGRA2GRAY)
    edges = cv2.Canny(gray, config.canny_low, config.canny_high)
    inverted = 255 - edges
    k = config.blur_kernel_size
    edge_map = cv2.GaussianBlur(inverted, (k, k), 0)
    logger.debug(
        "Edge map built: %dx%d, %d edge pixels",
        edge_map.shape[1], edge_map.shape[0], int(np.count_nonzero(edges)),
    )
    return edge_map
