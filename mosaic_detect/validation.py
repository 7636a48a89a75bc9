"""Entry checks run before any image work is done."""

from __future__ import annotations

import logging

import numpy as np

from .config import DetectionConfig

logger = logging.getLogger(__name__)

SUPPORTED_CHANNELS = (3, 4)


class MosaicDetectError(Exception):
    """Base class for detection failures."""


class InvalidImageError(MosaicDetectError, ValueError):
    """The pixel buffer or its declared geometry cannot be used."""


class InvalidConfigError(MosaicDetectError, ValueError):
    """A detection parameter is out of its allowed domain."""


def _buffer_size(pixels) -> int:
    if isinstance(pixels, np.ndarray):
        return int(pixels.nbytes)
    return memoryview(pixels).nbytes


def validate_image(pixels, width: int, height: int, channels: int) -> None:
    """Raise InvalidImageError describing the first violated constraint."""
    if pixels is None:
        raise InvalidImageError("pixel buffer is missing")
    try:
        size = _buffer_size(pixels)
    except TypeError as exc:
        raise InvalidImageError(f"pixel buffer is not bytes-like: {exc}") from exc
    if size == 0:
        raise InvalidImageError("pixel buffer is empty")
    if width <= 0:
        raise InvalidImageError(f"width must be positive, got {width}")
    if height <= 0:
        raise InvalidImageError(f"height must be positive, got {height}")
    if channels not in SUPPORTED_CHANNELS:
        raise InvalidImageError(f"channel count must be 3 or 4, got {channels}")
    if isinstance(pixels, np.ndarray) and pixels.dtype != np.uint8:
        raise InvalidImageError(f"pixel array must be uint8, got {pixels.dtype}")
    expected = width * height * channels
    if size < expected:
        raise InvalidImageError(
            f"pixel buffer holds {size} bytes, {width}x{height}x{channels} needs {expected}"
        )


def validate_config(config: DetectionConfig) -> None:
    """Raise InvalidConfigError if the detection parameters are unusable."""
    k = config.blur_kernel_size
    if k <= 0 or k % 2 == 0:
        raise InvalidConfigError(f"blur_kernel_size must be a positive odd number, got {k}")
    if config.canny_low < 0 or config.canny_high < config.canny_low:
        raise InvalidConfigError(
            f"Canny thresholds must satisfy 0 <= low <= high, got ({config.canny_low}, {config.canny_high})"
        )
    if not -1.0 <= config.detection_threshold <= 1.0:
        raise InvalidConfigError(
            f"detection_threshold must be within [-1, 1], got {config.detection_threshold}"
        )
    if config.low_range < 2 or config.high_range <= config.low_range:
        raise InvalidConfigError(
            f"candidate range must satisfy 2 <= low < high, got [{config.low_range}, {config.high_range}]"
        )
    if config.workers < 1:
        raise InvalidConfigError(f"workers must be >= 1, got {config.workers}")


def minimum_side(config: DetectionConfig) -> int:
    """Smallest image side that fits the pattern of the largest candidate."""
    return 2 * (config.high_range + 2) + 3


def warn_if_small(width: int, height: int, config: DetectionConfig) -> bool:
    """Log when only part of the candidate range can be tested.

    Returns True if the image is large enough for every candidate.
    """
    needed = minimum_side(config)
    if width < needed or height < needed:
        logger.warning(
            "Image too small (%dx%d) for the full candidate range up to %d; needs %dx%d. "
            "Oversized candidates will be skipped.",
            width, height, config.high_range, needed, needed,
        )
        return False
    return True
