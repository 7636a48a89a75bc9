"""
Mosaic resolution detection.

Implements a four-step process:
1. Edge map: Canny edges of the input, inverted and blurred (computed once)
2. Patterns: one synthetic grid-line template per candidate block size
3. Matching: normalized cross-correlation, counting strong matches per candidate
4. Selection: local-minima grouping of the count curve with a scored tie-break
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import numpy as np
from PIL import Image

from .config import INVALID_RESOLUTION, DetectionConfig
from .matcher import CandidateMatch, count_matches
from .patterns import generate_patterns, resolution_index_of
from .preprocess import as_image_array, build_edge_map
from .selector import Group, extrema_indices, select_group, select_resolution
from .validation import MosaicDetectError, validate_config, validate_image, warn_if_small

logger = logging.getLogger(__name__)


@dataclass
class DetectionReport:
    """Everything a detection run produced, for inspection and overlays."""

    resolution: int
    width: int
    height: int
    counts: List[int]
    extrema: List[int]
    group: Optional[Group] = None
    matches: List[CandidateMatch] = field(default_factory=list)

    @property
    def inconclusive(self) -> bool:
        return self.group is None


def _match_curve(pixels, width: int, height: int, channels: int, config: DetectionConfig, keep_points: bool):
    validate_image(pixels, width, height, channels)
    validate_config(config)
    warn_if_small(width, height, config)

    image = as_image_array(pixels, width, height, channels)
    edge_map = build_edge_map(image, config)
    patterns = generate_patterns(width, height, config)

    logger.debug("Starting template matching over %d patterns", len(patterns))
    counts, matches = count_matches(edge_map, patterns, config, keep_points=keep_points)
    first = resolution_index_of(config.low_range + 2)
    last = resolution_index_of(config.high_range + 2)
    logger.debug("Resolution counts (indices %d to %d): %s", first, last, counts[first:last + 1])
    return counts, matches


def detect(pixels, width: int, height: int, channels: int, config: Optional[DetectionConfig] = None) -> int:
    """Estimate the mosaic block size of an interleaved RGB/RGBA buffer.

    Args:
        pixels: 8-bit interleaved buffer (bytes-like or uint8 ndarray); never modified.
        width: Image width in pixels.
        height: Image height in pixels.
        channels: 3 (RGB) or 4 (RGBA).
        config: Optional parameter overrides.

    Returns:
        Detected block size, ``config.default_resolution`` when inconclusive,
        or -1 when the input or configuration is invalid.
    """
    config = config or DetectionConfig()
    try:
        counts, _ = _match_curve(pixels, width, height, channels, config, keep_points=False)
    except MosaicDetectError as exc:
        logger.error("Invalid input (width=%s, height=%s, channels=%s): %s", width, height, channels, exc)
        return INVALID_RESOLUTION

    resolution = select_resolution(counts, config)
    logger.info("Detected mosaic resolution: %d", resolution)
    return resolution


def detect_report(
    pixels,
    width: int,
    height: int,
    channels: int,
    config: Optional[DetectionConfig] = None,
    keep_points: bool = True,
) -> DetectionReport:
    """Like :func:`detect` but keeps intermediate results.

    Raises InvalidImageError / InvalidConfigError instead of returning -1.
    """
    config = config or DetectionConfig()
    counts, matches = _match_curve(pixels, width, height, channels, config, keep_points=keep_points)
    extrema = extrema_indices(counts, config)
    group = select_group(counts, extrema, config) if len(extrema) >= 2 else None
    resolution = select_resolution(counts, config)
    return DetectionReport(
        resolution=resolution,
        width=width,
        height=height,
        counts=counts,
        extrema=extrema,
        group=group,
        matches=matches,
    )


def detect_array(image: np.ndarray, config: Optional[DetectionConfig] = None) -> int:
    """Run :func:`detect` on an ``(h, w, 3|4)`` uint8 array."""
    if image is None or image.ndim != 3:
        logger.error("Expected an (h, w, channels) array, got %s", None if image is None else image.shape)
        return INVALID_RESOLUTION
    height, width, channels = image.shape
    return detect(np.ascontiguousarray(image), width, height, channels, config)


def load_rgb_image(path: Path) -> np.ndarray:
    """Decode an image file to RGB, or RGBA when it carries transparency."""
    with Image.open(path) as img:
        mode = "RGBA" if img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info else "RGB"
        return np.array(img.convert(mode))


def detect_file(path: Path, config: Optional[DetectionConfig] = None) -> int:
    return detect_array(load_rgb_image(Path(path)), config)
