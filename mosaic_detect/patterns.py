"""Synthetic grid-line templates, one per candidate block size.

A candidate is parameterised by ``masksize`` (one larger than the block size
under test).  Patterns are stored by pattern index and match counts by
resolution index; always go through the helpers below to convert.
"""

from __future__ import annotations

import logging
from typing import Dict, List

import cv2
import numpy as np

from .config import DetectionConfig

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)
BLACK = (0, 0, 0)
LINE_START = 2  # first grid line sits two pixels in


def pattern_index_of(masksize: int) -> int:
    return masksize - 2


def resolution_index_of(masksize: int) -> int:
    return masksize - 1


def masksize_of_resolution_index(index: int) -> int:
    return index + 1


def pattern_side(masksize: int) -> int:
    """Canvas side for a masksize: 2 px margin, two spans, 2 px margin."""
    return 2 + masksize + masksize - 1 + 2


def candidate_masksizes(config: DetectionConfig) -> List[int]:
    """Masksizes to test, largest first."""
    return list(range(config.high_range + 2, config.low_range + 1, -1))


def build_pattern(masksize: int) -> np.ndarray:
    """Draw a white BGR canvas crossed by black lines every ``masksize - 1`` px."""
    side = pattern_side(masksize)
    img = np.zeros((side, side, 3), dtype=np.uint8)
    img[:] = WHITE
    step = masksize - 1
    for i in range(LINE_START, side, step):
        cv2.line(img, (i, 0), (i, side - 1), BLACK, 1)
    for j in range(LINE_START, side, step):
        cv2.line(img, (0, j), (side - 1, j), BLACK, 1)
    return img


def generate_patterns(width: int, height: int, config: DetectionConfig) -> Dict[int, np.ndarray]:
    """Build every pattern that fits inside a ``width`` x ``height`` image.

    Returns a mapping of pattern index to BGR pattern.  Candidates whose
    canvas is larger than the image are left out.
    """
    patterns: Dict[int, np.ndarray] = {}
    logger.debug(
        "Patterns for mask sizes from %d down to %d",
        config.high_range + 2, config.low_range + 2,
    )
    for masksize in candidate_masksizes(config):
        side = pattern_side(masksize)
        if side > width or side > height:
            logger.warning(
                "Pattern size %d for masksize %d exceeds image dimensions (%dx%d); skipping",
                side, masksize, width, height,
            )
            continue
        patterns[pattern_index_of(masksize)] = build_pattern(masksize)
    return patterns
