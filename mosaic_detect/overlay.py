"""Visual side output: mark every matched template position on a transparent card."""

from __future__ import annotations

import logging
from typing import Iterable

import cv2
import numpy as np

from .matcher import CandidateMatch

logger = logging.getLogger(__name__)

MARK_COLOR = (0, 0, 0, 255)  # opaque black, BGRA


def build_overlay(width: int, height: int, matches: Iterable[CandidateMatch]) -> np.ndarray:
    """Draw filled rectangles for each matched position.

    Args:
        width: Width of the analysed image.
        height: Height of the analysed image.
        matches: Candidate matches collected with ``keep_points=True``.

    Returns:
        BGRA uint8 array (H x W x 4); untouched pixels stay fully transparent.
    """
    card = np.zeros((height, width, 4), dtype=np.uint8)
    for match in matches:
        w, h = match.template_width, match.template_height
        for x, y in match.points:
            if x < 0 or y < 0 or x + w > width or y + h > height:
                logger.warning(
                    "Rectangle out of bounds at (%d, %d) size (%d, %d) for masksize %d",
                    x, y, w, h, match.masksize,
                )
                continue
            cv2.rectangle(card, (x, y), (x + w, y + h), MARK_COLOR, -1)
    return card


def overlay_to_rgba(overlay: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(overlay, cv2.COLOR_BGRA2RGBA)
