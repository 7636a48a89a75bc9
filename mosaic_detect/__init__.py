"""Public interface for the mosaic resolution detector."""

from __future__ import annotations

from .config import DEFAULT_RESOLUTION, INVALID_RESOLUTION, DetectionConfig, load_config
from .detector import DetectionReport, detect, detect_array, detect_file, detect_report
from .overlay import build_overlay
from .validation import InvalidConfigError, InvalidImageError, MosaicDetectError

__all__ = [
    "DEFAULT_RESOLUTION",
    "INVALID_RESOLUTION",
    "DetectionConfig",
    "DetectionReport",
    "InvalidConfigError",
    "InvalidImageError",
    "MosaicDetectError",
    "build_overlay",
    "detect",
    "detect_array",
    "detect_file",
    "detect_report",
    "load_config",
]
