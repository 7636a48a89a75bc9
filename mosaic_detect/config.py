"""Detection configuration: candidate range, thresholds and sentinels."""

import json
from dataclasses import dataclass
from pathlib import Path


# ---------------------------------------------------------------------------
# Candidate block size range
# ---------------------------------------------------------------------------
LOW_RANGE = 2
HIGH_RANGE = 25

# ---------------------------------------------------------------------------
# Edge preprocessing
# ---------------------------------------------------------------------------
CANNY_LOW = 8
CANNY_HIGH = 30
BLUR_KERNEL_SIZE = 5  # must be odd

# ---------------------------------------------------------------------------
# Matching and scoring
# ---------------------------------------------------------------------------
DETECTION_THRESHOLD = 0.29
SUM_BONUS = 0.05
MAX_BONUS = 0.15

# Result sentinels
INVALID_RESOLUTION = -1


@dataclass
class DetectionConfig:
    """Tunable parameters for one detection run."""

    low_range: int = LOW_RANGE
    high_range: int = HIGH_RANGE
    canny_low: int = CANNY_LOW
    canny_high: int = CANNY_HIGH
    blur_kernel_size: int = BLUR_KERNEL_SIZE
    detection_threshold: float = DETECTION_THRESHOLD
    sum_bonus: float = SUM_BONUS
    max_bonus: float = MAX_BONUS
    workers: int = 1  # >1 matches candidates on a thread pool

    @property
    def default_resolution(self) -> int:
        """Sentinel returned when no reliable grid is found."""
        return self.high_range + 1

    @property
    def counts_length(self) -> int:
        return self.high_range + 3

    def to_dict(self) -> dict:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, d: dict) -> "DetectionConfig":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


def load_config(path: Path) -> DetectionConfig:
    """Read a JSON file of overrides on top of the defaults."""
    with Path(path).open() as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return DetectionConfig.from_dict(data)


DEFAULT_RESOLUTION = DetectionConfig().default_resolution
