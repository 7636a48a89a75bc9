"""Turn the match-count curve into a single mosaic resolution.

The curve is split at its local minima into groups of neighbouring
candidates.  The group with the largest (bonused) total wins, ties broken by
its (bonused) peak and then by the smaller candidate size.  The reported
resolution is the position of the winning group's peak plus one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import DetectionConfig
from .patterns import masksize_of_resolution_index

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Group:
    start: int
    end: int
    total: int
    peak: int
    position: int  # first index of ``peak`` scanning from ``start``


def bonus_score(value: int, bonus: float) -> int:
    """``value`` plus a percentage bonus truncated toward zero."""
    return value + int(value * bonus)


def find_local_minima(counts: Sequence[int]) -> List[int]:
    """Indices strictly below the left neighbour and not above the right one.

    NOTE: the test is asymmetric (< on the left, <= on the right), so a flat
    valley is only marked on its leading edge.  Kept as-is; a symmetric test
    changes which groups are formed.
    """
    return [
        i
        for i in range(1, len(counts) - 1)
        if counts[i] < counts[i - 1] and counts[i] <= counts[i + 1]
    ]


def extrema_indices(counts: Sequence[int], config: DetectionConfig) -> List[int]:
    indices = [config.low_range] + find_local_minima(counts) + [config.high_range + 2]
    return sorted(set(indices))


def summarize_group(counts: Sequence[int], start: int, end: int) -> Group:
    """Sum, peak and first peak position of ``counts[start:end + 1]``."""
    window = list(counts[start:end + 1])
    peak = max(window)
    return Group(
        start=start,
        end=end,
        total=sum(window),
        peak=peak,
        position=start + window.index(peak),
    )


def _beats(candidate: Group, best: Group, config: DetectionConfig) -> bool:
    cand_sum = bonus_score(candidate.total, config.sum_bonus)
    best_sum = bonus_score(best.total, config.sum_bonus)
    if cand_sum != best_sum:
        return cand_sum > best_sum
    cand_max = bonus_score(candidate.peak, config.max_bonus)
    best_max = bonus_score(best.peak, config.max_bonus)
    if cand_max != best_max:
        return cand_max > best_max
    return candidate.position < best.position


def select_group(
    counts: Sequence[int],
    extrema: Sequence[int],
    config: DetectionConfig,
) -> Optional[Group]:
    """Pick the best-scoring group between consecutive extrema, if any has signal."""
    best: Optional[Group] = None
    for start, end in zip(extrema, extrema[1:]):
        if start < 0 or end >= len(counts) or start > end:
            logger.error(
                "Invalid extrema group [%d, %d] for %d counts; skipping", start, end, len(counts)
            )
            continue
        group = summarize_group(counts, start, end)
        if group.peak <= 0:
            continue
        if best is None or _beats(group, best, config):
            best = group
    return best


def select_resolution(counts: Sequence[int], config: Optional[DetectionConfig] = None) -> int:
    """Mosaic resolution for a filled count curve, or the default sentinel."""
    config = config or DetectionConfig()
    default = config.default_resolution

    extrema = extrema_indices(counts, config)
    logger.debug("Final extrema indices defining groups: %s", extrema)
    if len(extrema) < 2:
        logger.info("Not enough extrema points (%d) to form groups", len(extrema))
        return default

    best = select_group(counts, extrema, config)
    if best is None:
        logger.info("No clear best group found; using default resolution %d", default)
        return default

    resolution = masksize_of_resolution_index(best.position)
    if resolution == 0:
        logger.warning("Computed resolution was 0; using default resolution %d", default)
        return default
    return resolution
