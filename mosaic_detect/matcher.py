"""Normalized template matching of each candidate pattern against the edge map."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .config import DetectionConfig
from .patterns import candidate_masksizes, pattern_index_of, resolution_index_of

logger = logging.getLogger(__name__)


@dataclass
class CandidateMatch:
    """Strong matches found for one masksize."""

    masksize: int
    template_width: int
    template_height: int
    count: int
    points: List[Tuple[int, int]] = field(default_factory=list)  # (x, y) top-left corners


def match_pattern(
    edge_map: np.ndarray,
    pattern: np.ndarray,
    masksize: int,
    config: DetectionConfig,
    keep_points: bool = False,
) -> Optional[CandidateMatch]:
    """Count positions where ``pattern`` correlates with ``edge_map``.

    Returns None when the template does not fit inside the edge map.
    """
    template = cv2.cvtColor(pattern, cv2.COLOR_BGR2GRAY)
    h, w = template.shape[:2]
    if w > edge_map.shape[1] or h > edge_map.shape[0]:
        return None

    scores = cv2.matchTemplate(edge_map, template, cv2.TM_CCOEFF_NORMED)
    # THRESH_BINARY keeps strictly-greater values; use >= directly
    hits = scores >= config.detection_threshold
    count = int(np.count_nonzero(hits))

    points: List[Tuple[int, int]] = []
    if keep_points and count:
        ys, xs = np.nonzero(hits)
        points = list(zip(xs.tolist(), ys.tolist()))

    logger.debug("Masksize %d (res_idx %d) found %d matches", masksize, resolution_index_of(masksize), count)
    return CandidateMatch(
        masksize=masksize,
        template_width=w,
        template_height=h,
        count=count,
        points=points,
    )


def count_matches(
    edge_map: np.ndarray,
    patterns: Dict[int, np.ndarray],
    config: DetectionConfig,
    keep_points: bool = False,
) -> Tuple[List[int], List[CandidateMatch]]:
    """Match every available pattern and collect the per-candidate counts.

    Returns ``(counts, matches)``: ``counts`` has ``high_range + 3`` slots with
    each candidate's count at its resolution index and zeros elsewhere.
    """
    counts = [0] * config.counts_length
    jobs: List[Tuple[int, np.ndarray]] = []

    for masksize in candidate_masksizes(config):
        p_idx = pattern_index_of(masksize)
        r_idx = resolution_index_of(masksize)
        if p_idx < 0 or r_idx < 0 or r_idx >= len(counts):
            logger.error(
                "Index out of bounds during detection (pattern_idx=%d, resolution_idx=%d); skipping masksize %d",
                p_idx, r_idx, masksize,
            )
            continue
        pattern = patterns.get(p_idx)
        if pattern is None:
            continue
        jobs.append((masksize, pattern))

    def _run(job: Tuple[int, np.ndarray]) -> Optional[CandidateMatch]:
        masksize, pattern = job
        return match_pattern(edge_map, pattern, masksize, config, keep_points)

    if config.workers > 1 and len(jobs) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as pool:
            results = list(pool.map(_run, jobs))
    else:
        results = [_run(job) for job in jobs]

    matches: List[CandidateMatch] = []
    for result in results:
        if result is None:
            continue
        counts[resolution_index_of(result.masksize)] = result.count
        matches.append(result)
    return counts, matches
