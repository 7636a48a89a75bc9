"""End-to-end tests for mosaic resolution detection.

Exercises validation, patterns, the edge map, matching and the overlay on
small synthetic images.
"""

from __future__ import annotations

import json

import cv2
import numpy as np
import pytest

import mosaic_detect.detector as detector_module
from mosaic_detect import (
    DEFAULT_RESOLUTION,
    INVALID_RESOLUTION,
    DetectionConfig,
    InvalidConfigError,
    InvalidImageError,
    build_overlay,
    detect,
    detect_array,
    detect_file,
    detect_report,
    load_config,
)
from mosaic_detect.matcher import CandidateMatch, count_matches, match_pattern
from mosaic_detect.patterns import (
    build_pattern,
    candidate_masksizes,
    generate_patterns,
    masksize_of_resolution_index,
    pattern_index_of,
    pattern_side,
    resolution_index_of,
)
from mosaic_detect.preprocess import as_image_array, build_edge_map
from mosaic_detect.validation import minimum_side, validate_config, validate_image

VALID_RESULTS = {INVALID_RESOLUTION, DEFAULT_RESOLUTION} | set(range(4, 28))


# ---------------------------------------------------------------------------
# Synthetic image helpers
# ---------------------------------------------------------------------------


def _make_uniform(size: int = 80, channels: int = 3, value: int = 128) -> np.ndarray:
    return np.full((size, size, channels), value, dtype=np.uint8)


def _make_grid_image(masksize: int, size: int = 120) -> np.ndarray:
    """White RGB image with black lines at the spacing of a masksize pattern."""
    img = np.full((size, size, 3), 255, dtype=np.uint8)
    step = masksize - 1
    img[:, 2::step] = 0
    img[2::step, :] = 0
    return img


def _make_mosaic(block: int = 8, size: int = 96) -> np.ndarray:
    """Random colours blown up into ``block`` x ``block`` squares."""
    rng = np.random.RandomState(7)
    cells = rng.randint(0, 256, (size // block, size // block, 3), dtype=np.uint8)
    return np.repeat(np.repeat(cells, block, axis=0), block, axis=1)


# ---------------------------------------------------------------------------
# Tests: validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize(
        "pixels, width, height, channels",
        [
            (None, 10, 10, 3),
            (b"", 10, 10, 3),
            (bytes(300), 0, 10, 3),
            (bytes(300), 10, -1, 3),
            (bytes(300), 10, 10, 2),
            (bytes(300), 10, 10, 1),
            (bytes(299), 10, 10, 3),
        ],
    )
    def test_invalid_inputs_return_minus_one(self, pixels, width, height, channels):
        assert detect(pixels, width, height, channels) == -1

    def test_invalid_input_raises_in_report(self):
        with pytest.raises(InvalidImageError):
            detect_report(None, 10, 10, 3)

    def test_validate_image_names_the_constraint(self):
        with pytest.raises(InvalidImageError, match="channel"):
            validate_image(bytes(40), 2, 5, 5)

    def test_non_uint8_array_rejected(self):
        img = np.zeros((40, 40, 3), dtype=np.float32)
        assert detect(img, 40, 40, 3) == -1

    def test_even_blur_kernel_rejected(self):
        config = DetectionConfig(blur_kernel_size=4)
        with pytest.raises(InvalidConfigError):
            validate_config(config)
        img = _make_uniform()
        assert detect(img, 80, 80, 3, config) == -1

    def test_minimum_side(self):
        assert minimum_side(DetectionConfig()) == 57

    def test_detect_array_rejects_2d(self):
        assert detect_array(np.zeros((20, 20), dtype=np.uint8)) == -1


# ---------------------------------------------------------------------------
# Tests: patterns
# ---------------------------------------------------------------------------


class TestPatterns:
    def test_index_conversions(self):
        assert pattern_index_of(10) == 8
        assert resolution_index_of(10) == 9
        assert masksize_of_resolution_index(resolution_index_of(17)) == 17

    def test_candidate_range(self):
        sizes = candidate_masksizes(DetectionConfig())
        assert sizes[0] == 27 and sizes[-1] == 4
        assert len(sizes) == 24

    def test_pattern_geometry(self):
        pattern = build_pattern(10)
        side = pattern_side(10)
        assert side == 23
        assert pattern.shape == (23, 23, 3)
        for line in (2, 11, 20):
            assert (pattern[:, line] == 0).all()
            assert (pattern[line, :] == 0).all()
        assert (pattern[0, 3] == 255).all()
        assert (pattern[1, 1] == 255).all()

    def test_oversized_patterns_skipped(self):
        patterns = generate_patterns(20, 20, DetectionConfig())
        assert sorted(patterns) == [pattern_index_of(m) for m in range(4, 9)]

    def test_non_square_image_uses_smaller_side(self):
        patterns = generate_patterns(200, 30, DetectionConfig())
        assert max(patterns) == pattern_index_of(13)


# ---------------------------------------------------------------------------
# Tests: edge map and matching
# ---------------------------------------------------------------------------


class TestEdgeMapAndMatching:
    def test_uniform_edge_map_is_white(self):
        edge_map = build_edge_map(_make_uniform(32), DetectionConfig())
        assert edge_map.shape == (32, 32)
        assert edge_map.dtype == np.uint8
        assert (edge_map == 255).all()

    def test_edges_are_dark(self):
        edge_map = build_edge_map(_make_grid_image(10, size=60), DetectionConfig())
        assert edge_map.min() < 200
        assert edge_map.max() == 255

    def test_as_image_array_from_bytes(self):
        img = _make_mosaic(block=4, size=16)
        view = as_image_array(img.tobytes(), 16, 16, 3)
        assert view.shape == (16, 16, 3)
        assert np.array_equal(view, img)

    def test_aligned_grid_matches_its_candidate(self):
        config = DetectionConfig()
        img = _make_grid_image(10)
        edge_map = build_edge_map(img, config)
        patterns = generate_patterns(120, 120, config)
        counts, matches = count_matches(edge_map, patterns, config)
        assert len(counts) == config.counts_length
        assert counts[resolution_index_of(10)] > 0
        assert counts[0] == counts[1] == counts[2] == counts[-1] == 0
        assert {m.masksize for m in matches} == set(range(4, 28))

    def test_score_equal_to_threshold_counts(self):
        edge_map = build_edge_map(_make_grid_image(10), DetectionConfig())
        pattern = build_pattern(10)
        template = cv2.cvtColor(pattern, cv2.COLOR_BGR2GRAY)
        scores = cv2.matchTemplate(edge_map, template, cv2.TM_CCOEFF_NORMED)
        top = float(scores.max())

        match = match_pattern(edge_map, pattern, 10, DetectionConfig(detection_threshold=top))
        assert match.count > 0
        assert match.count == int(np.count_nonzero(scores == scores.max()))

    def test_template_larger_than_edge_map_skipped(self):
        edge_map = np.full((10, 10), 255, dtype=np.uint8)
        assert match_pattern(edge_map, build_pattern(10), 10, DetectionConfig()) is None

    def test_threaded_matching_same_counts(self):
        img = _make_grid_image(8, size=90)
        serial_cfg = DetectionConfig()
        threaded_cfg = DetectionConfig(workers=4)
        edge_map = build_edge_map(img, serial_cfg)
        patterns = generate_patterns(90, 90, serial_cfg)
        serial, _ = count_matches(edge_map, patterns, serial_cfg)
        threaded, _ = count_matches(edge_map, patterns, threaded_cfg)
        assert serial == threaded

    def test_points_only_kept_on_request(self):
        config = DetectionConfig()
        edge_map = build_edge_map(_make_grid_image(10), config)
        plain = match_pattern(edge_map, build_pattern(10), 10, config)
        kept = match_pattern(edge_map, build_pattern(10), 10, config, keep_points=True)
        assert plain.points == []
        assert len(kept.points) == kept.count == plain.count


# ---------------------------------------------------------------------------
# Tests: full detection
# ---------------------------------------------------------------------------


class TestDetect:
    def test_uniform_image_is_inconclusive(self):
        assert detect(_make_uniform(), 80, 80, 3) == 26

    def test_uniform_rgba_bytes(self):
        img = _make_uniform(channels=4)
        assert detect(img.tobytes(), 80, 80, 4) == 26

    def test_small_image_still_detects(self):
        assert detect(_make_uniform(20), 20, 20, 3) == 26

    @pytest.mark.parametrize("size", [120, 180])
    @pytest.mark.parametrize("masksize", [8, 12, 16])
    def test_regular_grid_reports_its_masksize(self, masksize, size):
        assert detect_array(_make_grid_image(masksize, size)) == masksize

    @pytest.mark.parametrize("size", [120, 180])
    def test_masksize_ten_grid_lands_one_below(self, size):
        # Known case: the masksize 9 template outscores 10 on this grid
        report = detect_report(_make_grid_image(10, size), size, size, 3)
        assert report.resolution == 9
        assert report.counts[resolution_index_of(9)] >= report.counts[resolution_index_of(10)]

    def test_mosaic_results_in_range(self):
        assert detect_array(_make_mosaic()) in VALID_RESULTS

    def test_input_not_modified(self):
        img = _make_mosaic()
        before = img.copy()
        detect_array(img)
        assert np.array_equal(img, before)

    def test_peak_maps_back_to_masksize(self, monkeypatch):
        def fake_counts(edge_map, patterns, config, keep_points=False):
            counts = [0] * config.counts_length
            counts[resolution_index_of(10)] = 30
            counts[resolution_index_of(9)] = 12
            return counts, []

        monkeypatch.setattr(detector_module, "count_matches", fake_counts)
        assert detect(_make_uniform(), 80, 80, 3) == 10

    def test_edge_map_built_once(self, monkeypatch):
        calls = []
        real = detector_module.build_edge_map

        def counting(image, config):
            calls.append(1)
            return real(image, config)

        monkeypatch.setattr(detector_module, "build_edge_map", counting)
        detect_array(_make_grid_image(10))
        assert len(calls) == 1

    def test_report_matches_detect(self):
        img = _make_grid_image(10)
        report = detect_report(img, 120, 120, 3)
        assert report.resolution == detect_array(img)
        assert report.extrema[0] == 2 and report.extrema[-1] == 27
        assert report.counts[resolution_index_of(10)] > 0
        assert any(m.points for m in report.matches)

    def test_report_inconclusive_for_uniform(self):
        report = detect_report(_make_uniform(), 80, 80, 3)
        assert report.inconclusive
        assert report.resolution == 26
        assert all(c == 0 for c in report.counts)

    def test_detect_file(self, tmp_path):
        from PIL import Image

        path = tmp_path / "flat.png"
        Image.fromarray(_make_uniform(64)).save(path)
        assert detect_file(path) == 26


# ---------------------------------------------------------------------------
# Tests: overlay
# ---------------------------------------------------------------------------


class TestOverlay:
    def test_rectangles_drawn_opaque(self):
        match = CandidateMatch(masksize=4, template_width=11, template_height=11, count=1, points=[(0, 0)])
        overlay = build_overlay(20, 20, [match])
        assert overlay.shape == (20, 20, 4)
        assert tuple(overlay[5, 5]) == (0, 0, 0, 255)
        assert overlay[15, 15, 3] == 0

    def test_out_of_bounds_rectangle_skipped(self):
        match = CandidateMatch(masksize=4, template_width=11, template_height=11, count=1, points=[(15, 15)])
        overlay = build_overlay(20, 20, [match])
        assert not overlay.any()

    def test_empty_overlay_transparent(self):
        assert not build_overlay(8, 6, []).any()


# ---------------------------------------------------------------------------
# Tests: configuration
# ---------------------------------------------------------------------------


class TestConfig:
    def test_defaults(self):
        config = DetectionConfig()
        assert config.default_resolution == 26
        assert config.counts_length == 28
        assert config.detection_threshold == pytest.approx(0.29)

    def test_from_dict_ignores_unknown_keys(self):
        config = DetectionConfig.from_dict({"workers": 3, "bogus": True})
        assert config.workers == 3
        assert DetectionConfig.from_dict(config.to_dict()) == config

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"detection_threshold": 0.5, "high_range": 20}))
        config = load_config(path)
        assert config.detection_threshold == 0.5
        assert config.default_resolution == 21

    def test_load_config_requires_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError):
            load_config(path)
