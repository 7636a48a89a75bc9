"""
Batch command line interface for the mosaic resolution detector.

Usage examples
--------------

Report the mosaic block size of every image in ``input/``::

    python -m mosaic_detect.cli input

Write overlays, match-count plots and a CSV summary::

    python -m mosaic_detect.cli input --overlay-dir out/overlays --plot-dir out/plots --csv out/results.csv
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from PIL import Image

from .config import DetectionConfig, load_config
from .detector import DetectionReport, detect_report, load_rgb_image
from .overlay import build_overlay, overlay_to_rgba
from .validation import MosaicDetectError

logger = logging.getLogger("mosaic_detect")

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp"}

CSV_FIELDS = ["image", "width", "height", "resolution", "inconclusive", "peak_count", "extrema"]


@dataclass
class BatchConfig:
    """Runtime configuration derived from CLI arguments."""

    inputs: Sequence[Path]
    detection: DetectionConfig
    overlay_dir: Optional[Path]
    plot_dir: Optional[Path]
    csv_path: Optional[Path]


def _setup_logging(debug: bool = False):
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _is_image(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS


def _gather_images(sources: Sequence[Path], recursive: bool) -> List[Path]:
    """Resolve files and directories into a sorted, de-duplicated image list."""
    found: set[Path] = set()
    for source in sources:
        if source.is_dir():
            pattern = "**/*" if recursive else "*"
            found.update(p.resolve() for p in source.glob(pattern) if _is_image(p))
        elif _is_image(source):
            found.add(source.resolve())
        elif source.exists():
            logger.warning("Skipping unsupported file: %s", source)
        else:
            logger.warning("Input path not found: %s", source)
    return sorted(found)


def _ensure_dir(path: Optional[Path]) -> Optional[Path]:
    if path is None:
        return None
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_count_plot(report: DetectionReport, title: str, path: Path) -> None:
    """Plot the match-count curve with extrema and the chosen peak marked."""
    import matplotlib
    try:
        matplotlib.use("Agg")
    except Exception:  # pylint: disable=broad-except
        # Backend may already be initialised
        pass
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(8, 4))
    ax.plot(range(len(report.counts)), report.counts, marker="o")
    for idx in report.extrema:
        ax.axvline(idx, color="grey", linestyle=":", linewidth=1)
    if report.group is not None:
        ax.axvspan(report.group.start, report.group.end, color="tab:green", alpha=0.15)
        ax.plot([report.group.position], [report.group.peak], "r*", markersize=12)
    ax.set_xlabel("resolution index (masksize - 1)")
    ax.set_ylabel("matches")
    ax.set_title(f"{title}: resolution {report.resolution}")
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)


def _write_artefacts(report: DetectionReport, image_path: Path, cfg: BatchConfig) -> None:
    if cfg.overlay_dir is not None:
        overlay = build_overlay(report.width, report.height, report.matches)
        Image.fromarray(overlay_to_rgba(overlay)).save(
            cfg.overlay_dir / f"{image_path.stem}_mosaic_overlay.png"
        )
    if cfg.plot_dir is not None:
        save_count_plot(report, image_path.name, cfg.plot_dir / f"{image_path.stem}_counts.png")


def _process_single_image(image_path: Path, cfg: BatchConfig) -> Optional[dict]:
    """Detect one image and persist the requested artefacts."""
    try:
        image = load_rgb_image(image_path)
        height, width, channels = image.shape
        report = detect_report(
            image,
            width,
            height,
            channels,
            config=cfg.detection,
            keep_points=cfg.overlay_dir is not None,
        )
        _write_artefacts(report, image_path, cfg)
    except (OSError, MosaicDetectError) as exc:
        logger.error("Failed to process %s: %s", image_path.name, exc)
        return None

    if report.inconclusive:
        logger.info("%s: inconclusive (resolution=%d)", image_path.name, report.resolution)
    else:
        logger.info("%s: resolution=%d", image_path.name, report.resolution)
    print(f"{image_path}\t{report.resolution}")

    return {
        "image": image_path.name,
        "width": width,
        "height": height,
        "resolution": report.resolution,
        "inconclusive": "yes" if report.inconclusive else "no",
        "peak_count": report.group.peak if report.group else 0,
        "extrema": " ".join(str(i) for i in report.extrema),
    }


def _write_csv(records: List[dict], path: Path) -> None:
    with path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=CSV_FIELDS)
        writer.writeheader()
        writer.writerows(records)
    logger.info("Results written to %s", path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Detect the block size of mosaic/pixelation patterns.")
    parser.add_argument("inputs", nargs="+", type=Path, help="Image files or directories to scan.")
    parser.add_argument("--recursive", "-r", action="store_true",
                        help="When inputs include directories, walk them recursively.")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON file with detection parameter overrides.")
    parser.add_argument("--detection-threshold", type=float, default=None,
                        help="Correlation threshold for a strong match (default: 0.29).")
    parser.add_argument("--low-range", type=int, default=None, help="Lowest candidate bound.")
    parser.add_argument("--high-range", type=int, default=None, help="Highest candidate bound.")
    parser.add_argument("--workers", type=int, default=None,
                        help="Threads used to match candidates (default: 1).")
    parser.add_argument("--overlay-dir", type=Path, default=None,
                        help="Write a transparent overlay of matched regions per image.")
    parser.add_argument("--plot-dir", type=Path, default=None,
                        help="Write a plot of the match-count curve per image.")
    parser.add_argument("--csv", dest="csv_path", type=Path, default=None,
                        help="Write a CSV summary to this path.")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging.")
    return parser


def _detection_config(args: argparse.Namespace) -> DetectionConfig:
    config = load_config(args.config) if args.config else DetectionConfig()
    overrides = {
        "detection_threshold": args.detection_threshold,
        "low_range": args.low_range,
        "high_range": args.high_range,
        "workers": args.workers,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.debug)

    images = _gather_images(args.inputs, recursive=args.recursive)
    if not images:
        logger.error("No matching images found.")
        return 1

    try:
        detection = _detection_config(args)
    except (OSError, ValueError) as exc:
        logger.error("Could not load config %s: %s", args.config, exc)
        return 1

    cfg = BatchConfig(
        inputs=images,
        detection=detection,
        overlay_dir=_ensure_dir(args.overlay_dir.resolve() if args.overlay_dir else None),
        plot_dir=_ensure_dir(args.plot_dir.resolve() if args.plot_dir else None),
        csv_path=args.csv_path,
    )

    logger.info("Found %d image(s) to scan", len(images))
    records: List[dict] = []
    for image_path in cfg.inputs:
        record = _process_single_image(image_path, cfg)
        if record is not None:
            records.append(record)

    if records and cfg.csv_path:
        _ensure_dir(cfg.csv_path.parent)
        _write_csv(records, cfg.csv_path)

    return 0 if records else 1


if __name__ == "__main__":
    sys.exit(main())
