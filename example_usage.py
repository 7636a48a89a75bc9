#!/usr/bin/env python3
"""
Example usage of the mosaic resolution detector.

This script demonstrates how to:
1. Detect the mosaic block size of an image
2. Inspect the per-candidate match counts and the chosen group
3. Save an overlay of the matched regions
"""

import os
import sys

import numpy as np
from PIL import Image

from mosaic_detect import build_overlay, detect, detect_report
from mosaic_detect.detector import load_rgb_image
from mosaic_detect.overlay import overlay_to_rgba


def demo_detection(image_path: str):
    """Run detection on an image and print what it found."""

    if not os.path.exists(image_path):
        print(f"Error: Image file {image_path} not found")
        return

    print(f"Analyzing image: {image_path}")
    print("=" * 50)

    image = load_rgb_image(image_path)
    height, width, channels = image.shape
    print(f"Image dimensions: {image.shape}")

    # 1. Plain detection
    resolution = detect(image, width, height, channels)
    print(f"\n1. Detected mosaic resolution: {resolution}")

    # 2. Match counts per candidate
    report = detect_report(image, width, height, channels)
    print("\n2. Match counts (resolution index: count):")
    for idx, count in enumerate(report.counts):
        if count:
            print(f"   {idx:2d}: {count}")
    print(f"   Extrema: {report.extrema}")
    if report.group is not None:
        print(f"   Winning group [{report.group.start}, {report.group.end}], peak {report.group.peak} at {report.group.position}")
    else:
        print("   No group had any matches (inconclusive)")

    # 3. Overlay
    overlay = build_overlay(width, height, report.matches)
    os.makedirs("output", exist_ok=True)
    output_path = os.path.join("output", os.path.splitext(os.path.basename(image_path))[0] + "_overlay.png")
    Image.fromarray(overlay_to_rgba(overlay)).save(output_path)
    print(f"\n3. Saved overlay: {output_path}")


def create_test_mosaic():
    """Create a pixelated test image for demonstration."""
    rng = np.random.RandomState(0)
    cells = rng.randint(0, 256, (16, 16, 3), dtype=np.uint8)
    mosaic = np.repeat(np.repeat(cells, 8, axis=0), 8, axis=1)

    os.makedirs("output", exist_ok=True)
    test_path = os.path.join("output", "test_mosaic_8px.png")
    Image.fromarray(mosaic).save(test_path)
    print(f"Created test image: {test_path}")
    return test_path


if __name__ == "__main__":
    if len(sys.argv) > 1:
        demo_detection(sys.argv[1])
    else:
        print("No image provided, creating test image...")
        demo_detection(create_test_mosaic())
