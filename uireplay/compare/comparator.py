"""
Pixel-level image comparison against stored baselines.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from uireplay.config import CompareMode, ComparisonConfig

logger = logging.getLogger(__name__)


@dataclass
class ComparisonResult:
    """Result of comparing a captured image with its baseline."""
    passed: bool
    mode: CompareMode
    mismatched_pixels: int = 0
    total_pixels: int = 0
    first_mismatch: Optional[Tuple[int, int]] = None
    reason: str = ""
    actual_path: Optional[str] = None
    diff_path: Optional[str] = None

    @property
    def mismatch_ratio(self) -> float:
        if self.total_pixels == 0:
            return 0.0
        return self.mismatched_pixels / self.total_pixels


def artifact_path(baseline_path: Path, suffix: str) -> Path:
    """``shots/home.png`` -> ``shots/home_actual.png`` for suffix ``_actual``."""
    baseline_path = Path(baseline_path)
    return baseline_path.with_name(f"{baseline_path.stem}{suffix}.png")


class ImageComparator:
    """
    Compares two equal-size raster images.

    Exact mode fails on any differing RGBA value. Tolerant mode counts a
    pixel as mismatched when any channel differs by at least
    ``color_threshold`` and passes while the mismatched fraction stays at or
    below ``pixel_tolerance``.

    Usage:
        comparator = ImageComparator(ComparisonConfig(mode=CompareMode.EXACT))
        result = comparator.compare(screenshot, Path("baselines/home.png"))
        if not result.passed:
            print(result.reason, result.actual_path)
    """

    def __init__(self, config: Optional[ComparisonConfig] = None):
        self.config = config or ComparisonConfig()

    def compare_images(
        self,
        current: Image.Image,
        baseline: Image.Image,
        mode: Optional[CompareMode] = None,
    ) -> ComparisonResult:
        """Compare two in-memory images without touching the filesystem."""
        mode = mode or self.config.mode

        if current.size != baseline.size:
            return ComparisonResult(
                passed=False,
                mode=mode,
                reason=f"Size mismatch: current {current.size} vs baseline {baseline.size}",
            )

        mask = self._mismatch_mask(current, baseline, mode)
        total = int(mask.size)
        mismatched = int(mask.sum())
        first = None
        if mismatched:
            row, col = np.argwhere(mask)[0]
            first = (int(col), int(row))

        if mode == CompareMode.EXACT:
            passed = mismatched == 0
            reason = "" if passed else f"Pixel {first} differs"
        else:
            ratio = mismatched / total if total else 0.0
            passed = ratio <= self.config.pixel_tolerance
            reason = "" if passed else (
                f"{ratio:.2%} of pixels differ (tolerance {self.config.pixel_tolerance:.2%})"
            )

        return ComparisonResult(
            passed=passed,
            mode=mode,
            mismatched_pixels=mismatched,
            total_pixels=total,
            first_mismatch=first,
            reason=reason,
        )

    def _mismatch_mask(
        self,
        current: Image.Image,
        baseline: Image.Image,
        mode: CompareMode,
    ) -> np.ndarray:
        """Boolean (height, width) array marking mismatched pixels."""
        a = np.asarray(current.convert("RGBA"), dtype=np.int16)
        b = np.asarray(baseline.convert("RGBA"), dtype=np.int16)

        if mode == CompareMode.EXACT:
            return np.any(a != b, axis=2)

        limit = max(self.config.color_threshold, 1)
        return np.any(np.abs(a - b) >= limit, axis=2)

    def compare(
        self,
        current: Image.Image,
        baseline_path: Path,
        mode: Optional[CompareMode] = None,
    ) -> ComparisonResult:
        """
        Compare a captured image with a baseline file.

        On failure the captured image is written next to the baseline with an
        ``_actual`` suffix, and a ``_diff`` image when configured.
        """
        mode = mode or self.config.mode
        baseline_path = Path(baseline_path)

        if not baseline_path.is_file():
            logger.warning(f"Baseline not found: {baseline_path}")
            result = ComparisonResult(
                passed=False,
                mode=mode,
                reason=f"Baseline not found: {baseline_path}",
            )
            result.actual_path = self._save_actual(current, baseline_path)
            return result

        with Image.open(baseline_path) as img:
            baseline = img.convert("RGBA")

        result = self.compare_images(current, baseline, mode)
        if result.passed:
            logger.debug(f"Match: {baseline_path.name}")
            return result

        logger.info(f"Mismatch against {baseline_path.name}: {result.reason}")
        result.actual_path = self._save_actual(current, baseline_path)
        if self.config.write_diff and current.size == baseline.size:
            diff = self.make_diff_image(current, baseline, mode)
            diff_path = artifact_path(baseline_path, "_diff")
            diff.save(diff_path)
            result.diff_path = str(diff_path)
        return result

    def compare_files(
        self,
        current_path: Path,
        baseline_path: Path,
        mode: Optional[CompareMode] = None,
    ) -> ComparisonResult:
        """Compare two image files."""
        with Image.open(current_path) as img:
            current = img.convert("RGBA")
        return self.compare(current, baseline_path, mode)

    def make_diff_image(
        self,
        current: Image.Image,
        baseline: Image.Image,
        mode: Optional[CompareMode] = None,
    ) -> Image.Image:
        """Baseline in grayscale where pixels match, flat highlight where they differ."""
        mode = mode or self.config.mode
        mask = self._mismatch_mask(current, baseline, mode)

        gray = np.asarray(baseline.convert("L").convert("RGBA")).copy()
        gray[mask] = np.array(self.config.highlight_color, dtype=np.uint8)
        return Image.fromarray(gray)

    def _save_actual(self, current: Image.Image, baseline_path: Path) -> str:
        actual_path = artifact_path(baseline_path, "_actual")
        actual_path.parent.mkdir(parents=True, exist_ok=True)
        current.save(actual_path)
        return str(actual_path)
