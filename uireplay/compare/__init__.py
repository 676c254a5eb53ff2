"""
Image comparison for visual checkpoints.
"""

from uireplay.compare.comparator import ImageComparator, ComparisonResult, artifact_path

__all__ = ["ImageComparator", "ComparisonResult", "artifact_path"]
