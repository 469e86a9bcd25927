"""Small geometry helpers shared by the pipeline stages."""

import numpy as np

from ..models.types import BoundingBox


def distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two 2-D points."""
    return float(np.hypot(a[0] - b[0], a[1] - b[1]))


def centroid(points: np.ndarray) -> np.ndarray:
    """Mean position of a set of 2-D points."""
    return np.asarray(points, dtype=np.float64).mean(axis=0)


def box_iou(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection-over-Union of two ``x, y, width, height`` boxes.

    Returns 0 for disjoint or degenerate boxes.
    """
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x + a.width, b.x + b.width)
    y2 = min(a.y + a.height, b.y + b.height)

    if x2 <= x1 or y2 <= y1:
        return 0.0

    intersection = (x2 - x1) * (y2 - y1)
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return float(intersection / union)
