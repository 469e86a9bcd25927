"""Merging of overlapping detections produced by several strategies."""

import logging
from typing import List, Sequence

from ..config import DUPLICATE_IOU_THRESHOLD
from ..models.types import Detection
from ..utils.geometry import box_iou

logger = logging.getLogger(__name__)


def is_duplicate(a: Detection, b: Detection, iou_threshold: float = DUPLICATE_IOU_THRESHOLD) -> bool:
    """Two detections are the same face when their IoU is strictly above the threshold."""
    return box_iou(a.box, b.box) > iou_threshold


def deduplicate(
    candidates: Sequence[Detection],
    iou_threshold: float = DUPLICATE_IOU_THRESHOLD,
) -> List[Detection]:
    """Remove duplicate detections, keeping the most confident of each face.

    Candidates are visited in descending ``detection_score`` order (stable, so
    ties keep input order) and a candidate survives only if it does not
    duplicate any detection already kept. The output is sorted by score and
    running it through this function again returns it unchanged.

    Args:
        candidates: Raw detections, possibly from several strategies.
        iou_threshold: Overlap above which two boxes are the same face.

    Returns:
        Deduplicated detections, highest score first.
    """
    ordered = sorted(candidates, key=lambda d: d.detection_score, reverse=True)
    kept: List[Detection] = []

    for candidate in ordered:
        if any(is_duplicate(candidate, k, iou_threshold) for k in kept):
            continue
        kept.append(candidate)

    if len(kept) != len(ordered):
        logger.debug("Dropped %d duplicate detections", len(ordered) - len(kept))
    return kept
