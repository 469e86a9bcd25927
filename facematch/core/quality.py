"""Per-detection quality scoring.

The score is an additive, interpretable heuristic: detector confidence plus
bonuses for face size, landmark completeness, a roughly square box, and
proximity to the centre of the nominal capture frame.
"""

import logging
import math

from ..config import (
    LANDMARK_COUNT,
    QUALITY_ASPECT_GOOD,
    QUALITY_ASPECT_POOR,
    QUALITY_ASPECT_RANGE,
    QUALITY_CENTER_BONUS,
    QUALITY_CENTER_FALLOFF,
    QUALITY_DEFAULT,
    QUALITY_LANDMARK_WEIGHT,
    QUALITY_SIZE_AREA,
    QUALITY_SIZE_WEIGHT,
    REFERENCE_FRAME_SIZE,
)
from ..models.types import Detection

logger = logging.getLogger(__name__)


def _is_malformed(detection: Detection) -> bool:
    box = detection.box
    values = (box.x, box.y, box.width, box.height, detection.detection_score)
    if not all(math.isfinite(v) for v in values):
        return True
    return box.width <= 0 or box.height <= 0 or not detection.landmarks


def score_quality(detection: Detection) -> float:
    """Score how trustworthy a single detection is for matching.

    Args:
        detection: The detection to score.

    Returns:
        Quality in [0, 100]; ``QUALITY_DEFAULT`` when the box is degenerate,
        a value is not finite, or the landmarks are missing.
    """
    if _is_malformed(detection):
        logger.debug("Malformed detection, using default quality")
        return QUALITY_DEFAULT

    box = detection.box
    quality = detection.detection_score * 100

    quality += min(box.area / QUALITY_SIZE_AREA, 1.0) * QUALITY_SIZE_WEIGHT

    completeness = min(detection.landmark_count / LANDMARK_COUNT, 1.0)
    quality += completeness * QUALITY_LANDMARK_WEIGHT

    low, high = QUALITY_ASPECT_RANGE
    aspect_ratio = box.width / box.height
    quality += QUALITY_ASPECT_GOOD if low < aspect_ratio < high else QUALITY_ASPECT_POOR

    center_x, center_y = box.center
    frame_w, frame_h = REFERENCE_FRAME_SIZE
    offset = math.hypot(center_x - frame_w / 2, center_y - frame_h / 2)
    quality += max(0.0, QUALITY_CENTER_BONUS - offset / QUALITY_CENTER_FALLOFF)

    return float(min(max(quality, 0.0), 100.0))
