"""Interpretable facial attributes derived from 68-point landmark geometry.

Every detector here is a pure function of a ``LandmarkSet``. They are coarse
geometric heuristics: glasses and facial hair in particular are inferred from
proportions, not from texture, and their thresholds (see ``facematch.config``)
are uncalibrated.
"""

import logging
import math
from typing import List

import numpy as np

from .. import config
from ..errors import ComputationError
from ..models.types import (
    Detection,
    EyeState,
    EyesResult,
    FaceFeatures,
    FacialHairResult,
    GlassesResult,
    LandmarkSet,
    PoseResult,
    SmileResult,
)
from ..utils.geometry import centroid, distance

logger = logging.getLogger(__name__)


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        raise ComputationError("Zero denominator in landmark ratio")
    value = numerator / denominator
    if not math.isfinite(value):
        raise ComputationError("Non-finite landmark ratio")
    return value


def eye_aspect_ratio(eye: np.ndarray) -> float:
    """Eye Aspect Ratio of one eye, capped at 1.

    ``eye`` holds the six eye points in landmark order: outer corner, two
    upper lid points, inner corner, two lower lid points. A zero-width eye
    yields 0.
    """
    vertical_1 = distance(eye[1], eye[5])
    vertical_2 = distance(eye[2], eye[4])
    horizontal = distance(eye[0], eye[3])
    if horizontal == 0:
        return 0.0
    return min((vertical_1 + vertical_2) / (2 * horizontal), 1.0)


def eye_to_nose_distance(landmarks: LandmarkSet) -> float:
    """Distance from the midpoint of both eye centres to the nose centroid."""
    eye_center = (centroid(landmarks.left_eye) + centroid(landmarks.right_eye)) / 2
    return distance(eye_center, centroid(landmarks.nose_bridge))


def detect_glasses(landmarks: LandmarkSet) -> GlassesResult:
    """Infer eyewear from compressed or strongly asymmetric eye openings.

    Args:
        landmarks: A complete 68-point landmark set.

    Returns:
        The glasses verdict. ``signal`` names the rule that fired:
        ``low_ear`` when both eyes read narrow while the eyes sit far from
        the nose bridge, ``asymmetric_ear`` when one eye reads much narrower
        than the other.
    """
    left_ear = eye_aspect_ratio(landmarks.left_eye)
    right_ear = eye_aspect_ratio(landmarks.right_eye)
    nose_distance = eye_to_nose_distance(landmarks)

    threshold = config.GLASSES_EAR_THRESHOLD
    low = threshold * config.GLASSES_ASYMMETRY_LOW
    high = threshold * config.GLASSES_ASYMMETRY_HIGH

    signal = None
    if left_ear < threshold and right_ear < threshold:
        if nose_distance > config.GLASSES_EYE_NOSE_DISTANCE:
            signal = "low_ear"
    if signal is None:
        if (left_ear < low and right_ear > high) or (right_ear < low and left_ear > high):
            signal = "asymmetric_ear"

    has_glasses = signal is not None
    return GlassesResult(
        has_glasses=has_glasses,
        confidence=max(left_ear, right_ear) if has_glasses else 0.0,
        left_ear=left_ear,
        right_ear=right_ear,
        eye_to_nose_distance=nose_distance,
        signal=signal,
    )


def detect_facial_hair(landmarks: LandmarkSet) -> FacialHairResult:
    """Flag beard and mustache from mouth and chin proportions.

    Known weak heuristic: it reads lip shape, not hair, so closed thin lips
    read as a mustache and the confidence is a fixed placeholder.
    """
    mouth_width = distance(
        landmarks.point(LandmarkSet.MOUTH_LEFT), landmarks.point(LandmarkSet.MOUTH_RIGHT)
    )
    mouth_height = distance(
        landmarks.point(LandmarkSet.UPPER_LIP_TOP),
        landmarks.point(LandmarkSet.LOWER_LIP_BOTTOM),
    )
    chin = landmarks.chin
    chin_width = distance(chin[0], chin[-1])

    try:
        mouth_to_chin = _ratio(mouth_width, chin_width)
        mouth_aspect = _ratio(mouth_height, mouth_width)
    except ComputationError as e:
        logger.debug("Facial hair analysis skipped: %s", e)
        return FacialHairResult(has_beard=False, has_mustache=False, confidence=0.0, error=True)

    has_beard = (
        mouth_to_chin < config.BEARD_MOUTH_CHIN_RATIO
        and mouth_aspect > config.BEARD_MOUTH_ASPECT
    )
    has_mustache = mouth_aspect < config.MUSTACHE_MOUTH_ASPECT
    return FacialHairResult(
        has_beard=has_beard,
        has_mustache=has_mustache,
        confidence=config.FACIAL_HAIR_CONFIDENCE,
    )


def _eye_state(ear: float) -> EyeState:
    return EyeState(
        state="open" if ear > config.EYE_OPEN_EAR else "closed",
        ear=ear,
        confidence=min(ear * 5, 1.0),
    )


def analyze_eyes(landmarks: LandmarkSet) -> EyesResult:
    """Open/closed state of each eye from its aspect ratio."""
    left = _eye_state(eye_aspect_ratio(landmarks.left_eye))
    right = _eye_state(eye_aspect_ratio(landmarks.right_eye))
    return EyesResult(
        left_eye=left,
        right_eye=right,
        both_open=left.state == "open" and right.state == "open",
    )


def detect_smile(landmarks: LandmarkSet) -> SmileResult:
    """Smiling when the mouth is much wider than it is tall.

    Confidence is 0.5 at the threshold ratio and grows with the margin above
    it, so mouths well below the threshold score low.
    """
    mouth_width = distance(
        landmarks.point(LandmarkSet.MOUTH_LEFT), landmarks.point(LandmarkSet.MOUTH_RIGHT)
    )
    mouth_height = distance(
        landmarks.point(LandmarkSet.UPPER_LIP_TOP),
        landmarks.point(LandmarkSet.LOWER_LIP_BOTTOM),
    )
    try:
        ratio = _ratio(mouth_width, mouth_height)
    except ComputationError as e:
        logger.debug("Smile analysis skipped: %s", e)
        return SmileResult(is_smiling=False, confidence=0.0, ratio=0.0, error=True)

    threshold = config.SMILE_RATIO_THRESHOLD
    margin = (ratio - threshold) / threshold
    return SmileResult(
        is_smiling=ratio > threshold,
        confidence=min(max(0.5 + margin, 0.0), 1.0),
        ratio=ratio,
    )


def estimate_pose(landmarks: LandmarkSet) -> PoseResult:
    """Bucket head pose from where the nose tip sits below the eye line.

    ``angle_degrees`` is the signed angle of the eye-midpoint to nose-tip
    vector against the horizontal; an upright frontal face reads about 90.
    """
    left = landmarks.point(LandmarkSet.LEFT_EYE_OUTER)
    right = landmarks.point(LandmarkSet.RIGHT_EYE_OUTER)
    vector = landmarks.nose_tip - (left + right) / 2
    eye_span = distance(left, right)

    try:
        drop_ratio = _ratio(float(vector[1]), eye_span)
    except ComputationError as e:
        logger.debug("Pose estimation skipped: %s", e)
        return PoseResult(pose="unknown", angle_degrees=0.0, confidence=0.0, error=True)

    angle = math.degrees(math.atan2(vector[1], vector[0]))

    if vector[1] <= 0:
        pose = "looking_up"
    elif abs(90.0 - angle) > config.POSE_PROFILE_DEGREES:
        pose = "profile"
    elif drop_ratio > config.POSE_LOOKING_DOWN_RATIO:
        pose = "looking_down"
    elif drop_ratio < config.POSE_LOOKING_UP_RATIO:
        pose = "looking_up"
    else:
        pose = "frontal"

    return PoseResult(
        pose=pose,
        angle_degrees=round(angle, 1),
        confidence=config.POSE_CONFIDENCE,
    )


def _feature_confidence(
    glasses: GlassesResult,
    facial_hair: FacialHairResult,
    eyes: EyesResult,
    smile: SmileResult,
    pose: PoseResult,
) -> float:
    scores: List[float] = []
    if not glasses.error:
        scores.append(glasses.confidence)
    if not facial_hair.error:
        scores.append(facial_hair.confidence)
    if not eyes.error:
        scores.append(max(eyes.left_eye.confidence, eyes.right_eye.confidence))
    if not smile.error:
        scores.append(smile.confidence)
    if not pose.error:
        scores.append(pose.confidence)
    return sum(scores) / len(scores) if scores else 0.0


def analyze_features(detection: Detection) -> FaceFeatures:
    """Derive facial attributes from a detection's landmarks.

    Never raises: detections without a complete 68-point landmark set get
    ``FaceFeatures.unavailable()``.
    """
    landmarks = detection.landmark_set
    if landmarks is None:
        logger.debug(
            "Features unavailable: %d landmarks", detection.landmark_count
        )
        return FaceFeatures.unavailable()

    glasses = detect_glasses(landmarks)
    facial_hair = detect_facial_hair(landmarks)
    eyes = analyze_eyes(landmarks)
    smile = detect_smile(landmarks)
    pose = estimate_pose(landmarks)

    return FaceFeatures(
        glasses=glasses,
        facial_hair=facial_hair,
        eyes=eyes,
        smile=smile,
        pose=pose,
        feature_confidence=_feature_confidence(glasses, facial_hair, eyes, smile, pose),
    )
