"""Face detection adapter.

This module runs the external face model (dlib's HOG detector, 68-point shape
predictor and ResNet encoder, via ``face_recognition``) and normalizes what it
finds into ``Detection`` records. Detection is attempted with an ordered
cascade of strategies, stricter first, until one of them finds a face.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import face_recognition
import numpy as np
from face_recognition import api as face_api

from .. import config
from ..errors import FeatureExtractionError, NoFaceDetectedError
from ..models.types import BoundingBox, Detection, Point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionStrategy:
    """One way of running the detector over an image.

    Attributes:
        name: Reported as ``Detection.source_strategy``.
        upsample: Times the image is upsampled before detection.
        threshold: dlib's ``adjust_threshold``; negative values accept weaker faces.
        rotation: Counter-clockwise rotation (0, 90, 180 or 270) applied first.
    """

    name: str
    upsample: int = 1
    threshold: float = 0.0
    rotation: int = 0

    def __call__(self, image: np.ndarray) -> List[Detection]:
        return detector.detect_faces(image, self)


DEFAULT_STRATEGIES: Tuple[DetectionStrategy, ...] = (
    DetectionStrategy(config.PRIMARY_STRATEGY),
    DetectionStrategy("hog_upsampled", upsample=2),
    DetectionStrategy("low_conf", threshold=-0.5),
    DetectionStrategy("rotated_90", rotation=90),
    DetectionStrategy("rotated_180", rotation=180),
    DetectionStrategy("rotated_270", rotation=270),
)


def normalize_score(raw_score: float) -> float:
    """Map a dlib HOG margin onto [0, 1] with a logistic curve."""
    return 1 / (1 + math.exp(-config.DETECTION_SCORE_STEEPNESS * raw_score))


def to_source_point(x: float, y: float, rotation: int, rotated_shape: Tuple[int, ...]) -> Point:
    """Map a point found in a rotated image back to the source image."""
    height, width = rotated_shape[:2]
    if rotation == 90:
        return (float(height - y), float(x))
    if rotation == 180:
        return (float(width - x), float(height - y))
    if rotation == 270:
        return (float(y), float(width - x))
    return (float(x), float(y))


def to_source_box(box: Tuple[int, int, int, int], rotation: int, rotated_shape: Tuple[int, ...]) -> BoundingBox:
    """Map an ``(x, y, w, h)`` box found in a rotated image back to the source image."""
    x, y, w, h = box
    height, width = rotated_shape[:2]
    if rotation == 90:
        return BoundingBox(x=height - (y + h), y=x, width=h, height=w)
    if rotation == 180:
        return BoundingBox(x=width - (x + w), y=height - (y + h), width=w, height=h)
    if rotation == 270:
        return BoundingBox(x=y, y=width - (x + w), width=h, height=w)
    return BoundingBox(x=x, y=y, width=w, height=h)


class FaceDetector:
    """Handles face detection and descriptor extraction operations."""

    # Constants for face detection
    MIN_FACE_RATIO = 0.01  # Minimum face size relative to image
    MIN_ASPECT_RATIO = 0.5  # Minimum width/height ratio
    MAX_ASPECT_RATIO = 1.5  # Maximum width/height ratio
    ENCODING_MODEL = "large"  # Encode with the 68-point predictor
    NUM_JITTERS = 1

    def __init__(self, strategies: Sequence[DetectionStrategy] = DEFAULT_STRATEGIES):
        self.strategies = tuple(strategies)

    def _rect_to_box(self, rect, image_shape: Tuple[int, ...]) -> Tuple[int, int, int, int]:
        height, width = image_shape[:2]
        left = max(rect.left(), 0)
        top = max(rect.top(), 0)
        right = min(rect.right(), width)
        bottom = min(rect.bottom(), height)
        return left, top, right - left, bottom - top

    def describe_face(self, rgb_image: np.ndarray, box: Tuple[int, int, int, int]) -> Tuple[float, ...]:
        """Compute the 128-d descriptor of one located face.

        Raises:
            FeatureExtractionError: If the encoder fails or returns nothing.
        """
        x, y, w, h = box
        location = (y, x + w, y + h, x)  # top, right, bottom, left
        try:
            encodings = face_recognition.face_encodings(
                rgb_image,
                known_face_locations=[location],
                num_jitters=self.NUM_JITTERS,
                model=self.ENCODING_MODEL,
            )
        except RuntimeError as e:
            raise FeatureExtractionError(f"Failed to extract features: {str(e)}")

        if not encodings:
            raise FeatureExtractionError("No face encodings found")
        return tuple(float(v) for v in encodings[0])

    def detect_faces(self, image: np.ndarray, strategy: DetectionStrategy) -> List[Detection]:
        """Detect faces in an image with one strategy.

        Args:
            image: Input image in BGR format.
            strategy: How to run the detector.

        Returns:
            Detections in source image coordinates.

        Raises:
            NoFaceDetectedError: If no valid faces are detected.
        """
        # Convert BGR to RGB (face_recognition uses RGB)
        rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        if strategy.rotation:
            rgb_image = np.ascontiguousarray(np.rot90(rgb_image, k=strategy.rotation // 90))

        rects, scores, _ = face_api.face_detector.run(
            rgb_image, strategy.upsample, strategy.threshold
        )
        if not rects:
            raise NoFaceDetectedError("No faces detected in image")

        height, width = rgb_image.shape[:2]
        img_area = height * width
        results: List[Detection] = []

        for rect, raw_score in zip(rects, scores):
            box = self._rect_to_box(rect, rgb_image.shape)
            w, h = box[2], box[3]
            if w <= 0 or h <= 0:
                continue

            # Filter out small faces (likely false detections)
            if (w * h) / img_area < self.MIN_FACE_RATIO:
                continue

            if not (self.MIN_ASPECT_RATIO <= w / h <= self.MAX_ASPECT_RATIO):
                continue

            shape = face_api.pose_predictor_68_point(rgb_image, rect)
            landmarks = tuple(
                to_source_point(p.x, p.y, strategy.rotation, rgb_image.shape)
                for p in shape.parts()
            )

            descriptor: Optional[Tuple[float, ...]] = None
            try:
                descriptor = self.describe_face(rgb_image, box)
            except FeatureExtractionError as e:
                logger.warning("%s: keeping face without descriptor: %s", strategy.name, e)

            results.append(Detection(
                box=to_source_box(box, strategy.rotation, rgb_image.shape),
                detection_score=normalize_score(raw_score),
                landmarks=landmarks,
                descriptor=descriptor,
                source_strategy=strategy.name,
                rotation=float(strategy.rotation),
            ))

        if not results:
            raise NoFaceDetectedError("No valid faces found after filtering")

        return results

    def process_image(self, image: np.ndarray, prefix: str = "") -> List[Detection]:
        """Run the strategy cascade until one strategy finds a face.

        Args:
            image: Input image in BGR format.
            prefix: Prefix for logging messages.

        Returns:
            Detections from the first successful strategy.

        Raises:
            ValueError: If input image is invalid.
            NoFaceDetectedError: If no strategy finds a face.
        """
        if image is None:
            raise ValueError("Input image is None")

        logger.info("%sImage shape: %s", prefix, image.shape)

        for strategy in self.strategies:
            try:
                faces = self.detect_faces(image, strategy)
            except NoFaceDetectedError as e:
                logger.info("%s%s: %s", prefix, strategy.name, e)
                continue
            except RuntimeError as e:
                logger.warning("%s%s failed: %s", prefix, strategy.name, e)
                continue

            logger.info("%sFound %d faces with %s", prefix, len(faces), strategy.name)
            return faces

        raise NoFaceDetectedError(f"{prefix}No faces detected with any strategy".strip())


# Create global detector instance
detector = FaceDetector()


def detect_faces_with_strategies(image: np.ndarray, prefix: str = "") -> List[Detection]:
    """Detect faces with the default strategy cascade.

    Args:
        image: Input image.
        prefix: Prefix for logging messages.

    Returns:
        List of detected faces.
    """
    return detector.process_image(image, prefix)
