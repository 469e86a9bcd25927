import math

import pytest

from facematch.errors import InvalidInputError
from facematch.models.types import (
    BoundingBox,
    ComparisonResult,
    Detection,
    Difference,
    LandmarkSet,
)

from factories import frontal_landmarks, make_detection


def test_detection_from_dict():
    payload = {
        "boundingBox": {"x": 10, "y": 20, "width": 100, "height": 120},
        "detectionScore": 0.8,
        "landmarks": [{"x": x, "y": y} for x, y in frontal_landmarks()],
        "descriptor": [0.1, -0.2, 0.3],
        "sourceStrategy": "low_conf",
        "rotation": 90,
    }
    detection = Detection.from_dict(payload)

    assert detection.box == BoundingBox(10.0, 20.0, 100.0, 120.0)
    assert detection.detection_score == 0.8
    assert detection.landmark_count == 68
    assert detection.landmark_set is not None
    assert detection.descriptor == (0.1, -0.2, 0.3)
    assert detection.source_strategy == "low_conf"
    assert detection.rotation == 90.0


def test_detection_from_dict_accepts_short_keys_and_pairs():
    payload = {
        "box": {"x": 0, "y": 0, "width": 50, "height": 50},
        "score": 0.5,
        "landmarks": [[1, 2], [3, 4]],
    }
    detection = Detection.from_dict(payload)

    assert detection.detection_score == 0.5
    assert detection.landmarks == ((1.0, 2.0), (3.0, 4.0))
    assert detection.landmark_set is None
    assert detection.descriptor is None
    assert not detection.has_descriptor
    assert detection.descriptor_array() is None
    assert detection.source_strategy == "unknown"


@pytest.mark.parametrize("payload", [
    {},
    "not a detection",
    {"boundingBox": [0, 0, 10, 10]},
    {"boundingBox": {"x": 0, "y": 0, "width": 10}},
    {"boundingBox": {"x": "left", "y": 0, "width": 10, "height": 10}},
    {"boundingBox": {"x": math.nan, "y": 0, "width": 10, "height": 10}},
    {"boundingBox": {"x": 0, "y": 0, "width": 10, "height": 10}, "score": "high"},
])
def test_malformed_detection_payload_raises(payload):
    with pytest.raises(InvalidInputError):
        Detection.from_dict(payload)


def test_malformed_landmarks_are_dropped():
    points = [list(p) for p in frontal_landmarks()]
    points[5] = [1.0]
    payload = {
        "boundingBox": {"x": 0, "y": 0, "width": 10, "height": 10},
        "landmarks": points,
        "descriptor": [0.1, 0.2],
    }
    detection = Detection.from_dict(payload)

    assert detection.landmarks is None
    assert detection.landmark_set is None
    assert detection.descriptor == (0.1, 0.2)


@pytest.mark.parametrize("descriptor", [["a", 0.1], [None], 3.5])
def test_malformed_descriptor_is_dropped(descriptor):
    payload = {
        "boundingBox": {"x": 0, "y": 0, "width": 10, "height": 10},
        "landmarks": [list(p) for p in frontal_landmarks()],
        "descriptor": descriptor,
    }
    detection = Detection.from_dict(payload)

    assert detection.descriptor is None
    assert detection.landmark_set is not None


def test_to_dict_round_trips_through_from_dict():
    detection = make_detection(descriptor_values=(0.5, 0.25))
    assert Detection.from_dict(detection.to_dict()) == detection


def test_bounding_box_geometry():
    box = BoundingBox(10, 20, 30, 40)
    assert box.area == 1200
    assert box.center == (25, 40)


def test_landmark_set_ranges():
    landmarks = LandmarkSet.from_points(frontal_landmarks())

    assert landmarks.jaw.shape == (17, 2)
    assert landmarks.chin.shape == (6, 2)
    assert landmarks.nose_bridge.shape == (9, 2)
    assert landmarks.left_eye.shape == (6, 2)
    assert landmarks.right_eye.shape == (6, 2)
    assert landmarks.eyes.shape == (12, 2)
    assert landmarks.mouth.shape == (20, 2)
    assert tuple(landmarks.nose_tip) == (320.0, 250.0)


@pytest.mark.parametrize("points", [
    frontal_landmarks()[:67],
    frontal_landmarks() + [(0.0, 0.0)],
    [],
])
def test_landmark_set_rejects_wrong_count(points):
    with pytest.raises(InvalidInputError):
        LandmarkSet.from_points(points)


def test_landmark_set_rejects_non_finite_points():
    points = frontal_landmarks(overrides={0: (math.inf, 0.0)})
    with pytest.raises(InvalidInputError):
        LandmarkSet.from_points(points)


def test_non_finite_landmarks_leave_detection_without_landmark_set():
    detection = make_detection(landmarks=frontal_landmarks(overrides={0: (math.nan, 0.0)}))
    assert detection.landmark_count == 68
    assert detection.landmark_set is None


def test_to_dict_uses_camel_case():
    detection = make_detection(descriptor_values=(0.5, 0.25), landmarks=None)
    data = detection.to_dict()

    assert data == {
        "boundingBox": {"x": 220.0, "y": 140.0, "width": 200.0, "height": 200.0},
        "detectionScore": 0.9,
        "landmarks": None,
        "descriptor": [0.5, 0.25],
        "sourceStrategy": "hog",
        "rotation": 0.0,
    }


def test_comparison_result_to_dict():
    result = ComparisonResult(
        overall_similarity=81.5,
        match=True,
        confidence=0.7,
        quality_score=90.0,
        differences=(Difference(type="smile", description="Smile differs", severity="low"),),
    )
    data = result.to_dict()

    assert data["overallSimilarity"] == 81.5
    assert data["qualityScore"] == 90.0
    assert data["differences"] == [
        {"type": "smile", "description": "Smile differs", "severity": "low"}
    ]
    assert data["detailedMetrics"] == {}
    assert data["featureSimilarity"] == {}
