import pytest

pytest.importorskip("face_recognition")

from fastapi.testclient import TestClient  # noqa: E402

from facematch.api import routes  # noqa: E402
from facematch.errors import NoFaceDetectedError  # noqa: E402
from facematch.main import app  # noqa: E402
from facematch.utils.image import ImageDecodingError  # noqa: E402

from factories import descriptor, frontal_landmarks, make_detection, perturbed  # noqa: E402

client = TestClient(app)

REFERENCE = descriptor(seed=21)


def _payload(detection):
    return detection.to_dict()


@pytest.fixture
def fake_detection(monkeypatch):
    """Replace image decoding and detection with canned faces per image."""
    faces = {
        "reference": [make_detection(descriptor_values=REFERENCE)],
        "same": [
            make_detection(box=(10, 10, 60, 60), score=0.5, descriptor_values=descriptor(seed=40)),
            make_detection(descriptor_values=perturbed(REFERENCE, seed=22, scale=0.001)),
        ],
        "stranger": [make_detection(descriptor_values=descriptor(seed=23))],
    }

    def decode(payload):
        if payload not in faces:
            raise ImageDecodingError("Failed to decode base64 string")
        return payload

    def detect(image, prefix=""):
        return faces[image]

    monkeypatch.setattr(routes, "decode_base64_image", decode)
    monkeypatch.setattr(routes, "detect_faces_with_strategies", detect)
    return faces


def test_match_faces_same_person(fake_detection):
    response = client.post(
        "/api/match-faces", json={"referenceImage": "reference", "actualImage": "same"}
    )
    assert response.status_code == 200

    data = response.json()
    assert data["match"] is True
    assert data["result"] == "EXACT_MATCH"
    assert data["overallSimilarity"] >= data["detailedMetrics"]["matchThreshold"]
    assert data["actualFace"]["box"] == {"x": 220.0, "y": 140.0, "width": 200.0, "height": 200.0}
    assert data["analysis"].startswith("Exact match")


def test_match_faces_stranger(fake_detection):
    response = client.post(
        "/api/match-faces", json={"referenceImage": "reference", "actualImage": "stranger"}
    )
    assert response.status_code == 200
    assert response.json()["match"] is False
    assert response.json()["result"] == "NO_MATCH"


def test_match_faces_bad_image(fake_detection):
    response = client.post(
        "/api/match-faces", json={"referenceImage": "reference", "actualImage": "???"}
    )
    assert response.status_code == 400


def test_match_faces_no_face(monkeypatch):
    def detect(image, prefix=""):
        raise NoFaceDetectedError("No faces detected with any strategy")

    monkeypatch.setattr(routes, "decode_base64_image", lambda payload: payload)
    monkeypatch.setattr(routes, "detect_faces_with_strategies", detect)

    response = client.post("/api/match-faces", json={"referenceImage": "a", "actualImage": "b"})
    assert response.status_code == 400
    assert "No faces detected" in response.json()["detail"]


def test_compare_detections():
    a = make_detection(descriptor_values=REFERENCE)
    b = make_detection(descriptor_values=perturbed(REFERENCE, seed=24, scale=0.001))

    response = client.post(
        "/api/compare-detections", json={"detectionA": _payload(a), "detectionB": _payload(b)}
    )
    assert response.status_code == 200

    data = response.json()
    assert set(data) == {
        "overallSimilarity", "match", "confidence", "qualityScore",
        "differences", "detailedMetrics", "featureSimilarity",
    }
    assert data["match"] is True


def test_compare_detections_without_descriptor_is_degraded():
    a = make_detection(descriptor_values=REFERENCE)
    b = make_detection()

    response = client.post(
        "/api/compare-detections", json={"detectionA": _payload(a), "detectionB": _payload(b)}
    )
    assert response.status_code == 200
    assert response.json()["overallSimilarity"] == 50.0
    assert response.json()["differences"][0]["type"] == "missing_descriptor"


def test_compare_detections_length_mismatch():
    a = make_detection(descriptor_values=REFERENCE)
    b = make_detection(descriptor_values=descriptor(length=64))

    response = client.post(
        "/api/compare-detections", json={"detectionA": _payload(a), "detectionB": _payload(b)}
    )
    assert response.status_code == 422


def test_compare_detections_malformed_box():
    payload = {"detectionA": {"box": {"x": 0}}, "detectionB": {"box": {"x": 0}}}
    response = client.post("/api/compare-detections", json=payload)
    assert response.status_code == 400


def test_compare_detections_with_malformed_descriptor_is_degraded():
    a = _payload(make_detection(descriptor_values=REFERENCE))
    b = _payload(make_detection(descriptor_values=REFERENCE))
    b["descriptor"] = ["not", "numbers"]

    response = client.post("/api/compare-detections", json={"detectionA": a, "detectionB": b})
    assert response.status_code == 200
    assert response.json()["overallSimilarity"] == 50.0
    assert response.json()["differences"][0]["type"] == "missing_descriptor"


def test_analyze_detections_with_malformed_landmarks():
    payload = _payload(make_detection())
    payload["landmarks"][5] = [1.0]

    response = client.post("/api/analyze-detections", json={"candidates": [payload]})
    assert response.status_code == 200

    face = response.json()[0]
    assert face["quality"] == 50.0
    assert face["features"]["featureConfidence"] == 0.0
    assert face["features"]["pose"]["error"] is True


def test_analyze_detections():
    candidates = [
        make_detection(score=0.95),
        make_detection(box=(222, 141, 200, 200), score=0.6, strategy="low_conf"),
        make_detection(box=(0, 0, 60, 60), score=0.4, landmarks=frontal_landmarks()[:20]),
    ]
    response = client.post(
        "/api/analyze-detections", json={"candidates": [_payload(c) for c in candidates]}
    )
    assert response.status_code == 200

    faces = response.json()
    assert len(faces) == 2
    assert faces[0]["confidence"] == 1.0
    assert faces[0]["features"]["pose"]["pose"] == "frontal"
    assert faces[1]["features"]["featureConfidence"] == 0.0


def test_analyze_similarity_labels():
    near = routes.ComparisonResult(
        overall_similarity=72.0,
        match=False,
        confidence=0.6,
        quality_score=80.0,
        detailed_metrics={"matchThreshold": 78.0},
    )
    label, analysis = routes.analyze_similarity(near)
    assert label == "POSSIBLE_MATCH"
    assert analysis.endswith(".")
