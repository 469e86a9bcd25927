import numpy as np
import pytest

pytest.importorskip("face_recognition")

from facematch.core.face_detection import (  # noqa: E402
    DEFAULT_STRATEGIES,
    DetectionStrategy,
    FaceDetector,
    normalize_score,
    to_source_box,
    to_source_point,
)
from facematch.errors import NoFaceDetectedError  # noqa: E402

from factories import make_detection  # noqa: E402


def test_default_cascade_order():
    assert [s.name for s in DEFAULT_STRATEGIES] == [
        "hog", "hog_upsampled", "low_conf", "rotated_90", "rotated_180", "rotated_270",
    ]
    assert DEFAULT_STRATEGIES[1].upsample == 2
    assert DEFAULT_STRATEGIES[2].threshold == -0.5


def test_normalize_score():
    assert normalize_score(0.0) == 0.5
    assert 0.0 < normalize_score(-3.0) < normalize_score(0.5) < normalize_score(2.0) < 1.0


@pytest.mark.parametrize("rotation", [0, 90, 180, 270])
def test_box_and_corner_mapping_agree(rotation):
    source_shape = (480, 640, 3)
    rotated_shape = source_shape if rotation in (0, 180) else (640, 480, 3)
    box = (30, 50, 100, 120)

    mapped = to_source_box(box, rotation, rotated_shape)
    x, y, w, h = box
    corners = [
        to_source_point(px, py, rotation, rotated_shape)
        for px, py in ((x, y), (x + w, y + h))
    ]
    xs = sorted(c[0] for c in corners)
    ys = sorted(c[1] for c in corners)

    assert (mapped.x, mapped.y) == (xs[0], ys[0])
    assert (mapped.x + mapped.width, mapped.y + mapped.height) == (xs[1], ys[1])


class _StubDetector(FaceDetector):
    def __init__(self, outcomes):
        super().__init__()
        self.outcomes = dict(outcomes)
        self.tried = []

    def detect_faces(self, image, strategy):
        self.tried.append(strategy.name)
        outcome = self.outcomes.get(strategy.name)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            raise NoFaceDetectedError("No faces detected in image")
        return outcome


def test_cascade_stops_at_first_success():
    face = make_detection(strategy="low_conf")
    stub = _StubDetector({"hog_upsampled": RuntimeError("dlib failed"), "low_conf": [face]})

    assert stub.process_image(np.zeros((10, 10, 3), dtype=np.uint8)) == [face]
    assert stub.tried == ["hog", "hog_upsampled", "low_conf"]


def test_cascade_exhausted_raises():
    stub = _StubDetector({})
    with pytest.raises(NoFaceDetectedError):
        stub.process_image(np.zeros((10, 10, 3), dtype=np.uint8), "Reference: ")
    assert len(stub.tried) == len(DEFAULT_STRATEGIES)


def test_process_image_rejects_none():
    with pytest.raises(ValueError):
        FaceDetector().process_image(None)


def test_strategy_is_hashable_config():
    assert DetectionStrategy("hog") == DetectionStrategy("hog")
    assert len({DetectionStrategy("hog"), DetectionStrategy("hog")}) == 1
