"""Data models and type definitions"""
import logging
import math
from dataclasses import dataclass, field, fields, is_dataclass
from types import MappingProxyType
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple
from typing_extensions import TypedDict

import numpy as np

from ..config import LANDMARK_COUNT
from ..errors import InvalidInputError

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _to_jsonable(value: Any) -> Any:
    if is_dataclass(value):
        renames = getattr(value, "_json_keys", {})
        return {
            renames.get(f.name) or _camel(f.name): _to_jsonable(getattr(value, f.name))
            for f in fields(value)
        }
    if isinstance(value, Mapping):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        """Return the camelCase JSON shape of this record."""
        return _to_jsonable(self)


@dataclass(frozen=True)
class BoundingBox(_Serializable):
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "BoundingBox":
        try:
            values = [float(payload[key]) for key in ("x", "y", "width", "height")]
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInputError(f"Malformed bounding box: {payload!r}") from e
        if not all(math.isfinite(v) for v in values):
            raise InvalidInputError(f"Non-finite bounding box: {payload!r}")
        return cls(*values)


@dataclass(frozen=True)
class LandmarkSet:
    """The 68-point facial landmark layout with named index ranges.

    Ranges are half-open ``(start, stop)`` pairs over the conventional
    iBUG 300-W point order.
    """

    points: Tuple[Point, ...]

    JAW = (0, 17)
    CHIN = (6, 12)
    NOSE_BRIDGE = (27, 36)
    NOSE_TIP = 30
    LEFT_EYE = (36, 42)
    RIGHT_EYE = (42, 48)
    EYES = (36, 48)
    LEFT_EYE_OUTER = 36
    RIGHT_EYE_OUTER = 45
    MOUTH = (48, 68)
    MOUTH_LEFT = 48
    MOUTH_RIGHT = 54
    UPPER_LIP_TOP = 51
    LOWER_LIP_BOTTOM = 57

    def __post_init__(self):
        if len(self.points) != LANDMARK_COUNT:
            raise InvalidInputError(
                f"Expected {LANDMARK_COUNT} landmarks, got {len(self.points)}"
            )

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]]) -> "LandmarkSet":
        try:
            parsed = tuple((float(p[0]), float(p[1])) for p in points)
        except (IndexError, KeyError, TypeError, ValueError) as e:
            raise InvalidInputError("Malformed landmark points") from e
        if not all(math.isfinite(c) for p in parsed for c in p):
            raise InvalidInputError("Non-finite landmark points")
        return cls(parsed)

    def _range(self, bounds: Tuple[int, int]) -> np.ndarray:
        return np.asarray(self.points[bounds[0]:bounds[1]], dtype=np.float64)

    def point(self, index: int) -> np.ndarray:
        return np.asarray(self.points[index], dtype=np.float64)

    @property
    def jaw(self) -> np.ndarray:
        return self._range(self.JAW)

    @property
    def chin(self) -> np.ndarray:
        return self._range(self.CHIN)

    @property
    def nose_bridge(self) -> np.ndarray:
        return self._range(self.NOSE_BRIDGE)

    @property
    def nose_tip(self) -> np.ndarray:
        return self.point(self.NOSE_TIP)

    @property
    def left_eye(self) -> np.ndarray:
        return self._range(self.LEFT_EYE)

    @property
    def right_eye(self) -> np.ndarray:
        return self._range(self.RIGHT_EYE)

    @property
    def eyes(self) -> np.ndarray:
        return self._range(self.EYES)

    @property
    def mouth(self) -> np.ndarray:
        return self._range(self.MOUTH)


@dataclass(frozen=True)
class Detection(_Serializable):
    """One face as reported by the external detection model."""

    # Serialized under the same key ``from_dict`` reads.
    _json_keys: ClassVar[Mapping[str, str]] = MappingProxyType({"box": "boundingBox"})

    box: BoundingBox
    detection_score: float
    landmarks: Optional[Tuple[Point, ...]] = None
    descriptor: Optional[Tuple[float, ...]] = None
    source_strategy: str = "unknown"
    rotation: float = 0.0

    @property
    def landmark_count(self) -> int:
        return len(self.landmarks) if self.landmarks else 0

    @property
    def landmark_set(self) -> Optional[LandmarkSet]:
        """The landmarks as a ``LandmarkSet``, or None when incomplete."""
        if self.landmark_count != LANDMARK_COUNT:
            return None
        try:
            return LandmarkSet.from_points(self.landmarks)
        except InvalidInputError:
            return None

    @property
    def has_descriptor(self) -> bool:
        return bool(self.descriptor)

    def descriptor_array(self) -> Optional[np.ndarray]:
        if not self.descriptor:
            return None
        return np.asarray(self.descriptor, dtype=np.float64)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Detection":
        """Build a detection from its camelCase payload.

        Malformed landmarks or descriptors are dropped with a warning, so the
        detection degrades to unavailable features or a missing descriptor.

        Raises:
            InvalidInputError: If the box, score or rotation is missing or
                malformed.
        """
        if not isinstance(payload, Mapping):
            raise InvalidInputError("Detection payload must be an object")
        box = payload.get("boundingBox", payload.get("box"))
        if not isinstance(box, Mapping):
            raise InvalidInputError("Detection payload has no bounding box")

        try:
            score = float(payload.get("detectionScore", payload.get("score", 0.0)))
            rotation = float(payload.get("rotation", 0.0))
        except (TypeError, ValueError) as e:
            raise InvalidInputError("Malformed detection score or rotation") from e

        landmarks = payload.get("landmarks")
        if landmarks is not None:
            try:
                landmarks = tuple(_parse_point(p) for p in landmarks)
            except (IndexError, KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping malformed landmark points: %s", e)
                landmarks = None

        descriptor = payload.get("descriptor")
        if descriptor is not None:
            try:
                descriptor = tuple(float(v) for v in descriptor)
            except (TypeError, ValueError) as e:
                logger.warning("Dropping malformed descriptor: %s", e)
                descriptor = None

        return cls(
            box=BoundingBox.from_dict(box),
            detection_score=score,
            landmarks=landmarks or None,
            descriptor=descriptor or None,
            source_strategy=str(payload.get("sourceStrategy", "unknown")),
            rotation=rotation,
        )


def _parse_point(raw: Any) -> Point:
    if isinstance(raw, Mapping):
        return (float(raw["x"]), float(raw["y"]))
    return (float(raw[0]), float(raw[1]))


@dataclass(frozen=True)
class GlassesResult(_Serializable):
    has_glasses: bool
    confidence: float
    left_ear: float = 0.0
    right_ear: float = 0.0
    eye_to_nose_distance: float = 0.0
    signal: Optional[str] = None
    error: bool = False


@dataclass(frozen=True)
class FacialHairResult(_Serializable):
    has_beard: bool
    has_mustache: bool
    confidence: float
    error: bool = False


@dataclass(frozen=True)
class EyeState(_Serializable):
    state: str
    ear: float
    confidence: float = 0.0


@dataclass(frozen=True)
class EyesResult(_Serializable):
    left_eye: EyeState
    right_eye: EyeState
    both_open: bool
    error: bool = False


@dataclass(frozen=True)
class SmileResult(_Serializable):
    is_smiling: bool
    confidence: float
    ratio: float
    error: bool = False


@dataclass(frozen=True)
class PoseResult(_Serializable):
    pose: str
    angle_degrees: float
    confidence: float
    error: bool = False


@dataclass(frozen=True)
class FaceFeatures(_Serializable):
    glasses: GlassesResult
    facial_hair: FacialHairResult
    eyes: EyesResult
    smile: SmileResult
    pose: PoseResult
    feature_confidence: float

    @classmethod
    def unavailable(cls) -> "FaceFeatures":
        """Low-confidence record for faces without a full landmark set."""
        unknown_eye = EyeState(state="unknown", ear=0.0)
        return cls(
            glasses=GlassesResult(has_glasses=False, confidence=0.0, error=True),
            facial_hair=FacialHairResult(
                has_beard=False, has_mustache=False, confidence=0.0, error=True
            ),
            eyes=EyesResult(
                left_eye=unknown_eye, right_eye=unknown_eye, both_open=False, error=True
            ),
            smile=SmileResult(is_smiling=False, confidence=0.0, ratio=0.0, error=True),
            pose=PoseResult(pose="unknown", angle_degrees=0.0, confidence=0.0, error=True),
            feature_confidence=0.0,
        )


@dataclass(frozen=True)
class ScoredFace(_Serializable):
    detection: Detection
    quality: float
    features: FaceFeatures
    confidence: float


@dataclass(frozen=True)
class Difference(_Serializable):
    type: str
    description: str
    severity: str


@dataclass(frozen=True)
class ComparisonResult(_Serializable):
    overall_similarity: float
    match: bool
    confidence: float
    quality_score: float
    differences: Tuple[Difference, ...] = ()
    detailed_metrics: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType({})
    )
    feature_similarity: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType({})
    )


class FaceMatchRequest(TypedDict):
    referenceImage: str
    actualImage: str


class CompareDetectionsRequest(TypedDict):
    detectionA: Dict[str, Any]
    detectionB: Dict[str, Any]


class AnalyzeDetectionsRequest(TypedDict):
    candidates: List[Dict[str, Any]]


class ErrorResponse(TypedDict):
    error: str
    traceback: Optional[str]
