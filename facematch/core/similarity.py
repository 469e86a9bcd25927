"""Descriptor similarity fusion and the match decision.

Four distance metrics are computed over two descriptors, weighted according to
quality signals read from the descriptor pair itself, and nudged by a bounded
quality adjustment. Each metric is scaled to a 0-100 similarity.
"""

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from .. import config
from ..errors import (
    ComputationError,
    DescriptorLengthMismatchError,
    MissingDescriptorError,
)
from ..models.types import Difference, FaceFeatures

logger = logging.getLogger(__name__)

METRIC_NAMES = ("euclidean", "cosine", "manhattan", "chi2")


@dataclass(frozen=True)
class QualityMetrics:
    magnitude_ratio: float
    avg_variance: float
    avg_snr: float
    avg_stability: float
    magnitude_a: float
    magnitude_b: float

    @classmethod
    def fallback(cls) -> "QualityMetrics":
        return cls(**config.FALLBACK_QUALITY_METRICS)


@dataclass(frozen=True)
class SimilarityBreakdown:
    """Everything the fused similarity was computed from."""

    similarity: float
    weighted_similarity: float
    euclidean_distance: Optional[float]
    metrics: Mapping[str, float]
    weights: Mapping[str, float]
    quality: QualityMetrics
    quality_adjustment: float


def _finite(value: float, what: str) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ComputationError(f"{what} is not finite")
    return value


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(max(value, low), high)


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    return _finite(np.linalg.norm(a - b), "euclidean distance")


def euclidean_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """``100 - 100 * distance``, clamped to [0, 100]."""
    return _clamp(100 - 100 * euclidean_distance(a, b))


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of the unit-normalized descriptors, floored at 0, scaled to 100."""
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        raise ComputationError("cosine similarity of a zero vector")
    dot = _finite(np.dot(a / norm_a, b / norm_b), "cosine")
    return _clamp(min(dot, 1.0) * 100)


def manhattan_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """``100 - 10 * sum(|a - b|)``, clamped to [0, 100]."""
    total = _finite(np.sum(np.abs(a - b)), "manhattan distance")
    return _clamp(100 - 10 * total)


def chi_squared_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """``100 - 50 * mean((a - b)^2 / (mean(a, b) + eps))``, clamped to [0, 100].

    Raises:
        ComputationError: If the statistic is not finite.
    """
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        expected = (a + b) / 2 + config.CHI2_EPSILON
        chi2 = np.mean((a - b) ** 2 / expected)
    return _clamp(100 - 50 * _finite(chi2, "chi-squared distance"))


_METRICS: Dict[str, Callable[[np.ndarray, np.ndarray], float]] = {
    "euclidean": euclidean_similarity,
    "cosine": cosine_similarity,
    "manhattan": manhattan_similarity,
    "chi2": chi_squared_similarity,
}


def _safe_metric(name: str, a: np.ndarray, b: np.ndarray) -> float:
    try:
        return _METRICS[name](a, b)
    except ComputationError as e:
        logger.warning("%s similarity fell back to 0: %s", name, e)
        return 0.0


def quality_metrics(a: np.ndarray, b: np.ndarray) -> QualityMetrics:
    """Quality signals of a descriptor pair, with fallbacks for degenerate input."""
    try:
        with np.errstate(invalid="ignore", over="ignore"):
            magnitude_a = _finite(np.linalg.norm(a), "magnitude")
            magnitude_b = _finite(np.linalg.norm(b), "magnitude")
            larger = max(magnitude_a, magnitude_b)
            if larger == 0:
                raise ComputationError("both descriptors are zero vectors")

            variance_a = _finite(np.var(a), "variance")
            variance_b = _finite(np.var(b), "variance")
            snr_a = magnitude_a / (math.sqrt(variance_a) + 1e-10)
            snr_b = magnitude_b / (math.sqrt(variance_b) + 1e-10)

            return QualityMetrics(
                magnitude_ratio=min(magnitude_a, magnitude_b) / larger,
                avg_variance=(variance_a + variance_b) / 2,
                avg_snr=_finite((snr_a + snr_b) / 2, "SNR"),
                avg_stability=(magnitude_a + magnitude_b) / 2 / math.sqrt(len(a)),
                magnitude_a=magnitude_a,
                magnitude_b=magnitude_b,
            )
    except ComputationError as e:
        logger.warning("Descriptor quality metrics fell back to defaults: %s", e)
        return QualityMetrics.fallback()


def adaptive_weights(quality: QualityMetrics) -> Dict[str, float]:
    """Shift metric weights toward the metrics the descriptor pair favours.

    Returns:
        Weights keyed by metric name, summing to 1.
    """
    weights = dict(config.BASE_WEIGHTS)

    if quality.magnitude_ratio > 0.9:
        weights["euclidean"] += 0.1
        weights["cosine"] += 0.05
    elif quality.magnitude_ratio < 0.7:
        weights["cosine"] += 0.1
        weights["euclidean"] -= 0.05

    if quality.avg_snr > 15:
        weights["euclidean"] += 0.05
        weights["manhattan"] += 0.05
    elif quality.avg_snr < 8:
        weights["cosine"] += 0.1
        weights["chi2"] -= 0.05

    if quality.avg_stability > 0.8:
        weights["euclidean"] += 0.05
        weights["manhattan"] += 0.05
    else:
        weights["cosine"] += 0.1

    total = sum(weights.values())
    return {name: weight / total for name, weight in weights.items()}


def quality_adjustment(quality: QualityMetrics) -> float:
    """Bonus or penalty added to the fused score, capped to +/- 15."""
    adjustment = 0.0
    adjustment += (quality.magnitude_ratio - 0.8) * 15
    adjustment += (quality.avg_snr - 10) * 0.5
    adjustment += (quality.avg_stability - 0.7) * 10
    adjustment -= (quality.avg_variance - 0.1) * 20

    avg_magnitude = (quality.magnitude_a + quality.magnitude_b) / 2
    adjustment += (min(1.0, avg_magnitude / 80) - 0.6) * 8

    cap = config.QUALITY_ADJUSTMENT_CAP
    return _clamp(adjustment, -cap, cap)


def _as_vector(descriptor: Optional[Sequence[float]]) -> np.ndarray:
    if descriptor is None or len(descriptor) == 0:
        raise MissingDescriptorError("Descriptor is missing")
    return np.asarray(descriptor, dtype=np.float64).reshape(-1)


def score_similarity(
    descriptor_a: Optional[Sequence[float]],
    descriptor_b: Optional[Sequence[float]],
) -> SimilarityBreakdown:
    """Fuse four distance metrics into one similarity in [0, 100].

    Args:
        descriptor_a: First face descriptor.
        descriptor_b: Second face descriptor.

    Returns:
        The fused similarity and the values it was built from.

    Raises:
        MissingDescriptorError: If either descriptor is absent or empty.
        DescriptorLengthMismatchError: If the descriptors differ in length.
    """
    a = _as_vector(descriptor_a)
    b = _as_vector(descriptor_b)
    if a.shape != b.shape:
        raise DescriptorLengthMismatchError(a.size, b.size)

    quality = quality_metrics(a, b)
    weights = adaptive_weights(quality)

    try:
        distance = euclidean_distance(a, b)
    except ComputationError as e:
        logger.warning("Euclidean distance unavailable: %s", e)
        distance = None

    if distance == 0.0:
        metrics = {name: 100.0 for name in METRIC_NAMES}
        weighted = 100.0
        adjustment = 0.0
    else:
        metrics = {name: _safe_metric(name, a, b) for name in METRIC_NAMES}
        weighted = sum(metrics[name] * weights[name] for name in METRIC_NAMES)
        adjustment = quality_adjustment(quality)

    similarity = round(_clamp(weighted + adjustment), 2)

    return SimilarityBreakdown(
        similarity=float(similarity),
        weighted_similarity=float(weighted),
        euclidean_distance=distance,
        metrics=MappingProxyType(metrics),
        weights=MappingProxyType(weights),
        quality=quality,
        quality_adjustment=float(adjustment),
    )


def match_threshold(avg_quality: float) -> float:
    """Similarity required to accept a match at the given average quality."""
    quality = _clamp(avg_quality)
    return config.MATCH_THRESHOLD_BASE + quality / 100 * config.MATCH_THRESHOLD_QUALITY_SPAN


def is_match(similarity: float, avg_quality: float) -> bool:
    """Accept when similarity reaches the threshold for the average quality.

    Args:
        similarity: Fused similarity in [0, 100].
        avg_quality: Mean quality score of the two detections.

    Returns:
        True when ``similarity >= match_threshold(avg_quality)``.
    """
    return similarity >= match_threshold(avg_quality)


def identify_differences(features_a: FaceFeatures, features_b: FaceFeatures) -> List[Difference]:
    """Explain which attributes differ between two faces.

    Only attributes computable for both faces are compared. The result never
    feeds into the similarity score.
    """
    differences: List[Difference] = []

    glasses_a, glasses_b = features_a.glasses, features_b.glasses
    if not (glasses_a.error or glasses_b.error) and glasses_a.has_glasses != glasses_b.has_glasses:
        if glasses_a.has_glasses:
            description = "Person is wearing glasses in first image but not in second"
        else:
            description = "Person is not wearing glasses in first image but is in second"
        differences.append(Difference(type="glasses", description=description, severity="high"))

    hair_a, hair_b = features_a.facial_hair, features_b.facial_hair
    if not (hair_a.error or hair_b.error):
        if hair_a.has_beard != hair_b.has_beard:
            differences.append(Difference(
                type="beard",
                description="Beard presence differs between images",
                severity="medium",
            ))
        if hair_a.has_mustache != hair_b.has_mustache:
            differences.append(Difference(
                type="mustache",
                description="Mustache presence differs between images",
                severity="medium",
            ))

    eyes_a, eyes_b = features_a.eyes, features_b.eyes
    if not (eyes_a.error or eyes_b.error) and eyes_a.both_open != eyes_b.both_open:
        differences.append(Difference(
            type="eye_state",
            description="Eye state differs between images (open/closed)",
            severity="low",
        ))

    smile_a, smile_b = features_a.smile, features_b.smile
    if not (smile_a.error or smile_b.error) and smile_a.is_smiling != smile_b.is_smiling:
        differences.append(Difference(
            type="smile",
            description="Smile state differs between images",
            severity="low",
        ))

    return differences


# Display scores for an attribute that agrees / disagrees across two faces.
_FEATURE_AGREEMENT = {
    "glasses": (95.0, 20.0),
    "facialHair": (90.0, 30.0),
    "eyes": (85.0, 40.0),
    "smile": (80.0, 35.0),
}


def compare_features(features_a: FaceFeatures, features_b: FaceFeatures) -> Dict[str, float]:
    """Per-attribute agreement scores (0-100), for display only."""
    agreement = {}

    if not (features_a.glasses.error or features_b.glasses.error):
        agreement["glasses"] = features_a.glasses.has_glasses == features_b.glasses.has_glasses

    hair_a, hair_b = features_a.facial_hair, features_b.facial_hair
    if not (hair_a.error or hair_b.error):
        agreement["facialHair"] = (
            hair_a.has_beard == hair_b.has_beard and hair_a.has_mustache == hair_b.has_mustache
        )

    if not (features_a.eyes.error or features_b.eyes.error):
        agreement["eyes"] = features_a.eyes.both_open == features_b.eyes.both_open

    if not (features_a.smile.error or features_b.smile.error):
        agreement["smile"] = features_a.smile.is_smiling == features_b.smile.is_smiling

    return {
        name: _FEATURE_AGREEMENT[name][0 if same else 1]
        for name, same in agreement.items()
    }


def feature_consistency(feature_similarity: Mapping[str, float]) -> float:
    """Fraction of compared attributes that agree; 0 when none were compared."""
    if not feature_similarity:
        return 0.0
    agreeing = sum(
        1 for name, score in feature_similarity.items()
        if score == _FEATURE_AGREEMENT[name][0]
    )
    return agreeing / len(feature_similarity)
