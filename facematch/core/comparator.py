"""Orchestration of the matching pipeline for pairs of detections."""

import logging
from types import MappingProxyType
from typing import Dict, List, Optional, Sequence, Tuple

from .. import config
from ..errors import EmptyReferenceError, MissingDescriptorError, NoFaceDetectedError
from ..models.types import ComparisonResult, Detection, Difference, ScoredFace
from .dedup import deduplicate
from .features import analyze_features
from .quality import score_quality
from .similarity import (
    compare_features,
    feature_consistency,
    identify_differences,
    is_match,
    match_threshold,
    score_similarity,
)

logger = logging.getLogger(__name__)

MISSING_DESCRIPTOR = "missing_descriptor"


def boosted_confidence(detection: Detection) -> float:
    """Detection score, boosted for faces found by the primary strategy."""
    score = detection.detection_score
    if detection.source_strategy == config.PRIMARY_STRATEGY:
        return min(score * config.PRIMARY_STRATEGY_BOOST, 1.0)
    return score


def score_face(detection: Detection) -> ScoredFace:
    """Attach quality, features and boosted confidence to one detection.

    Args:
        detection: A deduplicated detection.

    Returns:
        The scored face.
    """
    return ScoredFace(
        detection=detection,
        quality=score_quality(detection),
        features=analyze_features(detection),
        confidence=boosted_confidence(detection),
    )


def deduplicate_and_score(candidates: Sequence[Detection]) -> List[ScoredFace]:
    """Deduplicate raw candidates and attach quality and features to each.

    Args:
        candidates: Raw detections from one or more strategies.

    Returns:
        Scored faces, most confident detection first.
    """
    return [score_face(detection) for detection in deduplicate(candidates)]


def _degraded_result(
    cause: MissingDescriptorError,
    quality_a: float,
    quality_b: float,
    differences: List[Difference],
    feature_similarity: Dict[str, float],
) -> ComparisonResult:
    avg_quality = (quality_a + quality_b) / 2
    missing = Difference(
        type=MISSING_DESCRIPTOR,
        description=f"Descriptor comparison unavailable: {cause}",
        severity="high",
    )
    return ComparisonResult(
        overall_similarity=config.DEGRADED_SIMILARITY,
        match=False,
        confidence=config.DEGRADED_CONFIDENCE,
        quality_score=avg_quality,
        differences=(missing, *differences),
        detailed_metrics=MappingProxyType({
            "qualityA": quality_a,
            "qualityB": quality_b,
            "matchThreshold": match_threshold(avg_quality),
        }),
        feature_similarity=MappingProxyType(feature_similarity),
    )


def is_degraded(result: ComparisonResult) -> bool:
    """True when the result was produced without comparing descriptors."""
    return any(d.type == MISSING_DESCRIPTOR for d in result.differences)


def compare(a: Detection, b: Detection) -> ComparisonResult:
    """Decide whether two detections show the same person.

    Never raises for missing descriptors: the result is degraded instead
    (similarity 50, no match, with a ``missing_descriptor`` difference).

    Raises:
        DescriptorLengthMismatchError: If both descriptors exist but differ
            in length.
    """
    quality_a = score_quality(a)
    quality_b = score_quality(b)
    avg_quality = (quality_a + quality_b) / 2

    features_a = analyze_features(a)
    features_b = analyze_features(b)
    differences = identify_differences(features_a, features_b)
    feature_similarity = compare_features(features_a, features_b)

    try:
        breakdown = score_similarity(a.descriptor, b.descriptor)
    except MissingDescriptorError as e:
        logger.warning("Comparing without descriptors: %s", e)
        return _degraded_result(e, quality_a, quality_b, differences, feature_similarity)

    similarity = breakdown.similarity
    threshold = match_threshold(avg_quality)
    matched = is_match(similarity, avg_quality)
    confidence = min(1.0, similarity / 100) * (avg_quality / 100)

    metrics = {
        "euclideanSimilarity": breakdown.metrics["euclidean"],
        "cosineSimilarity": breakdown.metrics["cosine"],
        "manhattanSimilarity": breakdown.metrics["manhattan"],
        "chi2Similarity": breakdown.metrics["chi2"],
        "euclideanWeight": breakdown.weights["euclidean"],
        "cosineWeight": breakdown.weights["cosine"],
        "manhattanWeight": breakdown.weights["manhattan"],
        "chi2Weight": breakdown.weights["chi2"],
        "weightedSimilarity": breakdown.weighted_similarity,
        "qualityAdjustment": breakdown.quality_adjustment,
        "magnitudeRatio": breakdown.quality.magnitude_ratio,
        "avgVariance": breakdown.quality.avg_variance,
        "avgSnr": breakdown.quality.avg_snr,
        "avgStability": breakdown.quality.avg_stability,
        "matchThreshold": threshold,
        "qualityA": quality_a,
        "qualityB": quality_b,
        "qualityDifference": abs(quality_a - quality_b),
        "featureConsistency": feature_consistency(feature_similarity),
    }
    if breakdown.euclidean_distance is not None:
        metrics["descriptorDistance"] = breakdown.euclidean_distance

    logger.debug(
        "Comparison: similarity=%.2f threshold=%.2f match=%s",
        similarity, threshold, matched,
    )

    return ComparisonResult(
        overall_similarity=similarity,
        match=matched,
        confidence=max(0.0, min(1.0, confidence)),
        quality_score=avg_quality,
        differences=tuple(differences),
        detailed_metrics=MappingProxyType(metrics),
        feature_similarity=MappingProxyType(feature_similarity),
    )


def best_pair(
    faces_a: Sequence[Detection],
    faces_b: Sequence[Detection],
) -> Tuple[ComparisonResult, Detection, Detection]:
    """Compare every pair across two face sets and keep the most similar.

    Pairs that were actually compared always rank above degraded results
    for pairs missing a descriptor.

    Args:
        faces_a: Candidate faces from the first image.
        faces_b: Candidate faces from the second image.

    Returns:
        ``(result, face_a, face_b)`` for the best-ranked pair.

    Raises:
        NoFaceDetectedError: If either set is empty.
    """
    best: Optional[Tuple[ComparisonResult, Detection, Detection]] = None
    best_rank: Optional[Tuple[bool, float]] = None

    for face_a in faces_a:
        for face_b in faces_b:
            result = compare(face_a, face_b)
            rank = (not is_degraded(result), result.overall_similarity)
            if best_rank is None or rank > best_rank:
                best = (result, face_a, face_b)
                best_rank = rank

    if best is None:
        raise NoFaceDetectedError("No matching face found in the photo")
    return best


class ReferenceSlot:
    """Holds one remembered reference face for repeated comparisons.

    The slot belongs to a single owner. ``replace`` is its only mutation and
    must not run while a comparison against the slot is in flight; callers
    comparing concurrently should pass the reference to ``compare`` directly.
    """

    def __init__(self, reference: Optional[Detection] = None):
        self._reference = reference

    @property
    def reference(self) -> Optional[Detection]:
        return self._reference

    @property
    def is_empty(self) -> bool:
        return self._reference is None

    def replace(self, reference: Optional[Detection]) -> Optional[Detection]:
        """Store a new reference and return the previous one."""
        previous, self._reference = self._reference, reference
        return previous

    def compare(self, candidate: Detection) -> ComparisonResult:
        reference = self._reference
        if reference is None:
            raise EmptyReferenceError("No reference face stored")
        return compare(reference, candidate)
