"""Face matching API routes.

This module provides the API endpoints for face matching functionality:
matching two uploaded photos, comparing two detections produced elsewhere,
and deduplicating and scoring raw detection candidates.
"""

import logging
import traceback
from typing import Any, Dict, List, Tuple

from fastapi import APIRouter, HTTPException, status

from ..core.comparator import best_pair, compare, deduplicate_and_score
from ..core.face_detection import detect_faces_with_strategies
from ..errors import (
    DescriptorLengthMismatchError,
    FaceDetectionError,
    InvalidInputError,
    NoFaceDetectedError,
)
from ..models.types import (
    AnalyzeDetectionsRequest,
    CompareDetectionsRequest,
    ComparisonResult,
    Detection,
    ErrorResponse,
    FaceMatchRequest,
)
from ..utils.image import ImageProcessingError, decode_base64_image

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()

POSSIBLE_MATCH_MARGIN = 10.0


def analyze_similarity(result: ComparisonResult) -> Tuple[str, str]:
    """Generate a verdict label and analysis text for a comparison.

    Args:
        result: The comparison to describe.

    Returns:
        ``(label, analysis)`` where label is EXACT_MATCH, POSSIBLE_MATCH or
        NO_MATCH.
    """
    threshold = result.detailed_metrics.get("matchThreshold", 0.0)
    analysis = []

    if result.match:
        label = "EXACT_MATCH"
        analysis.append("Exact match - facial features align strongly")
        if result.overall_similarity >= threshold + POSSIBLE_MATCH_MARGIN:
            analysis.append("Very strong match with consistent core facial features")
    elif result.overall_similarity >= threshold - POSSIBLE_MATCH_MARGIN:
        label = "POSSIBLE_MATCH"
        analysis.append("Possible match with some variations")
        analysis.append("Variations may be due to age, expression, lighting, or angle")
    else:
        label = "NO_MATCH"
        analysis.append("No match - faces appear to be different")

    for difference in result.differences:
        analysis.append(difference.description)

    return label, ". ".join(analysis) + "."


def _bad_request(e: Exception, kind: str) -> HTTPException:
    logger.warning(f"{kind}: {str(e)}")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _internal_error(e: Exception) -> HTTPException:
    error_details: ErrorResponse = {
        'error': str(e),
        'traceback': traceback.format_exc()
    }
    logger.error("Error details:", extra=error_details)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error_details
    )


@router.post("/match-faces")
def match_faces(request_data: FaceMatchRequest) -> Dict[str, Any]:
    """Match faces between reference and actual photos.

    Args:
        request_data: Dictionary containing base64-encoded images.
            - referenceImage: Base64 string of reference photo
            - actualImage: Base64 string of actual photo

    Returns:
        The comparison of the most similar face pair, plus:
            - result: Match status (EXACT_MATCH, POSSIBLE_MATCH, NO_MATCH)
            - analysis: Detailed analysis text
            - referenceFace: Detected face box in reference image
            - actualFace: Detected face box in actual image

    Raises:
        HTTPException: If image processing, face detection or comparison fails
    """
    try:
        logger.info("Decoding reference image...")
        reference_image = decode_base64_image(request_data['referenceImage'])

        logger.info("Decoding actual image...")
        actual_image = decode_base64_image(request_data['actualImage'])

        # Process images sequentially to avoid memory issues
        logger.info("Processing reference image...")
        reference_faces = deduplicate_and_score(
            detect_faces_with_strategies(reference_image, "Reference: ")
        )

        logger.info("Processing actual image...")
        actual_faces = deduplicate_and_score(
            detect_faces_with_strategies(actual_image, "Actual: ")
        )

        result, reference_face, actual_face = best_pair(
            [face.detection for face in reference_faces],
            [face.detection for face in actual_faces],
        )

        logger.info(
            f"Best match found: Reference via {reference_face.source_strategy}, "
            f"Actual via {actual_face.source_strategy}"
        )
        logger.info(f"Match similarity: {result.overall_similarity}%")

        label, analysis = analyze_similarity(result)
        response = result.to_dict()
        response['result'] = label
        response['analysis'] = analysis
        response['referenceFace'] = {'box': reference_face.box.to_dict()}
        response['actualFace'] = {'box': actual_face.box.to_dict()}
        return response

    except NoFaceDetectedError as e:
        raise _bad_request(e, "Face detection error")
    except FaceDetectionError as e:
        raise _bad_request(e, "Feature extraction error")
    except ImageProcessingError as e:
        raise _bad_request(e, "Image error")
    except ValueError as e:
        raise _bad_request(e, "Validation error")
    except DescriptorLengthMismatchError as e:
        logger.warning(f"Comparison error: {str(e)}")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except Exception as e:
        raise _internal_error(e)


@router.post("/compare-detections")
def compare_detections(request_data: CompareDetectionsRequest) -> Dict[str, Any]:
    """Compare two detections produced by an external detection service.

    Args:
        request_data: Dictionary containing two detection payloads.
            - detectionA: Reference detection
            - detectionB: Candidate detection

    Returns:
        The comparison result.

    Raises:
        HTTPException: 400 for malformed detections, 422 for descriptors of
            different lengths
    """
    try:
        detection_a = Detection.from_dict(request_data['detectionA'])
        detection_b = Detection.from_dict(request_data['detectionB'])
        result = compare(detection_a, detection_b)
        logger.info(
            f"Compared detections: similarity={result.overall_similarity} match={result.match}"
        )
        return result.to_dict()

    except InvalidInputError as e:
        raise _bad_request(e, "Validation error")
    except DescriptorLengthMismatchError as e:
        logger.warning(f"Comparison error: {str(e)}")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except Exception as e:
        raise _internal_error(e)


@router.post("/analyze-detections")
def analyze_detections(request_data: AnalyzeDetectionsRequest) -> List[Dict[str, Any]]:
    """Deduplicate raw detection candidates and score each survivor.

    Args:
        request_data: Dictionary containing the candidate detections.
            - candidates: Detection payloads, possibly overlapping

    Returns:
        One entry per distinct face with its detection, quality, features and
        boosted confidence, most confident first.
    """
    try:
        candidates = [Detection.from_dict(c) for c in request_data['candidates']]
        scored = deduplicate_and_score(candidates)
        logger.info(f"Analyzed {len(candidates)} candidates into {len(scored)} faces")
        return [face.to_dict() for face in scored]

    except InvalidInputError as e:
        raise _bad_request(e, "Validation error")
    except Exception as e:
        raise _internal_error(e)
