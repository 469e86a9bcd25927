"""Data models and type definitions"""
from .types import (
    BoundingBox,
    LandmarkSet,
    Detection,
    GlassesResult,
    FacialHairResult,
    EyeState,
    EyesResult,
    SmileResult,
    PoseResult,
    FaceFeatures,
    ScoredFace,
    Difference,
    ComparisonResult,
    FaceMatchRequest,
    CompareDetectionsRequest,
    AnalyzeDetectionsRequest,
    ErrorResponse,
)

__all__ = [
    'BoundingBox',
    'LandmarkSet',
    'Detection',
    'GlassesResult',
    'FacialHairResult',
    'EyeState',
    'EyesResult',
    'SmileResult',
    'PoseResult',
    'FaceFeatures',
    'ScoredFace',
    'Difference',
    'ComparisonResult',
    'FaceMatchRequest',
    'CompareDetectionsRequest',
    'AnalyzeDetectionsRequest',
    'ErrorResponse',
]
