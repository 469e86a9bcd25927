"""Core face matching pipeline.

The detection adapter (``facematch.core.face_detection``) is not imported here
so the pipeline can be used without loading the dlib models.
"""
from .dedup import deduplicate
from .quality import score_quality
from .features import analyze_features
from .similarity import score_similarity, match_threshold, is_match
from .comparator import compare, deduplicate_and_score, best_pair, ReferenceSlot

__all__ = [
    'deduplicate',
    'score_quality',
    'analyze_features',
    'score_similarity',
    'match_threshold',
    'is_match',
    'compare',
    'deduplicate_and_score',
    'best_pair',
    'ReferenceSlot',
]
