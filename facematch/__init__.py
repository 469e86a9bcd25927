"""Face verification: decide whether two face detections show the same person."""
from .core.comparator import compare, deduplicate_and_score, ReferenceSlot

__version__ = "0.1.0"

__all__ = ['compare', 'deduplicate_and_score', 'ReferenceSlot']
