"""Utility functions for image decoding and geometry"""
from .image import (
    decode_base64_image,
    strip_data_url,
    ImageProcessingError,
    ImageDecodingError,
    ImageFormatError,
)
from .geometry import box_iou, centroid, distance

__all__ = [
    'decode_base64_image',
    'strip_data_url',
    'ImageProcessingError',
    'ImageDecodingError',
    'ImageFormatError',
    'box_iou',
    'centroid',
    'distance',
]
