"""Image decoding utilities.

This module turns base64 image payloads from API requests into OpenCV
images for the detection adapter.
"""

import base64
import binascii

import cv2
import numpy as np

from ..errors import FaceMatchError


class ImageProcessingError(FaceMatchError):
    """Base exception for image processing errors."""
    pass


class ImageDecodingError(ImageProcessingError):
    """Exception raised when image decoding fails."""
    pass


class ImageFormatError(ImageProcessingError):
    """Exception raised when image format is invalid."""
    pass


def strip_data_url(base64_string: str) -> str:
    """Remove a ``data:image/...;base64,`` prefix if present."""
    if ';base64,' in base64_string:
        return base64_string.split(';base64,', 1)[1]
    if base64_string.startswith('data:') and ',' in base64_string:
        return base64_string.split(',', 1)[1]
    return base64_string


def decode_base64_image(base64_string: str) -> np.ndarray:
    """Decode base64 string to OpenCV image.

    Args:
        base64_string: Base64 encoded image string, optionally with data URL prefix.
            Example formats:
            - "data:image/jpeg;base64,/9j/4AAQSkZ..."
            - "/9j/4AAQSkZ..." (without prefix)

    Returns:
        Decoded image as numpy array in BGR format.

    Raises:
        ImageDecodingError: If base64 decoding fails.
        ImageFormatError: If decoded data cannot be read as an image.
    """
    if not isinstance(base64_string, str) or not base64_string:
        raise ImageDecodingError("Image payload must be a non-empty string")

    try:
        image_bytes = base64.b64decode(strip_data_url(base64_string), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodingError(f"Failed to decode base64 string: {str(e)}")

    # Convert bytes to numpy array
    nparr = np.frombuffer(image_bytes, np.uint8)
    if nparr.size == 0:
        raise ImageFormatError("Image payload is empty")

    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageFormatError("Failed to decode image data")

    return image
