"""Exception types raised by the matching pipeline."""


class FaceMatchError(Exception):
    """Base exception for all facematch errors."""
    pass


class InvalidInputError(FaceMatchError):
    """Raised when a bounding box or landmark set is malformed."""
    pass


class ComputationError(FaceMatchError):
    """Raised when an intermediate value is not finite."""
    pass


class ComparisonError(FaceMatchError):
    """Base exception for failures of a single comparison call."""
    pass


class MissingDescriptorError(ComparisonError):
    """Raised when one or both descriptors are absent."""
    pass


class DescriptorLengthMismatchError(ComparisonError):
    """Raised when two descriptors have different lengths."""

    def __init__(self, length_a: int, length_b: int):
        super().__init__(
            f"Descriptor length mismatch: {length_a} != {length_b}"
        )
        self.length_a = length_a
        self.length_b = length_b


class EmptyReferenceError(ComparisonError):
    """Raised when comparing against a reference slot that holds nothing."""
    pass


class FaceDetectionError(FaceMatchError):
    """Base exception for face detection errors."""
    pass


class NoFaceDetectedError(FaceDetectionError):
    """Exception raised when no face is detected in an image."""
    pass


class FeatureExtractionError(FaceDetectionError):
    """Exception raised when face features cannot be extracted."""
    pass
