"""Tunable constants for the matching pipeline.

None of the geometric thresholds below have been calibrated against a labelled
dataset. Treat them as starting points to recalibrate, not physical constants.
"""

import os

# Server
HOST = os.environ.get("FACEMATCH_HOST", "0.0.0.0")
PORT = int(os.environ.get("FACEMATCH_PORT", "3002"))
LOG_LEVEL = os.environ.get("FACEMATCH_LOG_LEVEL", "INFO")

# Deduplication
DUPLICATE_IOU_THRESHOLD = 0.7

# Quality scoring
REFERENCE_FRAME_SIZE = (640, 480)  # width, height of the nominal capture frame
QUALITY_DEFAULT = 50.0
QUALITY_SIZE_AREA = 10000.0
QUALITY_SIZE_WEIGHT = 25.0
QUALITY_LANDMARK_WEIGHT = 20.0
QUALITY_ASPECT_RANGE = (0.7, 1.3)
QUALITY_ASPECT_GOOD = 15.0
QUALITY_ASPECT_POOR = 5.0
QUALITY_CENTER_BONUS = 20.0
QUALITY_CENTER_FALLOFF = 10.0  # pixels per bonus point

# Feature analysis
LANDMARK_COUNT = 68
GLASSES_EAR_THRESHOLD = 0.25
GLASSES_EYE_NOSE_DISTANCE = 30.0  # pixels at reference resolution
GLASSES_ASYMMETRY_LOW = 0.2
GLASSES_ASYMMETRY_HIGH = 1.2
BEARD_MOUTH_CHIN_RATIO = 0.3
BEARD_MOUTH_ASPECT = 0.4
MUSTACHE_MOUTH_ASPECT = 0.3
# Placeholder until the facial hair heuristic is validated on real data.
FACIAL_HAIR_CONFIDENCE = 0.3
EYE_OPEN_EAR = 0.2
SMILE_RATIO_THRESHOLD = 2.5
POSE_PROFILE_DEGREES = 15.0
POSE_LOOKING_DOWN_RATIO = 0.55
POSE_LOOKING_UP_RATIO = 0.25
POSE_CONFIDENCE = 0.7

# Similarity fusion
BASE_WEIGHTS = {
    "euclidean": 0.4,
    "cosine": 0.3,
    "manhattan": 0.15,
    "chi2": 0.15,
}
CHI2_EPSILON = 1e-10
QUALITY_ADJUSTMENT_CAP = 15.0
FALLBACK_QUALITY_METRICS = {
    "magnitude_ratio": 0.8,
    "avg_variance": 0.1,
    "avg_snr": 10.0,
    "avg_stability": 0.8,
    "magnitude_a": 50.0,
    "magnitude_b": 50.0,
}

# Match decision
MATCH_THRESHOLD_BASE = 70.0
MATCH_THRESHOLD_QUALITY_SPAN = 10.0
DEGRADED_SIMILARITY = 50.0
DEGRADED_CONFIDENCE = 0.5

# Detection
PRIMARY_STRATEGY = "hog"
PRIMARY_STRATEGY_BOOST = 1.1
DETECTION_SCORE_STEEPNESS = 2.0
