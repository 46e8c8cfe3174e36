"""Configuration for landmark-based posture analysis.

Settings include:
- BodyLandmark: MediaPipe pose landmark indices consumed by the metrics engine.
- KEY_JOINTS: left/right index pairs grouped by joint.
- VISIBILITY_THRESHOLD: Minimum landmark visibility to accept a point.
- LATERAL_DEVIATION_SCALE: Factor turning normalized x offsets into estimated millimetres.

Values can be overridden via `OSTEO_EXAM_*` environment variables.
"""

from __future__ import annotations

import logging
import os
import warnings
from enum import IntEnum
from typing import Dict, Tuple

from osteo_exam.env import get_env, get_env_float


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger("osteo_exam.posture")
    level_name = get_env("LOG_LEVEL") or os.getenv("LOG_LEVEL")
    if level_name:
        level = getattr(logging, level_name.upper(), logging.INFO)
        logger.setLevel(level)
    return logger


POSTURE_LOGGER = _configure_logger()
logger = POSTURE_LOGGER

# MediaPipe pose models emit 33 landmarks; only the entries below are consumed.
# https://developers.google.com/mediapipe/solutions/vision/pose_landmarker
NUM_POSE_LANDMARKS = 33


class BodyLandmark(IntEnum):
    NOSE = 0
    LEFT_EYE = 1
    RIGHT_EYE = 4
    LEFT_EAR = 7
    RIGHT_EAR = 8
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


KEY_JOINTS: Dict[str, Tuple[int, int]] = {
    "eyes": (BodyLandmark.LEFT_EYE, BodyLandmark.RIGHT_EYE),
    "shoulders": (BodyLandmark.LEFT_SHOULDER, BodyLandmark.RIGHT_SHOULDER),
    "elbows": (BodyLandmark.LEFT_ELBOW, BodyLandmark.RIGHT_ELBOW),
    "wrists": (BodyLandmark.LEFT_WRIST, BodyLandmark.RIGHT_WRIST),
    "hips": (BodyLandmark.LEFT_HIP, BodyLandmark.RIGHT_HIP),
    "knees": (BodyLandmark.LEFT_KNEE, BodyLandmark.RIGHT_KNEE),
    "ankles": (BodyLandmark.LEFT_ANKLE, BodyLandmark.RIGHT_ANKLE),
}

VISIBILITY_THRESHOLD: float = get_env_float("VISIBILITY_THRESHOLD", 0.5)
LATERAL_DEVIATION_SCALE: float = get_env_float("LATERAL_DEVIATION_SCALE", 1000.0)

__all__ = [
    "POSTURE_LOGGER",
    "NUM_POSE_LANDMARKS",
    "BodyLandmark",
    "KEY_JOINTS",
    "VISIBILITY_THRESHOLD",
    "LATERAL_DEVIATION_SCALE",
    "validate_config_values",
    "config_summary",
]


def validate_config_values() -> None:
    """Validate current config values and emit warnings for suspicious settings."""
    if not 0.0 <= VISIBILITY_THRESHOLD <= 1.0:
        warnings.warn(
            f"VISIBILITY_THRESHOLD={VISIBILITY_THRESHOLD} is outside [0,1]; please correct the environment.",
            RuntimeWarning,
            stacklevel=2,
        )
        logger.warning("VISIBILITY_THRESHOLD is outside [0,1]: %s", VISIBILITY_THRESHOLD)
    if LATERAL_DEVIATION_SCALE <= 0.0:
        warnings.warn(
            f"LATERAL_DEVIATION_SCALE={LATERAL_DEVIATION_SCALE} is non-positive; deviations will be meaningless.",
            RuntimeWarning,
            stacklevel=2,
        )
        logger.warning("LATERAL_DEVIATION_SCALE is non-positive: %s", LATERAL_DEVIATION_SCALE)


def config_summary() -> list[str]:
    """Describe the posture configuration for CLI display."""
    joints = ", ".join(f"{name}={pair[0]}/{pair[1]}" for name, pair in KEY_JOINTS.items())
    return [
        f"Key joints: {joints}",
        f"Visibility threshold: {VISIBILITY_THRESHOLD}",
        f"Lateral deviation scale: {LATERAL_DEVIATION_SCALE}",
    ]


# Run validation at import to surface misconfigurations early.
validate_config_values()
