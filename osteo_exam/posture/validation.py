"""Pose validation predicates referenced by exam instruction steps.

Each step names a `ValidationTag`; `evaluate` resolves it through a fixed
registry. Predicates take the current skeleton (and the latest metrics record
for the balance check), never raise, and return False when a required landmark
is missing or below the visibility threshold.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from ..models import MetricsRecord
from .config import BodyLandmark
from .metrics.angles import body_center_x, get_landmark

logger = logging.getLogger(__name__)

STANCE_CENTER_RANGE = (0.3, 0.7)
EYE_LEVEL_TOLERANCE = 0.05
ARM_RAISE_TOLERANCE = 0.1
BALANCE_THRESHOLD = 80.0


class ValidationTag(str, Enum):
    BASIC_STANCE = "basic_stance"
    SYMMETRIC_STANCE = "symmetric_stance"
    FRONTAL_VIEW = "frontal_view"
    ARMS_DOWN = "arms_down"
    ARMS_RAISED = "arms_raised"
    ARMS_OVERHEAD = "arms_overhead"
    BALANCE = "balance"
    HIP_FLEXION = "hip_flexion"
    SHOULDER_ROTATION = "shoulder_rotation"
    FINAL_CAPTURE = "final_capture"
    READINESS = "readiness"


Skeleton = Optional[Sequence[Any]]
Predicate = Callable[[Skeleton, Optional[MetricsRecord]], bool]


def _basic_stance(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    points = [
        get_landmark(skeleton, index)
        for index in (
            BodyLandmark.LEFT_SHOULDER,
            BodyLandmark.RIGHT_SHOULDER,
            BodyLandmark.LEFT_HIP,
            BodyLandmark.RIGHT_HIP,
        )
    ]
    if any(point is None for point in points):
        return False
    center = body_center_x(*points)
    low, high = STANCE_CENTER_RANGE
    return math.isfinite(center) and low < center < high


def _frontal_view(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    nose = get_landmark(skeleton, BodyLandmark.NOSE)
    left_eye = get_landmark(skeleton, BodyLandmark.LEFT_EYE)
    right_eye = get_landmark(skeleton, BodyLandmark.RIGHT_EYE)
    if nose is None or left_eye is None or right_eye is None:
        return False
    return abs(left_eye.y - right_eye.y) < EYE_LEVEL_TOLERANCE


def _arm_pairs(skeleton: Skeleton):
    pairs = (
        (get_landmark(skeleton, BodyLandmark.LEFT_WRIST), get_landmark(skeleton, BodyLandmark.LEFT_SHOULDER)),
        (get_landmark(skeleton, BodyLandmark.RIGHT_WRIST), get_landmark(skeleton, BodyLandmark.RIGHT_SHOULDER)),
    )
    if any(wrist is None or shoulder is None for wrist, shoulder in pairs):
        return None
    return pairs


def _arms_down(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    pairs = _arm_pairs(skeleton)
    return pairs is not None and all(wrist.y > shoulder.y for wrist, shoulder in pairs)


def _arms_raised(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    pairs = _arm_pairs(skeleton)
    return pairs is not None and all(abs(wrist.y - shoulder.y) < ARM_RAISE_TOLERANCE for wrist, shoulder in pairs)


def _arms_overhead(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    pairs = _arm_pairs(skeleton)
    return pairs is not None and all(wrist.y < shoulder.y for wrist, shoulder in pairs)


def _balance(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    if skeleton is None or metrics is None:
        return False
    value = metrics.symmetry.overall_balance
    return math.isfinite(value) and value > BALANCE_THRESHOLD


def _hip_flexion(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    for knee_index, hip_index in (
        (BodyLandmark.LEFT_KNEE, BodyLandmark.LEFT_HIP),
        (BodyLandmark.RIGHT_KNEE, BodyLandmark.RIGHT_HIP),
    ):
        knee = get_landmark(skeleton, knee_index)
        hip = get_landmark(skeleton, hip_index)
        if knee is not None and hip is not None and knee.y < hip.y:
            return True
    return False


def _skeleton_present(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    return skeleton is not None


def _always(skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    return True


PREDICATES: Dict[ValidationTag, Predicate] = {
    ValidationTag.BASIC_STANCE: _basic_stance,
    ValidationTag.SYMMETRIC_STANCE: _basic_stance,
    ValidationTag.FRONTAL_VIEW: _frontal_view,
    ValidationTag.ARMS_DOWN: _arms_down,
    ValidationTag.ARMS_RAISED: _arms_raised,
    ValidationTag.ARMS_OVERHEAD: _arms_overhead,
    ValidationTag.BALANCE: _balance,
    ValidationTag.HIP_FLEXION: _hip_flexion,
    # Permissive placeholders: these steps never block progress.
    ValidationTag.SHOULDER_ROTATION: _skeleton_present,
    ValidationTag.FINAL_CAPTURE: _skeleton_present,
    ValidationTag.READINESS: _always,
}


def evaluate(tag: ValidationTag | str, skeleton: Skeleton, metrics: Optional[MetricsRecord] = None) -> bool:
    """Run the predicate registered for `tag`; unknown tags and predicate errors yield False."""
    try:
        resolved = ValidationTag(tag)
    except ValueError:
        logger.warning("Unknown validation tag %r", tag)
        return False
    try:
        return bool(PREDICATES[resolved](skeleton, metrics))
    except Exception:  # pragma: no cover - predicates are total over coerced landmarks
        logger.exception("Validation predicate %s failed", resolved.value)
        return False


__all__ = ["ValidationTag", "PREDICATES", "evaluate"]
