"""Angle and offset computations over normalized pose landmarks.

All functions take `Landmark`-like points (or None for a missing landmark) and
return degrees, or NaN when an input is missing. Only the image-plane (x, y)
coordinates are used; MediaPipe's z is too noisy for clinical angles.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

import numpy as np

from ...models import Landmark
from ..config import LATERAL_DEVIATION_SCALE, VISIBILITY_THRESHOLD

NAN = float("nan")


def get_landmark(
    skeleton: Optional[Sequence[Any]],
    index: int,
    *,
    visibility_threshold: Optional[float] = None,
) -> Optional[Landmark]:
    """Return the landmark at `index` when it is usable, else None.

    A landmark is usable when it exists, has finite x/y, and its visibility
    reaches the threshold (defaults to `VISIBILITY_THRESHOLD`).
    """
    if skeleton is None:
        return None
    try:
        raw = skeleton[int(index)]
    except (IndexError, TypeError, KeyError):
        return None
    point = Landmark.from_any(raw)
    if point is None or not point.is_finite:
        return None
    threshold = VISIBILITY_THRESHOLD if visibility_threshold is None else float(visibility_threshold)
    if not math.isfinite(point.visibility) or point.visibility < threshold:
        return None
    return point


def _xy(point: Any) -> Optional[np.ndarray]:
    landmark = Landmark.from_any(point)
    if landmark is None or not landmark.is_finite:
        return None
    return np.array([landmark.x, landmark.y], dtype=float)


def midpoint(a: Any, b: Any) -> Optional[np.ndarray]:
    pa, pb = _xy(a), _xy(b)
    if pa is None or pb is None:
        return None
    return (pa + pb) / 2.0


def compute_joint_angle(p1: Any, p2: Any, p3: Any) -> float:
    """Compute the angle at p2 formed by points p1-p2-p3 (degrees).

    Returns 0.0 (not NaN) when the cosine ratio is not finite, which happens
    when p2 coincides with one of the outer points.
    """
    a, b, c = _xy(p1), _xy(p2), _xy(p3)
    if a is None or b is None or c is None:
        return NAN

    vector1 = a - b
    vector2 = c - b
    denominator = float(np.linalg.norm(vector1)) * float(np.linalg.norm(vector2))
    if denominator == 0.0:
        return 0.0
    cosine = float(np.dot(vector1, vector2)) / denominator
    if not math.isfinite(cosine):
        return 0.0
    cosine = float(np.clip(cosine, -1.0, 1.0))
    return float(np.degrees(np.arccos(cosine)))


def cervical_alignment(nose: Any, left_shoulder: Any, right_shoulder: Any) -> float:
    """Deviation of the neck from vertical (degrees, 0 = nose straight above the shoulders).

    Measured on the vector from the nose down to the shoulder midpoint, so a
    nose directly above (or exactly at) the midpoint reads 0.
    """
    head = _xy(nose)
    mid = midpoint(left_shoulder, right_shoulder)
    if head is None or mid is None:
        return NAN
    dx, dy = mid - head
    return abs(math.degrees(math.atan2(float(dx), float(dy))))


def pelvic_tilt(left_hip: Any, right_hip: Any) -> float:
    """Angle of the hip line relative to horizontal, folded into [0, 90] degrees."""
    left, right = _xy(left_hip), _xy(right_hip)
    if left is None or right is None:
        return NAN
    dx, dy = left - right
    angle = abs(math.degrees(math.atan2(float(dy), float(dx))))
    if angle > 90.0:
        angle = 180.0 - angle
    return angle


def body_center_x(left_shoulder: Any, right_shoulder: Any, left_hip: Any, right_hip: Any) -> float:
    """Mean of the shoulder-midpoint and hip-midpoint x coordinates."""
    shoulders = midpoint(left_shoulder, right_shoulder)
    hips = midpoint(left_hip, right_hip)
    if shoulders is None or hips is None:
        return NAN
    return float((shoulders[0] + hips[0]) / 2.0)


def lateral_deviation(
    nose: Any,
    left_shoulder: Any,
    right_shoulder: Any,
    left_hip: Any,
    right_hip: Any,
    *,
    scale: float = LATERAL_DEVIATION_SCALE,
) -> float:
    """Horizontal offset of the nose from the body's central axis.

    The result is scaled into an illustrative millimetre estimate; it is not a
    calibrated physical distance.
    """
    head = _xy(nose)
    center = body_center_x(left_shoulder, right_shoulder, left_hip, right_hip)
    if head is None or not math.isfinite(center):
        return NAN
    return abs(float(head[0]) - center) * float(scale)
