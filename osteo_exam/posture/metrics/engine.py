"""Assemble posture, joint-angle, and symmetry metrics for one skeleton."""

from __future__ import annotations

import logging
import math
import threading
from typing import Any, Dict, Optional, Sequence

from ...models import JointMetrics, MetricsRecord, PostureMetrics, SymmetryMetrics
from ..config import BodyLandmark
from .angles import cervical_alignment, compute_joint_angle, get_landmark, lateral_deviation, pelvic_tilt
from .symmetry import compute_symmetry, overall_balance

logger = logging.getLogger(__name__)

PLACEHOLDER = "--"


def _y(point: Any) -> Optional[float]:
    return None if point is None else float(point.y)


def compute_metrics(
    skeleton: Optional[Sequence[Any]],
    *,
    visibility_threshold: Optional[float] = None,
) -> MetricsRecord:
    """Compute a full `MetricsRecord` from one skeleton.

    Never raises for bad landmark data: a missing or low-visibility landmark
    makes the fields depending on it NaN. A missing skeleton yields the empty
    record.
    """
    if skeleton is None:
        return MetricsRecord.empty()

    def lm(index: BodyLandmark):
        return get_landmark(skeleton, index, visibility_threshold=visibility_threshold)

    nose = lm(BodyLandmark.NOSE)
    l_shoulder, r_shoulder = lm(BodyLandmark.LEFT_SHOULDER), lm(BodyLandmark.RIGHT_SHOULDER)
    l_elbow, r_elbow = lm(BodyLandmark.LEFT_ELBOW), lm(BodyLandmark.RIGHT_ELBOW)
    l_wrist, r_wrist = lm(BodyLandmark.LEFT_WRIST), lm(BodyLandmark.RIGHT_WRIST)
    l_hip, r_hip = lm(BodyLandmark.LEFT_HIP), lm(BodyLandmark.RIGHT_HIP)
    l_knee, r_knee = lm(BodyLandmark.LEFT_KNEE), lm(BodyLandmark.RIGHT_KNEE)
    l_ankle, r_ankle = lm(BodyLandmark.LEFT_ANKLE), lm(BodyLandmark.RIGHT_ANKLE)

    posture = PostureMetrics(
        cervical_alignment=cervical_alignment(nose, l_shoulder, r_shoulder),
        pelvic_tilt=pelvic_tilt(l_hip, r_hip),
        lateral_deviation=lateral_deviation(nose, l_shoulder, r_shoulder, l_hip, r_hip),
    )
    joints = JointMetrics(
        left_shoulder_angle=compute_joint_angle(l_shoulder, l_elbow, l_wrist),
        right_shoulder_angle=compute_joint_angle(r_shoulder, r_elbow, r_wrist),
        left_hip_angle=compute_joint_angle(l_hip, l_knee, l_ankle),
        right_hip_angle=compute_joint_angle(r_hip, r_knee, r_ankle),
    )
    shoulder_symmetry = compute_symmetry(_y(l_shoulder), _y(r_shoulder))
    hip_symmetry = compute_symmetry(_y(l_hip), _y(r_hip))
    symmetry = SymmetryMetrics(
        shoulder_symmetry=shoulder_symmetry,
        hip_symmetry=hip_symmetry,
        overall_balance=overall_balance(shoulder_symmetry, hip_symmetry),
    )
    return MetricsRecord(posture=posture, joints=joints, symmetry=symmetry)


class MetricsTracker:
    """Holds the latest metrics record for a session.

    Frames with a skeleton replace the record wholesale; frames without one keep
    the previous record and are counted as missed.
    """

    def __init__(self, *, visibility_threshold: Optional[float] = None) -> None:
        self._lock = threading.Lock()
        self._latest = MetricsRecord.empty()
        self._visibility_threshold = visibility_threshold
        self.frames_processed = 0
        self.missed_frames = 0

    @property
    def latest(self) -> MetricsRecord:
        with self._lock:
            return self._latest

    def update(self, skeleton: Optional[Sequence[Any]]) -> MetricsRecord:
        if skeleton is None:
            with self._lock:
                self.missed_frames += 1
                logger.debug("No skeleton in frame; keeping previous metrics (%d missed)", self.missed_frames)
                return self._latest
        record = compute_metrics(skeleton, visibility_threshold=self._visibility_threshold)
        with self._lock:
            self._latest = record
            self.frames_processed += 1
        return record

    def reset(self) -> None:
        with self._lock:
            self._latest = MetricsRecord.empty()
            self.frames_processed = 0
            self.missed_frames = 0


def _fmt(value: float, decimals: int, unit: str) -> str:
    if value is None or not math.isfinite(value):
        return f"{PLACEHOLDER}{unit}"
    return f"{value:.{decimals}f}{unit}"


def format_metrics(record: MetricsRecord) -> Dict[str, str]:
    """Render display strings keyed by the camelCase metric name; unavailable values show `--`."""
    return {
        "cervicalAlignment": _fmt(record.posture.cervical_alignment, 1, "°"),
        "pelvicTilt": _fmt(record.posture.pelvic_tilt, 1, "°"),
        "lateralDeviation": _fmt(record.posture.lateral_deviation, 0, "mm"),
        "leftShoulderAngle": _fmt(record.joints.left_shoulder_angle, 0, "°"),
        "rightShoulderAngle": _fmt(record.joints.right_shoulder_angle, 0, "°"),
        "leftHipAngle": _fmt(record.joints.left_hip_angle, 0, "°"),
        "rightHipAngle": _fmt(record.joints.right_hip_angle, 0, "°"),
        "shoulderSymmetry": _fmt(record.symmetry.shoulder_symmetry, 0, "%"),
        "hipSymmetry": _fmt(record.symmetry.hip_symmetry, 0, "%"),
        "overallBalance": _fmt(record.symmetry.overall_balance, 0, "%"),
    }
