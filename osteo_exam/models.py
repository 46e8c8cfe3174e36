from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

NAN = float("nan")

__all__ = [
    "ValidationError",
    "Landmark",
    "Skeleton",
    "coerce_skeleton",
    "is_finite",
    "PostureMetrics",
    "JointMetrics",
    "SymmetryMetrics",
    "MetricsRecord",
    "Snapshot",
    "clean_patient_name",
]


class ValidationError(ValueError):
    """Raised when user-supplied data cannot be normalised safely."""


def is_finite(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def _float_or_nan(value: Any) -> float:
    return float(value) if is_finite(value) else NAN


@dataclass(frozen=True)
class Landmark:
    """One normalized body point: x/y in [0, 1] (origin top-left), relative z, visibility in [0, 1]."""

    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @property
    def is_finite(self) -> bool:
        return is_finite(self.x) and is_finite(self.y)

    @classmethod
    def from_any(cls, point: Any) -> Optional["Landmark"]:
        """Coerce tuples/arrays `(x, y[, z[, visibility]])`, mappings, or MediaPipe landmark objects.

        Returns None when the point cannot be interpreted.
        """
        if point is None:
            return None
        if isinstance(point, Landmark):
            return point
        if isinstance(point, Mapping):
            if "x" not in point or "y" not in point:
                return None
            confidence = point.get("visibility", point.get("presence", point.get("confidence", 1.0)))
            return cls(
                x=_float_or_nan(point.get("x")),
                y=_float_or_nan(point.get("y")),
                z=_float_or_nan(point.get("z", 0.0)),
                visibility=_float_or_nan(1.0 if confidence is None else confidence),
            )
        if hasattr(point, "x") and hasattr(point, "y"):
            confidence = getattr(point, "visibility", getattr(point, "presence", 1.0))
            return cls(
                x=_float_or_nan(point.x),
                y=_float_or_nan(point.y),
                z=_float_or_nan(getattr(point, "z", 0.0)),
                visibility=_float_or_nan(1.0 if confidence is None else confidence),
            )
        try:
            arr = np.asarray(point, dtype=float).reshape(-1)
        except (TypeError, ValueError):
            return None
        if arr.size < 2:
            return None
        z = float(arr[2]) if arr.size >= 3 else 0.0
        visibility = float(arr[3]) if arr.size >= 4 else 1.0
        return cls(x=float(arr[0]), y=float(arr[1]), z=z, visibility=visibility)


Skeleton = Tuple[Optional[Landmark], ...]


def coerce_skeleton(raw: Any) -> Optional[Skeleton]:
    """Normalise a landmark payload into a Skeleton.

    Accepts a sequence of points, a numpy array of shape (N, 2..4), or a mapping
    with a "landmarks" key. Returns None when no person was detected (None or an
    empty payload). Unreadable entries become None (missing landmarks).
    """
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        if "landmarks" not in raw:
            raise ValidationError("Landmark payload must be a list or contain a 'landmarks' list.")
        return coerce_skeleton(raw.get("landmarks"))
    if isinstance(raw, np.ndarray):
        if raw.size == 0:
            return None
        if raw.ndim != 2:
            raise ValidationError(f"Landmark array must be 2-dimensional; received shape {raw.shape}.")
        return tuple(Landmark.from_any(row) for row in raw)
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        raise ValidationError(f"Landmarks must be provided as a list; received {type(raw).__name__}.")
    if len(raw) == 0:
        return None
    return tuple(Landmark.from_any(point) for point in raw)


def clean_patient_name(value: Any, *, max_length: int = 120) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"patient name must be text; received {value!r}.")
    cleaned = " ".join(value.split())
    if len(cleaned) > max_length:
        raise ValidationError(f"patient name must be at most {max_length} characters.")
    return cleaned


@dataclass(frozen=True)
class PostureMetrics:
    cervical_alignment: float = NAN
    pelvic_tilt: float = NAN
    lateral_deviation: float = NAN

    def to_dict(self) -> Dict[str, float]:
        return {
            "cervicalAlignment": self.cervical_alignment,
            "pelvicTilt": self.pelvic_tilt,
            "lateralDeviation": self.lateral_deviation,
        }


@dataclass(frozen=True)
class JointMetrics:
    left_shoulder_angle: float = NAN
    right_shoulder_angle: float = NAN
    left_hip_angle: float = NAN
    right_hip_angle: float = NAN

    def to_dict(self) -> Dict[str, float]:
        return {
            "leftShoulderAngle": self.left_shoulder_angle,
            "rightShoulderAngle": self.right_shoulder_angle,
            "leftHipAngle": self.left_hip_angle,
            "rightHipAngle": self.right_hip_angle,
        }


@dataclass(frozen=True)
class SymmetryMetrics:
    shoulder_symmetry: float = NAN
    hip_symmetry: float = NAN
    overall_balance: float = NAN

    def to_dict(self) -> Dict[str, float]:
        return {
            "shoulderSymmetry": self.shoulder_symmetry,
            "hipSymmetry": self.hip_symmetry,
            "overallBalance": self.overall_balance,
        }


@dataclass(frozen=True)
class MetricsRecord:
    """Posture, joint-angle, and symmetry metrics for one frame.

    Units: degrees for angles, estimated millimetres for lateral deviation,
    percentages for symmetry. Unavailable values are NaN.
    """

    posture: PostureMetrics = field(default_factory=PostureMetrics)
    joints: JointMetrics = field(default_factory=JointMetrics)
    symmetry: SymmetryMetrics = field(default_factory=SymmetryMetrics)

    @classmethod
    def empty(cls) -> "MetricsRecord":
        return cls()

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            "posture": self.posture.to_dict(),
            "joints": self.joints.to_dict(),
            "symmetry": self.symmetry.to_dict(),
        }

    def flatten(self) -> Dict[str, float]:
        """Return `{"posture.cervicalAlignment": value, ...}`."""
        flat: Dict[str, float] = {}
        for group, values in self.to_dict().items():
            for name, value in values.items():
                flat[f"{group}.{name}"] = value
        return flat

    @property
    def has_values(self) -> bool:
        return any(is_finite(value) for value in self.flatten().values())

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "MetricsRecord":
        """Rebuild a record from its camelCase dict form (missing/null values become NaN)."""
        payload = payload or {}

        def _group(name: str) -> Mapping[str, Any]:
            value = payload.get(name)
            return value if isinstance(value, Mapping) else {}

        posture = _group("posture")
        joints = _group("joints")
        symmetry = _group("symmetry")
        return cls(
            posture=PostureMetrics(
                cervical_alignment=_float_or_nan(posture.get("cervicalAlignment")),
                pelvic_tilt=_float_or_nan(posture.get("pelvicTilt")),
                lateral_deviation=_float_or_nan(posture.get("lateralDeviation")),
            ),
            joints=JointMetrics(
                left_shoulder_angle=_float_or_nan(joints.get("leftShoulderAngle")),
                right_shoulder_angle=_float_or_nan(joints.get("rightShoulderAngle")),
                left_hip_angle=_float_or_nan(joints.get("leftHipAngle")),
                right_hip_angle=_float_or_nan(joints.get("rightHipAngle")),
            ),
            symmetry=SymmetryMetrics(
                shoulder_symmetry=_float_or_nan(symmetry.get("shoulderSymmetry")),
                hip_symmetry=_float_or_nan(symmetry.get("hipSymmetry")),
                overall_balance=_float_or_nan(symmetry.get("overallBalance")),
            ),
        )


@dataclass(frozen=True)
class Snapshot:
    """Timestamped capture of the metrics at one moment; never mutated after capture."""

    timestamp: str
    patient_name: str
    exam_type: str
    metrics: MetricsRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "patientName": self.patient_name,
            "examType": self.exam_type,
            "metrics": self.metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Snapshot":
        return cls(
            timestamp=str(payload.get("timestamp") or ""),
            patient_name=str(payload.get("patientName") or ""),
            exam_type=str(payload.get("examType") or ""),
            metrics=MetricsRecord.from_dict(payload.get("metrics")),
        )
