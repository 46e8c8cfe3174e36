from __future__ import annotations

import math

import numpy as np
import pytest

from conftest import build_skeleton
from osteo_exam.models import MetricsRecord, ValidationError, coerce_skeleton
from osteo_exam.posture.metrics import MetricsTracker, compute_metrics, format_metrics


def test_neutral_skeleton_metrics(neutral_skeleton) -> None:
    record = compute_metrics(neutral_skeleton)

    assert record.posture.cervical_alignment == pytest.approx(0.0, abs=1e-9)
    assert record.posture.pelvic_tilt == pytest.approx(0.0, abs=1e-9)
    assert record.posture.lateral_deviation == pytest.approx(0.0, abs=1e-6)
    assert record.joints.left_hip_angle == pytest.approx(180.0)
    assert record.joints.right_hip_angle == pytest.approx(180.0)
    assert record.joints.left_shoulder_angle > 170.0
    assert record.joints.right_shoulder_angle == pytest.approx(record.joints.left_shoulder_angle)
    assert record.symmetry.shoulder_symmetry == pytest.approx(100.0)
    assert record.symmetry.hip_symmetry == pytest.approx(100.0)
    assert record.symmetry.overall_balance == pytest.approx(100.0)


def test_shoulder_drop_lowers_symmetry() -> None:
    record = compute_metrics(build_skeleton({11: (0.6, 0.42)}))
    assert record.symmetry.shoulder_symmetry == pytest.approx(95.1219, abs=1e-3)
    assert record.symmetry.overall_balance == pytest.approx((95.1219 + 100.0) / 2, abs=1e-3)


def test_missing_skeleton_yields_empty_record() -> None:
    record = compute_metrics(None)
    assert record == MetricsRecord.empty()
    assert not record.has_values


def test_hidden_landmark_only_blanks_dependent_fields() -> None:
    record = compute_metrics(build_skeleton({0: None, 27: None}))

    assert math.isnan(record.posture.cervical_alignment)
    assert math.isnan(record.posture.lateral_deviation)
    assert math.isnan(record.joints.left_hip_angle)
    assert record.posture.pelvic_tilt == pytest.approx(0.0, abs=1e-9)
    assert record.joints.right_hip_angle == pytest.approx(180.0)
    assert record.symmetry.overall_balance == pytest.approx(100.0)


def test_short_skeleton_does_not_raise() -> None:
    record = compute_metrics(build_skeleton()[:13])
    assert record.posture.cervical_alignment == pytest.approx(0.0, abs=1e-9)
    assert math.isnan(record.posture.pelvic_tilt)


def test_numpy_array_input(neutral_skeleton) -> None:
    array = np.array([[p.x, p.y, p.z, p.visibility] for p in neutral_skeleton])
    skeleton = coerce_skeleton(array)
    assert compute_metrics(skeleton) == compute_metrics(neutral_skeleton)


def test_coerce_skeleton_payloads() -> None:
    assert coerce_skeleton(None) is None
    assert coerce_skeleton([]) is None
    assert coerce_skeleton({"landmarks": None}) is None
    skeleton = coerce_skeleton({"landmarks": [{"x": 0.5, "y": 0.2}, [0.1, 0.2, 0.0, 0.4], "bad"]})
    assert skeleton is not None
    assert skeleton[0].visibility == 1.0
    assert skeleton[1].visibility == pytest.approx(0.4)
    assert skeleton[2] is None
    with pytest.raises(ValidationError):
        coerce_skeleton({"points": []})
    with pytest.raises(ValidationError):
        coerce_skeleton(42)
    with pytest.raises(ValidationError):
        coerce_skeleton(np.zeros(5))


def test_tracker_keeps_previous_record_on_missing_frames(neutral_skeleton) -> None:
    tracker = MetricsTracker()
    first = tracker.update(neutral_skeleton)

    assert tracker.update(None) is first
    assert tracker.update(None) is first
    assert tracker.latest is first
    assert tracker.frames_processed == 1
    assert tracker.missed_frames == 2

    second = tracker.update(build_skeleton({11: (0.6, 0.45)}))
    assert tracker.latest is second
    assert second.symmetry.shoulder_symmetry < 100.0

    tracker.reset()
    assert tracker.latest == MetricsRecord.empty()
    assert tracker.frames_processed == 0


def test_tracker_visibility_threshold(neutral_skeleton) -> None:
    tracker = MetricsTracker(visibility_threshold=1.0)
    record = tracker.update(neutral_skeleton)
    assert not record.has_values


def test_format_metrics_placeholders_and_units(neutral_skeleton) -> None:
    empty = format_metrics(MetricsRecord.empty())
    assert empty["cervicalAlignment"] == "--°"
    assert empty["lateralDeviation"] == "--mm"
    assert empty["overallBalance"] == "--%"

    display = format_metrics(compute_metrics(build_skeleton({0: (0.55, 0.2)})))
    assert display["lateralDeviation"].endswith("mm")
    assert display["shoulderSymmetry"] == "100%"
    assert display["pelvicTilt"] == "0.0°"
    assert display["leftHipAngle"] == "180°"


def test_record_flatten_and_round_trip(neutral_skeleton) -> None:
    record = compute_metrics(neutral_skeleton)
    flat = record.flatten()
    assert list(flat)[0] == "posture.cervicalAlignment"
    assert "symmetry.overallBalance" in flat
    assert len(flat) == 10
    rebuilt = MetricsRecord.from_dict(record.to_dict())
    assert rebuilt == record
