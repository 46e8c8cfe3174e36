from __future__ import annotations

import math

import pytest

from osteo_exam.models import Landmark
from osteo_exam.posture.metrics.angles import (
    body_center_x,
    cervical_alignment,
    compute_joint_angle,
    get_landmark,
    lateral_deviation,
    pelvic_tilt,
)
from osteo_exam.posture.metrics.symmetry import compute_symmetry, overall_balance


def _pt(x: float, y: float, visibility: float = 1.0) -> Landmark:
    return Landmark(x=x, y=y, visibility=visibility)


def test_compute_joint_angle_right_angle() -> None:
    angle = compute_joint_angle(_pt(1.0, 0.0), _pt(0.0, 0.0), _pt(0.0, 1.0))
    assert angle == pytest.approx(90.0)


def test_compute_joint_angle_straight_line() -> None:
    assert compute_joint_angle(_pt(0.5, 0.2), _pt(0.5, 0.5), _pt(0.5, 0.8)) == pytest.approx(180.0)


def test_compute_joint_angle_coincident_vertex_returns_zero() -> None:
    assert compute_joint_angle(_pt(0.3, 0.3), _pt(0.3, 0.3), _pt(0.6, 0.6)) == 0.0


def test_compute_joint_angle_missing_point_is_nan() -> None:
    assert math.isnan(compute_joint_angle(None, _pt(0.0, 0.0), _pt(0.0, 1.0)))


def test_compute_joint_angle_accepts_tuples() -> None:
    assert compute_joint_angle((1.0, 0.0), (0.0, 0.0), (1.0, 1.0)) == pytest.approx(45.0)


def test_cervical_alignment_zero_when_nose_above_midpoint() -> None:
    assert cervical_alignment(_pt(0.5, 0.2), _pt(0.6, 0.4), _pt(0.4, 0.4)) == pytest.approx(0.0)


def test_cervical_alignment_zero_when_nose_on_midpoint() -> None:
    assert cervical_alignment(_pt(0.5, 0.4), _pt(0.6, 0.4), _pt(0.4, 0.4)) == pytest.approx(0.0)


def test_cervical_alignment_forty_five_degrees() -> None:
    assert cervical_alignment(_pt(0.4, 0.3), _pt(0.6, 0.4), _pt(0.4, 0.4)) == pytest.approx(45.0)


def test_cervical_alignment_is_unsigned() -> None:
    left = cervical_alignment(_pt(0.4, 0.3), _pt(0.6, 0.4), _pt(0.4, 0.4))
    right = cervical_alignment(_pt(0.6, 0.3), _pt(0.6, 0.4), _pt(0.4, 0.4))
    assert left == pytest.approx(right)


def test_cervical_alignment_missing_shoulder_is_nan() -> None:
    assert math.isnan(cervical_alignment(_pt(0.5, 0.2), None, _pt(0.4, 0.4)))


def test_pelvic_tilt_level_hips_in_either_order() -> None:
    assert pelvic_tilt(_pt(0.6, 0.5), _pt(0.4, 0.5)) == pytest.approx(0.0)
    assert pelvic_tilt(_pt(0.4, 0.5), _pt(0.6, 0.5)) == pytest.approx(0.0)


def test_pelvic_tilt_folds_into_first_quadrant() -> None:
    angle = pelvic_tilt(_pt(0.5, 0.5), _pt(0.6, 0.6))
    assert angle == pytest.approx(45.0)
    assert 0.0 <= angle <= 90.0


def test_pelvic_tilt_small_drop() -> None:
    expected = math.degrees(math.atan2(0.02, 0.2))
    assert pelvic_tilt(_pt(0.6, 0.52), _pt(0.4, 0.5)) == pytest.approx(expected)


def test_body_center_and_lateral_deviation() -> None:
    shoulders = (_pt(0.6, 0.4), _pt(0.4, 0.4))
    hips = (_pt(0.56, 0.65), _pt(0.44, 0.65))
    assert body_center_x(*shoulders, *hips) == pytest.approx(0.5)
    assert lateral_deviation(_pt(0.55, 0.2), *shoulders, *hips, scale=1000.0) == pytest.approx(50.0)
    assert lateral_deviation(_pt(0.5, 0.2), *shoulders, *hips, scale=1000.0) == pytest.approx(0.0)


def test_lateral_deviation_missing_hip_is_nan() -> None:
    assert math.isnan(lateral_deviation(_pt(0.5, 0.2), _pt(0.6, 0.4), _pt(0.4, 0.4), None, _pt(0.44, 0.65)))


def test_symmetry_equal_values_is_full() -> None:
    assert compute_symmetry(0.4, 0.4) == pytest.approx(100.0)


def test_symmetry_known_value_and_commutative() -> None:
    assert compute_symmetry(0.40, 0.42) == pytest.approx(95.1219, abs=1e-3)
    assert compute_symmetry(0.42, 0.40) == pytest.approx(compute_symmetry(0.40, 0.42))


@pytest.mark.parametrize("left,right", [(0.1, 1.0), (-1.0, 3.0), (0.9, 0.05)])
def test_symmetry_bounded(left: float, right: float) -> None:
    value = compute_symmetry(left, right)
    assert 0.0 <= value <= 100.0


def test_symmetry_clamps_large_difference_to_zero() -> None:
    assert compute_symmetry(-1.0, 3.0) == 0.0


def test_symmetry_zero_mean() -> None:
    assert compute_symmetry(0.0, 0.0) == 100.0
    assert math.isnan(compute_symmetry(-1.0, 1.0))


@pytest.mark.parametrize("left,right", [(None, 0.4), (0.4, float("nan")), (float("inf"), 0.4)])
def test_symmetry_unavailable_inputs(left, right) -> None:
    assert math.isnan(compute_symmetry(left, right))


def test_overall_balance_mean_and_nan() -> None:
    assert overall_balance(90.0, 80.0) == pytest.approx(85.0)
    assert math.isnan(overall_balance(90.0, float("nan")))


def test_get_landmark_visibility_threshold() -> None:
    skeleton = (_pt(0.5, 0.2, visibility=0.3), _pt(0.5, 0.2, visibility=0.9))
    assert get_landmark(skeleton, 0, visibility_threshold=0.5) is None
    assert get_landmark(skeleton, 1, visibility_threshold=0.5) == skeleton[1]
    assert get_landmark(skeleton, 0, visibility_threshold=0.2) == skeleton[0]


def test_get_landmark_out_of_range_and_non_finite() -> None:
    skeleton = (_pt(float("nan"), 0.2), None)
    assert get_landmark(skeleton, 0) is None
    assert get_landmark(skeleton, 1) is None
    assert get_landmark(skeleton, 25) is None
    assert get_landmark(None, 0) is None
