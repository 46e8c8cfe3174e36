from __future__ import annotations

import logging

import pytest

from conftest import build_skeleton
from osteo_exam.guidance.sequences import EXAM_SEQUENCES
from osteo_exam.models import MetricsRecord, SymmetryMetrics
from osteo_exam.posture.metrics import compute_metrics
from osteo_exam.posture.validation import PREDICATES, ValidationTag, evaluate


def test_registry_covers_every_tag() -> None:
    assert set(PREDICATES) == set(ValidationTag)


def test_every_step_tag_is_registered() -> None:
    for steps in EXAM_SEQUENCES.values():
        for step in steps:
            assert step.validation in PREDICATES


def test_basic_stance_centered_body(neutral_skeleton) -> None:
    assert evaluate(ValidationTag.BASIC_STANCE, neutral_skeleton)
    assert evaluate(ValidationTag.SYMMETRIC_STANCE, neutral_skeleton)


def test_basic_stance_off_center() -> None:
    skeleton = build_skeleton({11: (0.85, 0.4), 12: (0.75, 0.4), 23: (0.82, 0.65), 24: (0.78, 0.65)})
    assert not evaluate(ValidationTag.BASIC_STANCE, skeleton)


def test_basic_stance_needs_hips() -> None:
    assert not evaluate(ValidationTag.BASIC_STANCE, build_skeleton({23: None}))
    assert not evaluate(ValidationTag.BASIC_STANCE, None)


def test_frontal_view(neutral_skeleton) -> None:
    assert evaluate(ValidationTag.FRONTAL_VIEW, neutral_skeleton)
    assert not evaluate(ValidationTag.FRONTAL_VIEW, build_skeleton({4: (0.52, 0.25)}))
    assert not evaluate(ValidationTag.FRONTAL_VIEW, build_skeleton({0: None}))


def test_arm_positions(neutral_skeleton) -> None:
    raised = build_skeleton({15: (0.8, 0.42), 16: (0.2, 0.38)})
    overhead = build_skeleton({15: (0.62, 0.1), 16: (0.38, 0.1)})

    assert evaluate(ValidationTag.ARMS_DOWN, neutral_skeleton)
    assert not evaluate(ValidationTag.ARMS_RAISED, neutral_skeleton)
    assert not evaluate(ValidationTag.ARMS_OVERHEAD, neutral_skeleton)

    assert evaluate(ValidationTag.ARMS_RAISED, raised)
    assert not evaluate(ValidationTag.ARMS_DOWN, build_skeleton({15: (0.8, 0.3)}))

    assert evaluate(ValidationTag.ARMS_OVERHEAD, overhead)
    assert not evaluate(ValidationTag.ARMS_DOWN, overhead)


def test_arm_checks_need_both_sides() -> None:
    assert not evaluate(ValidationTag.ARMS_DOWN, build_skeleton({16: None}))


def test_balance_uses_metrics(neutral_skeleton) -> None:
    metrics = compute_metrics(neutral_skeleton)
    assert evaluate(ValidationTag.BALANCE, neutral_skeleton, metrics)
    assert not evaluate(ValidationTag.BALANCE, neutral_skeleton, None)
    assert not evaluate(ValidationTag.BALANCE, None, metrics)

    unbalanced = MetricsRecord(symmetry=SymmetryMetrics(70.0, 70.0, 70.0))
    assert not evaluate(ValidationTag.BALANCE, neutral_skeleton, unbalanced)
    assert not evaluate(ValidationTag.BALANCE, neutral_skeleton, MetricsRecord.empty())


def test_hip_flexion(neutral_skeleton) -> None:
    assert not evaluate(ValidationTag.HIP_FLEXION, neutral_skeleton)
    assert evaluate(ValidationTag.HIP_FLEXION, build_skeleton({25: (0.56, 0.6)}))
    assert evaluate(ValidationTag.HIP_FLEXION, build_skeleton({26: (0.44, 0.55)}))


@pytest.mark.parametrize("tag", [ValidationTag.SHOULDER_ROTATION, ValidationTag.FINAL_CAPTURE])
def test_permissive_steps_need_a_person(tag, neutral_skeleton) -> None:
    assert evaluate(tag, neutral_skeleton)
    assert not evaluate(tag, None)


def test_readiness_always_passes() -> None:
    assert evaluate(ValidationTag.READINESS, None)


def test_string_tags_resolve(neutral_skeleton) -> None:
    assert evaluate("arms_down", neutral_skeleton)


def test_unknown_tag_is_false_and_logged(neutral_skeleton, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        assert evaluate("cartwheel", neutral_skeleton) is False
    assert "Unknown validation tag" in caplog.text
