"""Posture analysis utilities for the guided osteomuscular exam.

This module is **lazy-imported** so metrics and predicates can be used without
the optional vision dependencies required by pose estimation (`mediapipe`,
`opencv-python`).
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "PoseDetector",
    "FrameLoop",
    "compute_metrics",
    "MetricsTracker",
    "format_metrics",
    "ValidationTag",
    "evaluate",
    "summarize",
    "load_rules_config",
    "BodyLandmark",
    "KEY_JOINTS",
    "POSTURE_LOGGER",
    "VISIBILITY_THRESHOLD",
    "LATERAL_DEVIATION_SCALE",
    "validate_config_values",
]

_CONFIG_EXPORTS = {
    "BodyLandmark",
    "KEY_JOINTS",
    "POSTURE_LOGGER",
    "VISIBILITY_THRESHOLD",
    "LATERAL_DEVIATION_SCALE",
    "validate_config_values",
}

_METRICS_EXPORTS = {"compute_metrics", "MetricsTracker", "format_metrics"}
_VALIDATION_EXPORTS = {"ValidationTag", "evaluate"}
_FEEDBACK_EXPORTS = {"summarize", "load_rules_config"}


def __getattr__(name: str) -> Any:  # pragma: no cover - exercised indirectly
    if name in _CONFIG_EXPORTS:
        from . import config as _config

        return getattr(_config, name)
    if name in _METRICS_EXPORTS:
        from . import metrics as _metrics

        return getattr(_metrics, name)
    if name in _VALIDATION_EXPORTS:
        from . import validation as _validation

        return getattr(_validation, name)
    if name in _FEEDBACK_EXPORTS:
        from . import feedback as _feedback

        return getattr(_feedback, name)
    if name == "PoseDetector":
        from .pose_estimation import PoseDetector

        return PoseDetector
    if name == "FrameLoop":
        from .pose_estimation.frame_loop import FrameLoop

        return FrameLoop
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover - trivial
    return sorted(set(list(globals()) + __all__))
