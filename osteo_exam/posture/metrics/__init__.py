"""Metrics computation package for posture analyses.

Pure-numpy geometry lives in `angles` and `symmetry`; `engine` assembles a full
`MetricsRecord` from one skeleton.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "compute_joint_angle",
    "cervical_alignment",
    "pelvic_tilt",
    "lateral_deviation",
    "body_center_x",
    "get_landmark",
    "compute_symmetry",
    "overall_balance",
    "compute_metrics",
    "MetricsTracker",
    "format_metrics",
]

_ANGLE_EXPORTS = {
    "compute_joint_angle",
    "cervical_alignment",
    "pelvic_tilt",
    "lateral_deviation",
    "body_center_x",
    "get_landmark",
}
_SYMMETRY_EXPORTS = {"compute_symmetry", "overall_balance"}
_ENGINE_EXPORTS = {"compute_metrics", "MetricsTracker", "format_metrics"}


def __getattr__(name: str) -> Any:  # pragma: no cover - exercised indirectly
    if name in _ANGLE_EXPORTS:
        from . import angles as _angles

        return getattr(_angles, name)
    if name in _SYMMETRY_EXPORTS:
        from . import symmetry as _symmetry

        return getattr(_symmetry, name)
    if name in _ENGINE_EXPORTS:
        from . import engine as _engine

        return getattr(_engine, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover - trivial
    return sorted(set(list(globals()) + __all__))
