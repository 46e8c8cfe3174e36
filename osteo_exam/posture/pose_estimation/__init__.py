"""Pose estimation components.

`PoseDetector` needs the optional vision dependencies and is imported lazily;
`FrameLoop` works with any frame source and detector.
"""

from __future__ import annotations

from typing import Any

from .frame_loop import FrameLoop

__all__ = ["PoseDetector", "open_camera", "FrameLoop"]


def __getattr__(name: str) -> Any:  # pragma: no cover - requires mediapipe/opencv
    if name in {"PoseDetector", "open_camera"}:
        from . import pose_detector as _pose_detector

        return getattr(_pose_detector, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
