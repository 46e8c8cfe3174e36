"""MediaPipe Tasks pose landmarker used as the exam's landmark source.

Requires the optional `vision` extra (`mediapipe`, `opencv-python`). The
detector runs in VIDEO mode on one person and returns a `Skeleton` of 33
landmarks per frame, or None when nobody is detected.
"""

from __future__ import annotations

import shutil
import threading
import time
import urllib.request
from pathlib import Path
from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from osteo_exam.env import get_env
from osteo_exam.models import Landmark, Skeleton
from osteo_exam.posture.config import NUM_POSE_LANDMARKS, POSTURE_LOGGER

logger = POSTURE_LOGGER

MODEL_VARIANTS = {"lite", "full", "heavy"}
DEFAULT_CAMERA_WIDTH = 1280
DEFAULT_CAMERA_HEIGHT = 720


class PoseDetector:
    """Wrapper around the MediaPipe Tasks PoseLandmarker with thread-safe access.

    Use as a context manager (or call `close()`) to release the native model.
    """

    def __init__(self, *, model_path: Path | str | None = None) -> None:
        self._lock = threading.Lock()
        self._closed = False
        self._frame_counter = 0
        self._last_timestamp_ms = -1
        self._model_path = Path(model_path).expanduser() if model_path else None
        self._landmarker = self._create_pose_landmarker()

    @staticmethod
    def _normalize_model_variant(value: str | None) -> str:
        variant = (value or "").strip().lower()
        if not variant:
            # Real-time webcam use: the lite model keeps up with live frame rates.
            return "lite"
        return {"light": "lite", "default": "full", "standard": "full"}.get(variant, variant)

    def _model_variant(self) -> str:
        variant = self._normalize_model_variant(get_env("POSE_LANDMARKER_MODEL_VARIANT"))
        if variant not in MODEL_VARIANTS:
            logger.warning("Unknown pose landmarker variant '%s'; falling back to 'lite'.", variant)
            variant = "lite"
        return variant

    def _default_pose_landmarker_url(self) -> str:
        variant = self._model_variant()
        return (
            "https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
            f"pose_landmarker_{variant}/float16/1/pose_landmarker_{variant}.task"
        )

    def _default_pose_landmarker_path(self) -> Path:
        base = Path(__file__).resolve().parents[3]
        return base / "data" / "models" / f"pose_landmarker_{self._model_variant()}.task"

    def _ensure_pose_landmarker_model(self) -> Path:
        env_path = get_env("POSE_LANDMARKER_MODEL_PATH")
        if self._model_path is not None:
            model_path = self._model_path
        elif env_path:
            model_path = Path(env_path).expanduser()
        else:
            model_path = self._default_pose_landmarker_path()

        if model_path.exists() and model_path.stat().st_size > 1024:
            return model_path

        model_path.parent.mkdir(parents=True, exist_ok=True)
        url = get_env("POSE_LANDMARKER_MODEL_URL") or self._default_pose_landmarker_url()
        logger.info("Downloading pose landmarker model to %s", model_path)
        tmp_path = model_path.with_suffix(model_path.suffix + ".tmp")
        try:
            with urllib.request.urlopen(url) as response, tmp_path.open("wb") as handle:
                shutil.copyfileobj(response, handle)
            tmp_path.replace(model_path)
        except Exception as exc:
            tmp_path.unlink(missing_ok=True)
            raise RuntimeError(
                "PoseLandmarker model download failed. "
                "Set OSTEO_EXAM_POSE_LANDMARKER_MODEL_PATH to a local .task file, "
                f"or OSTEO_EXAM_POSE_LANDMARKER_MODEL_URL to a reachable model URL. Error: {exc}"
            ) from exc
        return model_path

    def _create_pose_landmarker(self):
        try:
            from mediapipe.tasks.python.core.base_options import BaseOptions
            from mediapipe.tasks.python.vision import PoseLandmarker, PoseLandmarkerOptions, RunningMode
        except Exception as exc:  # pragma: no cover - depends on the installed wheel
            raise RuntimeError("MediaPipe Tasks API unavailable; install a mediapipe build with tasks support.") from exc

        def _env_conf(name: str, default: float) -> float:
            raw = get_env(name)
            if not raw:
                return float(default)
            try:
                return float(np.clip(float(raw), 0.0, 1.0))
            except ValueError:
                return float(default)

        options = PoseLandmarkerOptions(
            base_options=BaseOptions(model_asset_path=str(self._ensure_pose_landmarker_model())),
            running_mode=RunningMode.VIDEO,
            num_poses=1,
            min_pose_detection_confidence=_env_conf("POSE_MIN_DETECTION_CONFIDENCE", 0.5),
            min_pose_presence_confidence=_env_conf("POSE_MIN_PRESENCE_CONFIDENCE", 0.5),
            min_tracking_confidence=_env_conf("POSE_MIN_TRACKING_CONFIDENCE", 0.5),
        )
        return PoseLandmarker.create_from_options(options)

    def detect(self, frame: np.ndarray, timestamp_ms: int | float | None = None) -> Optional[Skeleton]:
        """Run pose estimation on a BGR frame.

        Returns a Skeleton of 33 landmarks for the detected person, or None when
        no person is found.
        """
        if frame is None or not isinstance(frame, np.ndarray):
            raise ValueError("Invalid frame; expected a decoded numpy.ndarray image.")
        if frame.ndim != 3 or frame.shape[2] != 3 or frame.size == 0:
            raise ValueError("Invalid frame shape; expected a non-empty BGR image.")

        try:
            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        except cv2.error as exc:
            raise RuntimeError(f"Failed to convert frame to RGB: {exc}") from exc

        with self._lock:
            if self._closed or self._landmarker is None:
                raise RuntimeError("PoseDetector is closed.")
            frame_idx = self._frame_counter
            self._frame_counter += 1
            ts_ms = int(time.monotonic() * 1000) if timestamp_ms is None else int(float(timestamp_ms))
            # VIDEO mode requires strictly increasing timestamps.
            ts_ms = max(ts_ms, self._last_timestamp_ms + 1)
            self._last_timestamp_ms = ts_ms
            logger.debug("Processing frame %s (shape=%s)", frame_idx, frame.shape)
            mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)
            results = self._landmarker.detect_for_video(mp_image, ts_ms)

        return self._extract_skeleton(results)

    def _extract_skeleton(self, results: object) -> Optional[Skeleton]:
        poses = getattr(results, "pose_landmarks", None)
        if not poses:
            return None
        out: List[Optional[Landmark]] = [self._landmark_from_result(lm) for lm in list(poses[0] or [])]
        if not out:
            return None
        if len(out) < NUM_POSE_LANDMARKS:
            out.extend([None] * (NUM_POSE_LANDMARKS - len(out)))
        return tuple(out[:NUM_POSE_LANDMARKS])

    @staticmethod
    def _landmark_from_result(landmark: object) -> Landmark:
        confidence = getattr(landmark, "visibility", None)
        if confidence is None:
            confidence = getattr(landmark, "presence", None)
        return Landmark(
            x=float(landmark.x),
            y=float(landmark.y),
            z=float(getattr(landmark, "z", 0.0) or 0.0),
            visibility=1.0 if confidence is None else float(confidence),
        )

    def close(self) -> None:
        """Release MediaPipe model resources."""
        with self._lock:
            if self._closed:
                return
            if self._landmarker is not None:
                self._landmarker.close()
                self._landmarker = None
            self._closed = True
            logger.info("PoseDetector resources released.")

    def __enter__(self) -> "PoseDetector":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def open_camera(
    index: int = 0,
    *,
    width: int = DEFAULT_CAMERA_WIDTH,
    height: int = DEFAULT_CAMERA_HEIGHT,
) -> "cv2.VideoCapture":
    """Open a webcam with the ideal 1280x720 resolution; raises RuntimeError if unavailable."""
    capture = cv2.VideoCapture(int(index))
    if not capture.isOpened():
        capture.release()
        raise RuntimeError(f"Unable to open camera {index}. Check that it is connected and not in use.")
    capture.set(cv2.CAP_PROP_FRAME_WIDTH, int(width))
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, int(height))
    logger.info(
        "Camera %s opened at %sx%s",
        index,
        int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
        int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
    )
    return capture


__all__ = ["PoseDetector", "open_camera"]
