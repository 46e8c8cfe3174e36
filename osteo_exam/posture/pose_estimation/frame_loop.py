"""Driven per-frame analysis loop.

Pulls one frame at a time from a source, runs the detector, and hands the
skeleton to the exam session. Frames are never queued: each iteration works on
whatever frame the source delivers next.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional, Protocol, Tuple

from ...models import MetricsRecord, Skeleton

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def read(self) -> Tuple[bool, Any]: ...


class LandmarkSource(Protocol):
    def detect(self, frame: Any, timestamp_ms: int | float | None = None) -> Optional[Skeleton]: ...


class FrameSink(Protocol):
    def process_frame(self, skeleton: Optional[Skeleton]) -> MetricsRecord: ...


FrameCallback = Callable[[Any, Optional[Skeleton], MetricsRecord], None]


class FrameLoop:
    def __init__(
        self,
        source: FrameSource,
        detector: LandmarkSource,
        session: FrameSink,
        *,
        stop_event: threading.Event | None = None,
        on_frame: FrameCallback | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._detector = detector
        self._session = session
        self.stop_event = stop_event or threading.Event()
        self._on_frame = on_frame
        self._clock = clock
        self.frames_read = 0
        self.frames_detected = 0

    def stop(self) -> None:
        self.stop_event.set()

    def step(self) -> bool:
        """Process a single frame; returns False when the source is exhausted."""
        ok, frame = self._source.read()
        if not ok or frame is None:
            logger.info("Frame source returned no frame after %d frames; stopping.", self.frames_read)
            return False
        self.frames_read += 1
        timestamp_ms = int(self._clock() * 1000)
        skeleton = self._detector.detect(frame, timestamp_ms)
        if skeleton is not None:
            self.frames_detected += 1
        record = self._session.process_frame(skeleton)
        if self._on_frame is not None:
            self._on_frame(frame, skeleton, record)
        return True

    def run(self, max_frames: int | None = None) -> int:
        """Loop until stopped, the source runs dry, or `max_frames` frames were read."""
        start = self.frames_read
        while not self.stop_event.is_set():
            if max_frames is not None and self.frames_read - start >= max_frames:
                break
            if not self.step():
                break
        processed = self.frames_read - start
        logger.debug("Frame loop finished: %d frames read, %d with a skeleton", processed, self.frames_detected)
        return processed


__all__ = ["FrameLoop", "FrameSource", "LandmarkSource", "FrameSink"]
