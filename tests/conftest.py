from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

import pytest

from osteo_exam.config import AppConfig, SequencerSettings, SpeechSettings, get_config
from osteo_exam.models import Landmark


class ManualClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class _FakeTimer:
    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Deterministic scheduler: timers fire only when `advance` moves the clock past them."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.timers: List[_FakeTimer] = []
        self._seq = 0

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _FakeTimer:
        self._seq += 1
        timer = _FakeTimer(self.clock.now + max(0.0, delay_s), self._seq, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> List[_FakeTimer]:
        return [timer for timer in self.timers if not timer.cancelled and not timer.fired]

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [timer for timer in self.pending if timer.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda item: (item.due, item.seq))
            self.clock.now = max(self.clock.now, timer.due)
            timer.fired = True
            timer.callback()
        self.clock.now = target


class FakeSpeech:
    def __init__(self, *, fail: bool = False) -> None:
        self.spoken: List[str] = []
        self.cancels = 0
        self.closed = False
        self.fail = fail

    def speak(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("no audio device")
        self.spoken.append(text)

    def cancel(self) -> None:
        self.cancels += 1

    @property
    def is_speaking(self) -> bool:
        return False

    def close(self) -> None:
        self.closed = True


NEUTRAL_POINTS: Dict[int, Tuple[float, float]] = {
    0: (0.5, 0.2),
    1: (0.48, 0.18),
    4: (0.52, 0.18),
    11: (0.6, 0.4),
    12: (0.4, 0.4),
    13: (0.62, 0.55),
    14: (0.38, 0.55),
    15: (0.63, 0.7),
    16: (0.37, 0.7),
    23: (0.56, 0.65),
    24: (0.44, 0.65),
    25: (0.56, 0.8),
    26: (0.44, 0.8),
    27: (0.56, 0.95),
    28: (0.44, 0.95),
}


def build_skeleton(overrides: Optional[Dict[int, Optional[Tuple[float, float]]]] = None) -> Tuple[Landmark, ...]:
    """33-landmark skeleton of a person standing square to the camera.

    `overrides` moves points (or hides them with None); unlisted indices have zero visibility.
    """
    points: Dict[int, Optional[Tuple[float, float]]] = dict(NEUTRAL_POINTS)
    points.update(overrides or {})
    skeleton = []
    for index in range(33):
        xy = points.get(index)
        if xy is None:
            skeleton.append(Landmark(x=0.0, y=0.0, visibility=0.0))
        else:
            skeleton.append(Landmark(x=xy[0], y=xy[1], visibility=0.99))
    return tuple(skeleton)


def skeleton_payload(overrides: Optional[Dict[int, Optional[Tuple[float, float]]]] = None) -> list[dict[str, float]]:
    return [
        {"x": point.x, "y": point.y, "z": point.z, "visibility": point.visibility}
        for point in build_skeleton(overrides)
    ]


def make_config(tmp_path=None, *, advance_on_validation: bool = False, audio: bool = True) -> AppConfig:
    return AppConfig(
        sequencer=SequencerSettings(
            post_completion_delay_ms=2000,
            progress_tick_ms=50,
            start_delay_ms=1000,
            advance_on_validation=advance_on_validation,
            validation_hold_ms=1500,
        ),
        speech=SpeechSettings(enabled=audio),
        reports_dir=(tmp_path / "reports") if tmp_path is not None else AppConfig().reports_dir,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def scheduler(clock: ManualClock) -> FakeScheduler:
    return FakeScheduler(clock)


@pytest.fixture
def speech() -> FakeSpeech:
    return FakeSpeech()


@pytest.fixture
def neutral_skeleton() -> Tuple[Landmark, ...]:
    return build_skeleton()


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    for name in ("CONFIG", "REPORTS_DIR", "AUDIO"):
        monkeypatch.delenv(f"OSTEO_EXAM_{name}", raising=False)
    monkeypatch.setenv("OSTEO_EXAM_CONFIG", str(tmp_path / "missing.toml"))
    monkeypatch.setenv("OSTEO_EXAM_AUDIO", "0")
    monkeypatch.setenv("OSTEO_EXAM_REPORTS_DIR", str(tmp_path / "reports"))
    get_config.cache_clear()
    yield
    get_config.cache_clear()
