"""Timer-driven state machine that walks a patient through an exam sequence.

States: IDLE -> RUNNING(step) -> COMPLETED. Steps advance when their duration
elapses or on `skip()`; with `advance_on_validation` enabled, a validation
result that holds long enough advances too. Every scheduled callback carries the
generation it was created in, so callbacks from a stopped or superseded step
are no-ops. Side effects built under the lock re-check that generation before
they run, so nothing is emitted or spoken once a newer transition or `stop()`
has happened. Listener callbacks run outside the lock.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, List, Optional

from ..config import SequencerSettings
from .scheduler import Scheduler, ThreadingScheduler, TimerHandle
from .sequences import ExamSequence, InstructionStep, get_sequence
from .speech import SilentSpeech, SpeechSynthesizer

logger = logging.getLogger(__name__)


class SequencerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass(frozen=True)
class StepEvent:
    exam_type: str
    index: int
    total: int
    step: InstructionStep

    def to_dict(self) -> Dict[str, Any]:
        return {"examType": self.exam_type, "index": self.index, "total": self.total, **self.step.to_dict()}


StepListener = Callable[[StepEvent], None]
ProgressListener = Callable[[float], None]
ExamListener = Callable[[str], None]

_DURATION = "duration"
_PROGRESS = "progress"
_CAPTURE = "capture"


class InstructionSequencer:
    def __init__(
        self,
        *,
        scheduler: Scheduler | None = None,
        speech: SpeechSynthesizer | None = None,
        clock: Callable[[], float] = time.monotonic,
        settings: SequencerSettings | None = None,
        on_step: StepListener | None = None,
        on_progress: ProgressListener | None = None,
        on_complete: ExamListener | None = None,
        on_auto_capture: ExamListener | None = None,
        audio_enabled: bool = True,
    ) -> None:
        self._scheduler = scheduler or ThreadingScheduler()
        self._speech: SpeechSynthesizer = speech or SilentSpeech()
        self._clock = clock
        self.settings = settings or SequencerSettings()
        self.on_step = on_step
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_auto_capture = on_auto_capture

        self._lock = RLock()
        self._state = SequencerState.IDLE
        self._exam_type: Optional[str] = None
        self._steps: ExamSequence = ()
        self._step_index = -1
        self._step_started = 0.0
        self._audio_enabled = bool(audio_enabled)
        self._generation = 0
        self._timers: Dict[str, TimerHandle] = {}
        self._validation_since: Optional[float] = None
        self._last_validation: Optional[bool] = None
        self.speech_degraded = False

    # -- read-only view -------------------------------------------------

    @property
    def state(self) -> SequencerState:
        with self._lock:
            return self._state

    @property
    def exam_type(self) -> Optional[str]:
        with self._lock:
            return self._exam_type

    @property
    def step_index(self) -> int:
        with self._lock:
            return self._step_index

    @property
    def audio_enabled(self) -> bool:
        with self._lock:
            return self._audio_enabled

    @property
    def speech(self) -> SpeechSynthesizer:
        return self._speech

    @property
    def current_step(self) -> Optional[InstructionStep]:
        with self._lock:
            if self._state is not SequencerState.RUNNING:
                return None
            return self._steps[self._step_index]

    @property
    def pending_timers(self) -> int:
        with self._lock:
            return len(self._timers)

    def progress(self) -> float:
        """Fraction of the current step's duration that has elapsed, clamped to [0, 1]."""
        with self._lock:
            if self._state is SequencerState.COMPLETED:
                return 1.0
            if self._state is not SequencerState.RUNNING:
                return 0.0
            duration_ms = self._steps[self._step_index].duration_ms
            if duration_ms <= 0:
                return 1.0
            elapsed_ms = (self._clock() - self._step_started) * 1000.0
            return min(1.0, max(0.0, elapsed_ms / duration_ms))

    def snapshot_state(self) -> Dict[str, Any]:
        with self._lock:
            step = self._steps[self._step_index] if self._state is SequencerState.RUNNING else None
            return {
                "state": self._state.value,
                "examType": self._exam_type,
                "stepIndex": self._step_index,
                "totalSteps": len(self._steps),
                "audioEnabled": self._audio_enabled,
                "progress": self.progress(),
                "step": step.to_dict() if step else None,
                "lastValidation": self._last_validation,
            }

    # -- transitions ----------------------------------------------------

    def start(self, exam_type: str | None) -> str:
        """Begin (or restart) the sequence for `exam_type`; returns the resolved exam type."""
        resolved, steps = get_sequence(exam_type)
        actions: List[Callable[[], None]] = []
        with self._lock:
            if self._state is not SequencerState.IDLE:
                logger.info("Restarting instruction sequence (was %s)", self._state.value)
                self._reset_locked()
                actions.append(self._cancel_speech)
            self._exam_type = resolved
            self._steps = steps
            self._state = SequencerState.RUNNING
            logger.info("Starting '%s' sequence with %d steps", resolved, len(steps))
            actions.extend(self._enter_step_locked(0))
        self._run(actions)
        return resolved

    def skip(self) -> bool:
        """Advance exactly one step, cancelling the pending timer and any speech first."""
        with self._lock:
            if self._state is not SequencerState.RUNNING:
                return False
            logger.info("Skipping step %d of '%s'", self._step_index, self._exam_type)
            actions: List[Callable[[], None]] = [self._cancel_speech]
            actions.extend(self._advance_locked())
        self._run(actions)
        return True

    def stop(self) -> bool:
        """Return to IDLE, cancelling all timers and speech; emits no completion event."""
        with self._lock:
            if self._state is SequencerState.IDLE:
                return False
            logger.info("Stopping '%s' sequence", self._exam_type)
            self._reset_locked()
        self._cancel_speech()
        return True

    def toggle_audio(self) -> bool:
        with self._lock:
            self._audio_enabled = not self._audio_enabled
            enabled = self._audio_enabled
        logger.info("Audio %s", "enabled" if enabled else "disabled")
        return enabled

    def report_validation(self, passed: bool) -> bool:
        """Record the current step's predicate result; returns True if it advanced the step."""
        with self._lock:
            if self._state is not SequencerState.RUNNING:
                return False
            self._last_validation = bool(passed)
            if not self.settings.advance_on_validation:
                return False
            if not passed:
                self._validation_since = None
                return False
            now = self._clock()
            if self._validation_since is None:
                self._validation_since = now
            if (now - self._validation_since) * 1000.0 < self.settings.validation_hold_ms:
                return False
            logger.info("Step %d validated; advancing", self._step_index)
            actions: List[Callable[[], None]] = [self._cancel_speech]
            actions.extend(self._advance_locked())
        self._run(actions)
        return True

    # -- internals (call with the lock held) -----------------------------

    def _reset_locked(self) -> None:
        self._generation += 1
        self._cancel_timers_locked()
        self._state = SequencerState.IDLE
        self._step_index = -1
        self._validation_since = None
        self._last_validation = None

    def _cancel_timers_locked(self, *names: str) -> None:
        for name in names or tuple(self._timers):
            handle = self._timers.pop(name, None)
            if handle is not None:
                handle.cancel()

    def _schedule_locked(self, name: str, delay_ms: float, callback: Callable[[int], None]) -> None:
        generation = self._generation
        self._timers[name] = self._scheduler.call_later(delay_ms / 1000.0, lambda: callback(generation))

    def _enter_step_locked(self, index: int) -> List[Callable[[], None]]:
        self._generation += 1
        self._cancel_timers_locked(_DURATION, _PROGRESS)
        self._step_index = index
        self._step_started = self._clock()
        self._validation_since = None
        self._last_validation = None
        step = self._steps[index]
        logger.debug("Entering step %d/%d: %s", index + 1, len(self._steps), step.title)

        self._schedule_locked(_DURATION, step.duration_ms, self._on_duration)
        self._schedule_locked(_PROGRESS, self.settings.progress_tick_ms, self._on_progress_tick)

        generation = self._generation
        event = StepEvent(exam_type=self._exam_type or "", index=index, total=len(self._steps), step=step)
        actions: List[Callable[[], None]] = [
            lambda: self._emit_current(generation, self.on_step, event),
            lambda: self._emit_current(generation, self.on_progress, 0.0),
        ]
        if self._audio_enabled:
            actions.append(lambda: self._speak_current(generation, step.spoken_text))
        return actions

    def _advance_locked(self) -> List[Callable[[], None]]:
        self._cancel_timers_locked(_DURATION, _PROGRESS)
        next_index = self._step_index + 1
        if next_index < len(self._steps):
            return self._enter_step_locked(next_index)
        return self._complete_locked()

    def _complete_locked(self) -> List[Callable[[], None]]:
        self._generation += 1
        self._state = SequencerState.COMPLETED
        self._step_index = -1
        exam_type = self._exam_type or ""
        logger.info("Sequence '%s' completed; capturing in %d ms", exam_type, self.settings.post_completion_delay_ms)
        self._schedule_locked(_CAPTURE, self.settings.post_completion_delay_ms, self._on_auto_capture)
        generation = self._generation
        return [
            lambda: self._emit_current(generation, self.on_progress, 1.0),
            lambda: self._emit_current(generation, self.on_complete, exam_type),
        ]

    # -- scheduled callbacks ---------------------------------------------

    def _on_duration(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state is not SequencerState.RUNNING:
                return
            self._timers.pop(_DURATION, None)
            actions = self._advance_locked()
        self._run(actions)

    def _on_progress_tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state is not SequencerState.RUNNING:
                return
            self._timers.pop(_PROGRESS, None)
            value = self.progress()
            if value < 1.0:
                self._schedule_locked(_PROGRESS, self.settings.progress_tick_ms, self._on_progress_tick)
        self._emit_current(generation, self.on_progress, value)

    def _on_auto_capture(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._state is not SequencerState.COMPLETED:
                return
            self._timers.pop(_CAPTURE, None)
            exam_type = self._exam_type or ""
        self._emit(self.on_auto_capture, exam_type)

    # -- side effects (called without the lock) ---------------------------

    def _run(self, actions: List[Callable[[], None]]) -> None:
        for action in actions:
            action()

    def _emit(self, listener: Optional[Callable[..., None]], *args: Any) -> None:
        if listener is None:
            return
        try:
            listener(*args)
        except Exception:
            logger.exception("Sequencer listener %r failed", listener)

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation and self._state is not SequencerState.IDLE

    def _emit_current(self, generation: int, listener: Optional[Callable[..., None]], *args: Any) -> None:
        if self._is_current(generation):
            self._emit(listener, *args)

    def _speak_current(self, generation: int, text: str) -> None:
        # The lock spans speak() so stop() cannot land between the check and the call.
        with self._lock:
            if generation != self._generation or self._state is not SequencerState.RUNNING:
                logger.debug("Dropping instruction for a superseded step")
                return
            self._speak(text)

    def _speak(self, text: str) -> None:
        try:
            self._speech.speak(text)
        except Exception as exc:
            logger.warning("Speech synthesis failed (%s); continuing silently.", exc)
            self._degrade_speech()

    def _cancel_speech(self) -> None:
        try:
            self._speech.cancel()
        except Exception as exc:
            logger.warning("Cancelling speech failed (%s); continuing silently.", exc)
            self._degrade_speech()

    def _degrade_speech(self) -> None:
        previous = self._speech
        self._speech = SilentSpeech()
        self.speech_degraded = True
        try:
            previous.close()
        except Exception:
            logger.debug("Closing failed speech backend raised", exc_info=True)

    def close(self) -> None:
        self.stop()
        self._speech.close()


__all__ = ["SequencerState", "StepEvent", "InstructionSequencer"]
