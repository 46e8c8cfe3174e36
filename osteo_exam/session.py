"""Exam session context: owns the metrics tracker, sequencer, aggregator and speech."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from .config import AppConfig, get_config
from .guidance import DEFAULT_EXAM_TYPE, InstructionSequencer, StepEvent, create_speech, resolve_exam_type
from .guidance.scheduler import Scheduler
from .guidance.speech import SpeechSynthesizer
from .models import MetricsRecord, Snapshot, clean_patient_name, coerce_skeleton
from .posture.metrics import MetricsTracker, format_metrics
from .posture.validation import evaluate
from .reports import SessionAggregator, build_report, export_report, json_safe

logger = logging.getLogger(__name__)


class ExamSession:
    """One patient's guided exam.

    Frames flow through `process_frame`; the sequencer runs on its own timers and
    triggers an automatic snapshot after the sequence completes.
    """

    def __init__(
        self,
        *,
        config: AppConfig | None = None,
        scheduler: Scheduler | None = None,
        speech: SpeechSynthesizer | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
        rules_config: Any | None = None,
        patient_name: str = "",
        exam_type: str = DEFAULT_EXAM_TYPE,
    ) -> None:
        self.config = config or get_config()
        self.tracker = MetricsTracker()
        rules = rules_config if rules_config is not None else self.config.rules_path
        self.aggregator = SessionAggregator(rules) if now is None else SessionAggregator(rules, now=now)
        if speech is None:
            speech = create_speech(self.config.speech)
        self.sequencer = InstructionSequencer(
            scheduler=scheduler,
            speech=speech,
            clock=clock,
            settings=self.config.sequencer,
            on_step=self._handle_step,
            on_progress=self._handle_progress,
            on_complete=self._handle_complete,
            on_auto_capture=self._handle_auto_capture,
            audio_enabled=self.config.speech.enabled,
        )
        self.on_step: Optional[Callable[[StepEvent], None]] = None
        self.on_progress: Optional[Callable[[float], None]] = None
        self.on_complete: Optional[Callable[[str], None]] = None
        self.on_capture: Optional[Callable[[Snapshot], None]] = None
        self._patient_name = clean_patient_name(patient_name)
        self._exam_type = resolve_exam_type(exam_type)
        self.last_step: Optional[StepEvent] = None

    @property
    def patient_name(self) -> str:
        return self._patient_name

    @patient_name.setter
    def patient_name(self, value: str | None) -> None:
        self._patient_name = clean_patient_name(value)

    @property
    def exam_type(self) -> str:
        return self._exam_type

    @exam_type.setter
    def exam_type(self, value: str | None) -> None:
        self._exam_type = resolve_exam_type(value)

    @property
    def metrics(self) -> MetricsRecord:
        return self.tracker.latest

    @property
    def snapshots(self) -> tuple[Snapshot, ...]:
        return self.aggregator.snapshots

    def start(self, exam_type: str | None = None, *, patient_name: str | None = None) -> str:
        if patient_name is not None:
            self.patient_name = patient_name
        if exam_type is not None:
            self.exam_type = exam_type
        self._exam_type = self.sequencer.start(self._exam_type)
        return self._exam_type

    def stop(self) -> bool:
        return self.sequencer.stop()

    def skip(self) -> bool:
        return self.sequencer.skip()

    def toggle_audio(self) -> bool:
        return self.sequencer.toggle_audio()

    def process_frame(self, skeleton: Any) -> MetricsRecord:
        """Update metrics from one frame's skeleton (None when nobody was detected).

        The current step's validation predicate is evaluated against the frame
        and reported to the sequencer.
        """
        landmarks = coerce_skeleton(skeleton)
        record = self.tracker.update(landmarks)
        step = self.sequencer.current_step
        if step is not None:
            passed = evaluate(step.validation, landmarks, record)
            self.sequencer.report_validation(passed)
        return record

    def capture(self) -> Snapshot:
        return self.aggregator.capture(self.metrics, self._patient_name, self._exam_type)

    def recommendations(self) -> list[str]:
        return self.aggregator.summarize(self.metrics)

    def build_report(self, *, now: datetime | None = None) -> dict[str, Any]:
        metrics = self.metrics
        return build_report(
            metrics,
            self.aggregator.snapshots,
            patient_name=self._patient_name,
            exam_type=self._exam_type,
            recommendations=self.aggregator.summarize(metrics),
            now=now,
        )

    def export_report(self, output_dir: Path | None = None, *, epoch_ms: int | None = None) -> Path:
        target_dir = Path(output_dir) if output_dir is not None else self.config.reports_dir
        return export_report(self.build_report(), target_dir, patient_name=self._patient_name, epoch_ms=epoch_ms)

    def status(self) -> dict[str, Any]:
        metrics = self.metrics
        state = self.sequencer.snapshot_state()
        state.update(
            {
                "examType": state.get("examType") or self._exam_type,
                "patientName": self._patient_name,
                "metrics": json_safe(metrics.to_dict()),
                "display": format_metrics(metrics),
                "snapshots": len(self.aggregator.snapshots),
                "framesProcessed": self.tracker.frames_processed,
                "missedFrames": self.tracker.missed_frames,
                "speechDegraded": self.sequencer.speech_degraded,
            }
        )
        return state

    def close(self) -> None:
        self.sequencer.close()

    def __enter__(self) -> "ExamSession":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _handle_step(self, event: StepEvent) -> None:
        self.last_step = event
        logger.info("Step %d/%d: %s %s", event.index + 1, event.total, event.step.icon, event.step.title)
        if self.on_step is not None:
            self.on_step(event)

    def _handle_progress(self, value: float) -> None:
        if self.on_progress is not None:
            self.on_progress(value)

    def _handle_complete(self, exam_type: str) -> None:
        logger.info("Instructions completed for '%s'; analysing pose", exam_type)
        if self.on_complete is not None:
            self.on_complete(exam_type)

    def _handle_auto_capture(self, exam_type: str) -> None:
        snapshot = self.capture()
        if self.on_capture is not None:
            self.on_capture(snapshot)


__all__ = ["ExamSession"]
