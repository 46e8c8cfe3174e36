"""Guided exam instructions: step sequences, timers, speech, and the sequencer."""

from .scheduler import Scheduler, ThreadingScheduler, TimerHandle
from .sequencer import InstructionSequencer, SequencerState, StepEvent
from .sequences import (
    DEFAULT_EXAM_TYPE,
    EXAM_SEQUENCES,
    EXAM_TYPE_DESCRIPTIONS,
    InstructionStep,
    exam_types,
    get_sequence,
    resolve_exam_type,
)
from .speech import Pyttsx3Speech, SilentSpeech, SpeechSynthesizer, create_speech

__all__ = [
    "DEFAULT_EXAM_TYPE",
    "EXAM_SEQUENCES",
    "EXAM_TYPE_DESCRIPTIONS",
    "InstructionStep",
    "InstructionSequencer",
    "Pyttsx3Speech",
    "Scheduler",
    "SequencerState",
    "SilentSpeech",
    "SpeechSynthesizer",
    "StepEvent",
    "ThreadingScheduler",
    "TimerHandle",
    "create_speech",
    "exam_types",
    "get_sequence",
    "resolve_exam_type",
]
