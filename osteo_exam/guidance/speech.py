"""Spoken instruction output.

`Pyttsx3Speech` drives a pyttsx3 engine from one background worker so speaking
never blocks the sequencer's timers. At most one utterance is active: `speak`
cancels anything in flight before queueing the new text.
"""

from __future__ import annotations

import logging
import queue
import re
import threading
from typing import Any, Callable, Optional, Protocol

import pyttsx3

from ..config import SpeechSettings

logger = logging.getLogger(__name__)

_STOP = object()


class SpeechSynthesizer(Protocol):
    def speak(self, text: str) -> None: ...

    def cancel(self) -> None: ...

    @property
    def is_speaking(self) -> bool: ...

    def close(self) -> None: ...


class SilentSpeech:
    """No-op synthesizer used when audio is disabled or unavailable."""

    def __init__(self) -> None:
        self.last_text: Optional[str] = None

    def speak(self, text: str) -> None:
        self.last_text = text
        logger.debug("Silent speech: %s", text)

    def cancel(self) -> None:
        return None

    @property
    def is_speaking(self) -> bool:
        return False

    def close(self) -> None:
        return None


def _voice_languages(voice: Any) -> list[str]:
    out: list[str] = []
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            lang = lang.decode("utf-8", errors="ignore")
        # espeak reports languages as b"\x05es"; strip the length prefix.
        out.append(str(lang).strip("\x00\x01\x02\x03\x04\x05 ").lower())
    return out


def select_voice(voices: Any, language: str) -> Optional[Any]:
    """Pick the first voice for `language` ("es" matches "es", "es-ES", "es_MX", ...).

    Declared voice languages are checked first, then language codes embedded in
    the voice id (e.g. "com.apple.voice.compact.es-ES.Monica").
    """
    wanted = (language or "").strip().lower()
    if not wanted:
        return None
    voices = list(voices or [])
    for voice in voices:
        if any(lang == wanted or lang.startswith((f"{wanted}-", f"{wanted}_")) for lang in _voice_languages(voice)):
            return voice
    for voice in voices:
        tokens = re.split(r"[^a-z]+", str(getattr(voice, "id", "") or "").lower())
        if wanted in tokens:
            return voice
    return None


class Pyttsx3Speech:
    def __init__(
        self,
        settings: SpeechSettings | None = None,
        *,
        engine_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.settings = settings or SpeechSettings()
        self._engine = (engine_factory or pyttsx3.init)()
        self._engine.setProperty("rate", int(self.settings.rate))
        self._engine.setProperty("volume", float(self.settings.volume))
        voice = select_voice(self._engine.getProperty("voices"), self.settings.language)
        if voice is not None:
            self._engine.setProperty("voice", voice.id)
        else:
            logger.info("No '%s' voice installed; using the engine default.", self.settings.language)

        self._queue: "queue.Queue[object]" = queue.Queue()
        self._speaking = threading.Event()
        self._cancel_lock = threading.Lock()
        self._epoch = 0
        self._closed = False
        self.failed = False
        self._worker = threading.Thread(target=self._run, name="osteo-exam-speech", daemon=True)
        self._worker.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    break
                self._play(item)
            except Exception:
                self.failed = True
                logger.warning("Speech engine failed; further instructions will be silent.", exc_info=True)
            finally:
                self._speaking.clear()
                self._queue.task_done()

    def _play(self, item: tuple[int, str]) -> None:
        epoch, text = item
        with self._cancel_lock:
            # Dequeued before a cancel() that has since run.
            if epoch != self._epoch:
                return
            self._speaking.set()
            self._engine.say(text)
        self._engine.runAndWait()

    @property
    def is_speaking(self) -> bool:
        return self._speaking.is_set()

    def speak(self, text: str) -> None:
        if self._closed or self.failed:
            raise RuntimeError("speech engine is not available")
        self.cancel()
        with self._cancel_lock:
            self._queue.put((self._epoch, str(text)))

    def cancel(self) -> None:
        with self._cancel_lock:
            self._epoch += 1
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()
            if item is _STOP:
                self._queue.put(_STOP)
                break
        if self._speaking.is_set():
            try:
                self._engine.stop()
            except Exception:
                logger.debug("Speech engine stop failed", exc_info=True)

    def wait_until_idle(self) -> None:
        """Block until every queued utterance has been spoken or dropped."""
        self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._worker.join(timeout=timeout)


def create_speech(settings: SpeechSettings | None = None, *, enabled: bool | None = None) -> SpeechSynthesizer:
    """Build the configured synthesizer, degrading to silence when no TTS backend works."""
    settings = settings or SpeechSettings()
    if not (settings.enabled if enabled is None else enabled):
        return SilentSpeech()
    try:
        return Pyttsx3Speech(settings)
    except Exception as exc:
        logger.warning("Speech output unavailable (%s); continuing without audio.", exc)
        return SilentSpeech()


__all__ = ["SpeechSynthesizer", "SilentSpeech", "Pyttsx3Speech", "select_voice", "create_speech"]
