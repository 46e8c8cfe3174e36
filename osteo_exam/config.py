from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from .env import get_env, truthy

try:  # pragma: no cover - Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib  # type: ignore

DEFAULT_REPORTS_DIR = Path("reports")


@dataclass(frozen=True)
class SequencerSettings:
    post_completion_delay_ms: int = 2000
    progress_tick_ms: int = 50
    start_delay_ms: int = 1000
    advance_on_validation: bool = False
    validation_hold_ms: int = 1500


@dataclass(frozen=True)
class SpeechSettings:
    enabled: bool = True
    language: str = "es"
    rate: int = 180
    volume: float = 0.8


@dataclass(frozen=True)
class AppConfig:
    sequencer: SequencerSettings = field(default_factory=SequencerSettings)
    speech: SpeechSettings = field(default_factory=SpeechSettings)
    reports_dir: Path = DEFAULT_REPORTS_DIR
    rules_path: Path | None = None


def _config_path() -> Path | None:
    """Resolve the TOML configuration file, if present."""
    env_override = get_env("CONFIG")
    if env_override:
        path = Path(env_override).expanduser()
        return path if path.exists() else None

    default_path = Path("config/osteo_exam.toml")
    if default_path.exists():
        return default_path
    return None


def _load_toml(path: Path) -> Mapping[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _coerce_int(raw: Any, default: int, *, minimum: int = 0) -> int:
    if isinstance(raw, bool):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= minimum else default


def _coerce_bool(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return truthy(raw, default=default)
    return default


def _coerce_sequencer(raw: Mapping[str, Any] | None) -> SequencerSettings:
    base = SequencerSettings()
    if not raw:
        return base
    return SequencerSettings(
        post_completion_delay_ms=_coerce_int(raw.get("post_completion_delay_ms"), base.post_completion_delay_ms),
        progress_tick_ms=_coerce_int(raw.get("progress_tick_ms"), base.progress_tick_ms, minimum=1),
        start_delay_ms=_coerce_int(raw.get("start_delay_ms"), base.start_delay_ms),
        advance_on_validation=_coerce_bool(raw.get("advance_on_validation"), base.advance_on_validation),
        validation_hold_ms=_coerce_int(raw.get("validation_hold_ms"), base.validation_hold_ms),
    )


def _coerce_speech(raw: Mapping[str, Any] | None) -> SpeechSettings:
    base = SpeechSettings()
    if not raw:
        return base
    language = str(raw.get("language") or base.language).strip().lower() or base.language
    try:
        volume = float(raw.get("volume", base.volume))
    except (TypeError, ValueError):
        volume = base.volume
    if not 0.0 <= volume <= 1.0:
        volume = base.volume
    return SpeechSettings(
        enabled=_coerce_bool(raw.get("enabled"), base.enabled),
        language=language,
        rate=_coerce_int(raw.get("rate"), base.rate, minimum=1),
        volume=volume,
    )


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any] | None:
    value = raw.get(name)
    return value if isinstance(value, Mapping) else None


def _build_config(raw: Mapping[str, Any]) -> AppConfig:
    reports_raw = raw.get("reports_dir")
    rules_raw = raw.get("rules_path")
    return AppConfig(
        sequencer=_coerce_sequencer(_section(raw, "sequencer")),
        speech=_coerce_speech(_section(raw, "speech")),
        reports_dir=Path(str(reports_raw)).expanduser() if reports_raw else DEFAULT_REPORTS_DIR,
        rules_path=Path(str(rules_raw)).expanduser() if rules_raw else None,
    )


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    reports_dir = get_env("REPORTS_DIR")
    audio = get_env("AUDIO")
    if not reports_dir and audio is None:
        return config
    speech = config.speech
    if audio is not None:
        speech = SpeechSettings(
            enabled=truthy(audio, default=speech.enabled),
            language=speech.language,
            rate=speech.rate,
            volume=speech.volume,
        )
    return AppConfig(
        sequencer=config.sequencer,
        speech=speech,
        reports_dir=Path(reports_dir).expanduser() if reports_dir else config.reports_dir,
        rules_path=config.rules_path,
    )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration once, falling back to built-in defaults."""
    path = _config_path()
    config = _build_config(_load_toml(path)) if path else AppConfig()
    return _apply_env_overrides(config)


def as_dict() -> dict[str, Any]:
    """Return the effective configuration for debug/CLI display."""
    config = get_config()
    return {
        "sequencer": {
            "post_completion_delay_ms": config.sequencer.post_completion_delay_ms,
            "progress_tick_ms": config.sequencer.progress_tick_ms,
            "start_delay_ms": config.sequencer.start_delay_ms,
            "advance_on_validation": config.sequencer.advance_on_validation,
            "validation_hold_ms": config.sequencer.validation_hold_ms,
        },
        "speech": {
            "enabled": config.speech.enabled,
            "language": config.speech.language,
            "rate": config.speech.rate,
            "volume": config.speech.volume,
        },
        "reports_dir": str(config.reports_dir),
        "rules_path": str(config.rules_path) if config.rules_path else None,
        "source": str(_config_path() or "defaults"),
    }
