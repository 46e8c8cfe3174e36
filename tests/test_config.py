from __future__ import annotations

from pathlib import Path

import pytest

from osteo_exam.config import AppConfig, SequencerSettings, SpeechSettings, as_dict, get_config
from osteo_exam.env import get_env, get_env_float, truthy


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("OSTEO_EXAM_AUDIO", raising=False)
    monkeypatch.delenv("OSTEO_EXAM_REPORTS_DIR", raising=False)
    get_config.cache_clear()
    return monkeypatch


def _write_config(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "osteo_exam.toml"
    path.write_text(body, encoding="utf-8")
    return path


def test_defaults_without_config_file(clean_env) -> None:
    config = get_config()
    assert config == AppConfig()
    assert config.sequencer == SequencerSettings()
    assert config.sequencer.post_completion_delay_ms == 2000
    assert config.sequencer.progress_tick_ms == 50
    assert config.sequencer.advance_on_validation is False
    assert config.speech == SpeechSettings()
    assert config.speech.language == "es"


def test_toml_values_are_loaded(clean_env, tmp_path) -> None:
    path = _write_config(
        tmp_path,
        """
reports_dir = "exports"
rules_path = "rules.json"

[sequencer]
post_completion_delay_ms = 500
progress_tick_ms = 100
advance_on_validation = true
validation_hold_ms = 800

[speech]
enabled = false
language = "ES-mx"
rate = 150
volume = 0.6
""",
    )
    clean_env.setenv("OSTEO_EXAM_CONFIG", str(path))

    config = get_config()
    assert config.sequencer.post_completion_delay_ms == 500
    assert config.sequencer.progress_tick_ms == 100
    assert config.sequencer.advance_on_validation is True
    assert config.sequencer.validation_hold_ms == 800
    assert config.sequencer.start_delay_ms == 1000
    assert config.speech == SpeechSettings(enabled=False, language="es-mx", rate=150, volume=0.6)
    assert config.reports_dir == Path("exports")
    assert config.rules_path == Path("rules.json")


def test_malformed_values_fall_back_to_defaults(clean_env, tmp_path) -> None:
    path = _write_config(
        tmp_path,
        """
[sequencer]
post_completion_delay_ms = -5
progress_tick_ms = 0
advance_on_validation = "yes"

[speech]
rate = "fast"
volume = 3.0
enabled = 1
""",
    )
    clean_env.setenv("OSTEO_EXAM_CONFIG", str(path))

    config = get_config()
    assert config.sequencer.post_completion_delay_ms == 2000
    assert config.sequencer.progress_tick_ms == 50
    assert config.sequencer.advance_on_validation is True
    assert config.speech.rate == 180
    assert config.speech.volume == pytest.approx(0.8)
    assert config.speech.enabled is True


def test_missing_config_path_uses_defaults(clean_env, tmp_path) -> None:
    clean_env.setenv("OSTEO_EXAM_CONFIG", str(tmp_path / "nope.toml"))
    assert get_config() == AppConfig()
    assert as_dict()["source"] == "defaults"


def test_environment_overrides(clean_env, tmp_path) -> None:
    path = _write_config(tmp_path, "[speech]\nenabled = true\n")
    clean_env.setenv("OSTEO_EXAM_CONFIG", str(path))
    clean_env.setenv("OSTEO_EXAM_AUDIO", "off")
    clean_env.setenv("OSTEO_EXAM_REPORTS_DIR", str(tmp_path / "custom"))

    config = get_config()
    assert config.speech.enabled is False
    assert config.reports_dir == tmp_path / "custom"


def test_get_config_is_cached(clean_env) -> None:
    assert get_config() is get_config()


def test_as_dict_is_json_ready(clean_env, tmp_path) -> None:
    path = _write_config(tmp_path, "[sequencer]\nprogress_tick_ms = 25\n")
    clean_env.setenv("OSTEO_EXAM_CONFIG", str(path))

    payload = as_dict()
    assert payload["sequencer"]["progress_tick_ms"] == 25
    assert payload["speech"]["enabled"] is True
    assert payload["reports_dir"] == "reports"
    assert payload["rules_path"] is None
    assert payload["source"] == str(path)


def test_env_helpers(monkeypatch) -> None:
    monkeypatch.setenv("OSTEO_EXAM_SAMPLE", "0.75")
    monkeypatch.setenv("OSTEO_EXAM_BROKEN", "abc")
    assert get_env("SAMPLE") == "0.75"
    assert get_env("ABSENT", "x") == "x"
    assert get_env_float("SAMPLE", 0.1) == pytest.approx(0.75)
    assert get_env_float("BROKEN", 0.1) == pytest.approx(0.1)
    assert truthy("Yes") is True
    assert truthy("off") is False
    assert truthy(None, default=True) is True
