from __future__ import annotations

import os

PREFIX = "OSTEO_EXAM_"


def get_env(name: str, default: str | None = None) -> str | None:
    """Resolve an `OSTEO_EXAM_<name>` environment variable."""
    value = os.getenv(f"{PREFIX}{name}")
    if value is not None:
        return value
    return default


def get_env_float(name: str, default: float) -> float:
    raw = get_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def truthy(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return bool(default)
    return value.strip().lower() not in {"0", "false", "no", "off", ""}
