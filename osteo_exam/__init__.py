"""osteo_exam package."""

from importlib import metadata
from typing import Any

try:
    __version__ = metadata.version("osteo-exam")
except metadata.PackageNotFoundError:  # pragma: no cover - fallback for local edits
    __version__ = "0.0.0"

__all__ = ["app", "__version__", "posture", "ExamSession"]


def __getattr__(name: str) -> Any:  # pragma: no cover - exercised indirectly
    if name == "app":
        from .cli import app

        return app
    if name == "posture":
        from . import posture

        return posture
    if name == "ExamSession":
        from .session import ExamSession

        return ExamSession
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
