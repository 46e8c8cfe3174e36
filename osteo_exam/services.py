from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd

from .guidance.sequences import EXAM_SEQUENCES, EXAM_TYPE_DESCRIPTIONS, get_sequence, total_duration_ms
from .models import MetricsRecord, Skeleton, ValidationError, coerce_skeleton
from .posture.metrics import format_metrics

METRIC_LABELS: dict[str, tuple[str, str]] = {
    "cervicalAlignment": ("posture", "Alineación cervical"),
    "pelvicTilt": ("posture", "Inclinación pélvica"),
    "lateralDeviation": ("posture", "Desviación lateral"),
    "rightShoulderAngle": ("joints", "Hombro derecho"),
    "leftShoulderAngle": ("joints", "Hombro izquierdo"),
    "rightHipAngle": ("joints", "Cadera derecha"),
    "leftHipAngle": ("joints", "Cadera izquierda"),
    "shoulderSymmetry": ("symmetry", "Simetría de hombros"),
    "hipSymmetry": ("symmetry", "Simetría de caderas"),
    "overallBalance": ("symmetry", "Balance general"),
}


def render_table(headers: Sequence[str], rows: Sequence[Mapping[str, str]], *, align_left: Sequence[str] = ()) -> str:
    """Render a fixed-width table; columns in `align_left` are left-justified, the rest right-justified."""
    widths = {key: len(key) for key in headers}
    for row in rows:
        for key in headers:
            widths[key] = max(widths[key], len(row.get(key, "")))

    def _cell(key: str, value: str) -> str:
        return value.ljust(widths[key]) if key in align_left else value.rjust(widths[key])

    def _format_line(values: Mapping[str, str]) -> str:
        return "  ".join(_cell(key, values.get(key, "")) for key in headers).rstrip()

    header_line = "  ".join(_cell(key, key.upper()) for key in headers).rstrip()
    body = "\n".join(_format_line(row) for row in rows)
    return "\n".join(filter(None, [header_line, body]))


def render_metrics_table(record: MetricsRecord) -> str:
    display = format_metrics(record)
    rows = [
        {"group": group, "metric": label, "value": display[key]}
        for key, (group, label) in METRIC_LABELS.items()
    ]
    return render_table(("group", "metric", "value"), rows, align_left=("group", "metric"))


def render_exam_types() -> str:
    rows = []
    for exam_type, steps in EXAM_SEQUENCES.items():
        seconds = sum(step.duration_ms for step in steps) / 1000.0
        rows.append(
            {
                "exam": exam_type,
                "steps": str(len(steps)),
                "seconds": f"{seconds:.0f}",
                "description": EXAM_TYPE_DESCRIPTIONS.get(exam_type, ""),
            }
        )
    return render_table(("exam", "steps", "seconds", "description"), rows, align_left=("exam", "description"))


def render_sequence(exam_type: str) -> str:
    resolved, steps = get_sequence(exam_type)
    rows = [
        {
            "#": str(index + 1),
            "icon": step.icon,
            "title": step.title,
            "seconds": f"{step.duration_ms / 1000.0:.0f}",
            "check": step.validation.value,
        }
        for index, step in enumerate(steps)
    ]
    table = render_table(("#", "icon", "title", "seconds", "check"), rows, align_left=("icon", "title", "check"))
    total_s = total_duration_ms(resolved) / 1000.0
    return f"{resolved}: {EXAM_TYPE_DESCRIPTIONS.get(resolved, '')} ({total_s:.0f} s)\n{table}"


def render_recommendations(recommendations: Sequence[str]) -> str:
    return "\n".join(f"  {text}" for text in recommendations)


def _format_stat(value: Any) -> str:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "--"
    return f"{number:.1f}" if math.isfinite(number) else "--"


def render_snapshot_summary(summary: pd.DataFrame) -> str:
    """Render the per-metric snapshot aggregate produced by `summarize_snapshots`."""
    if summary.empty:
        return "No snapshots recorded."
    rows = [
        {
            "metric": str(metric),
            "count": str(int(row["count"])),
            "mean": _format_stat(row["mean"]),
            "min": _format_stat(row["min"]),
            "max": _format_stat(row["max"]),
        }
        for metric, row in summary.iterrows()
    ]
    return render_table(("metric", "count", "mean", "min", "max"), rows, align_left=("metric",))


def render_patient_info(report: Mapping[str, Any]) -> str:
    info = report.get("patientInfo") or {}
    return (
        f"Paciente: {info.get('name', '')}  |  Fecha: {info.get('date', '')} {info.get('time', '')}"
        f"  |  Examen: {info.get('examType', '')}"
    )


def load_landmarks_file(source: Path) -> Skeleton:
    """Read a JSON landmark payload (a list of points or {"landmarks": [...]}) from disk."""
    if not source.exists():
        raise ValidationError(f"Landmarks file not found: {source}")
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON in {source}: {exc}") from exc
    skeleton = coerce_skeleton(payload)
    if skeleton is None:
        raise ValidationError(f"No landmarks found in {source}.")
    return skeleton


__all__ = [
    "load_landmarks_file",
    "render_exam_types",
    "render_metrics_table",
    "render_patient_info",
    "render_recommendations",
    "render_sequence",
    "render_snapshot_summary",
    "render_table",
]
