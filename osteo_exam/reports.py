from __future__ import annotations

import copy
import json
import logging
import math
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Callable, Mapping, Sequence

import pandas as pd

from .models import MetricsRecord, Snapshot, ValidationError
from .posture.feedback import load_rules_config, summarize

logger = logging.getLogger(__name__)

DEFAULT_PATIENT_NAME = "Paciente Sin Nombre"
FILENAME_PATIENT_PLACEHOLDER = "paciente"
REPORT_PREFIX = "reporte_osteomuscular"
METRIC_COLUMNS = tuple(MetricsRecord.empty().flatten())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class SessionAggregator:
    """Append-only list of metric snapshots plus rule-based recommendations."""

    def __init__(self, rules_config: Any | None = None, *, now: Callable[[], datetime] = _utcnow) -> None:
        self.rules_config = load_rules_config(rules_config)
        self._now = now
        self._lock = threading.Lock()
        self._snapshots: list[Snapshot] = []

    @property
    def snapshots(self) -> tuple[Snapshot, ...]:
        with self._lock:
            return tuple(self._snapshots)

    def capture(self, metrics: MetricsRecord, patient_name: str, exam_type: str) -> Snapshot:
        snapshot = Snapshot(
            timestamp=_iso_timestamp(self._now()),
            patient_name=patient_name or "",
            exam_type=exam_type or "",
            metrics=copy.deepcopy(metrics),
        )
        with self._lock:
            self._snapshots.append(snapshot)
            count = len(self._snapshots)
        logger.info("Captured snapshot #%d for exam '%s'", count, snapshot.exam_type)
        return snapshot

    def summarize(self, metrics: MetricsRecord) -> list[str]:
        """Recommendations for the latest metrics only (not the snapshot history)."""
        return summarize(metrics, self.rules_config)

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()


def json_safe(value: Any) -> Any:
    """Replace non-finite floats with None so the payload is strict JSON."""
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Mapping):
        return {str(key): json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(item) for item in value]
    return value


def build_report(
    metrics: MetricsRecord,
    snapshots: Sequence[Snapshot],
    *,
    patient_name: str | None,
    exam_type: str,
    recommendations: Sequence[str],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Assemble the exported report: patient info, latest metrics, snapshots, recommendations."""
    moment = now or datetime.now()
    report = {
        "patientInfo": {
            "name": (patient_name or "").strip() or DEFAULT_PATIENT_NAME,
            "date": moment.strftime("%d/%m/%Y"),
            "time": moment.strftime("%H:%M:%S"),
            "examType": exam_type,
        },
        "summary": metrics.to_dict(),
        "snapshots": [snapshot.to_dict() for snapshot in snapshots],
        "recommendations": list(recommendations),
    }
    return json_safe(report)


def _filename_token(value: str | None) -> str:
    cleaned = "".join(char if char.isalnum() else "_" for char in (value or "").strip())
    token = "_".join(part for part in cleaned.split("_") if part)
    return token or FILENAME_PATIENT_PLACEHOLDER


def report_filename(patient_name: str | None, epoch_ms: int) -> str:
    return f"{REPORT_PREFIX}_{_filename_token(patient_name)}_{int(epoch_ms)}.json"


def export_report(
    report: Mapping[str, Any],
    output_dir: Path,
    *,
    patient_name: str | None = None,
    epoch_ms: int | None = None,
) -> Path:
    """Write the report atomically as `reporte_osteomuscular_<name>_<epoch-ms>.json`."""
    output_dir = Path(output_dir).expanduser()
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = int(time.time() * 1000) if epoch_ms is None else int(epoch_ms)
    target = output_dir / report_filename(patient_name, stamp)
    payload = json.dumps(json_safe(dict(report)), indent=2, ensure_ascii=False) + "\n"

    with NamedTemporaryFile("w", dir=output_dir, delete=False, encoding="utf-8", suffix=".tmp") as tmp:
        tmp.write(payload)
        temp_path = Path(tmp.name)
    temp_path.replace(target)
    logger.info("Report written to %s", target)
    return target


def load_report(path: Path) -> dict[str, Any]:
    path = Path(path).expanduser()
    if not path.exists():
        raise ValidationError(f"Report file not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Report file {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict) or "patientInfo" not in payload:
        raise ValidationError(f"{path} does not look like an exam report (missing 'patientInfo').")
    return payload


def snapshots_to_dataframe(snapshots: Sequence[Snapshot | Mapping[str, Any]]) -> pd.DataFrame:
    """Flatten snapshots into one row each: timestamp, patient, exam type, and every metric."""
    records: list[dict[str, object]] = []
    for item in snapshots:
        if isinstance(item, Snapshot):
            snapshot = item
        elif isinstance(item, Mapping):
            snapshot = Snapshot.from_dict(item)
        else:
            raise TypeError(f"Unsupported snapshot type: {type(item)!r}")
        row: dict[str, object] = {
            "timestamp": pd.to_datetime(snapshot.timestamp, utc=True, errors="coerce"),
            "patient_name": snapshot.patient_name,
            "exam_type": snapshot.exam_type,
        }
        row.update(snapshot.metrics.flatten())
        records.append(row)

    columns = ["timestamp", "patient_name", "exam_type", *METRIC_COLUMNS]
    if not records:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame.from_records(records, columns=columns)


def summarize_snapshots(df: pd.DataFrame) -> pd.DataFrame:
    """Per-metric count/mean/min/max across snapshots (unavailable values skipped)."""
    present = [column for column in METRIC_COLUMNS if column in df.columns]
    if df.empty or not present:
        return pd.DataFrame(columns=["count", "mean", "min", "max"])
    values = df[present].apply(pd.to_numeric, errors="coerce")
    summary = values.agg(["count", "mean", "min", "max"]).transpose()
    summary["count"] = summary["count"].astype(int)
    summary.index.name = "metric"
    return summary


__all__ = [
    "DEFAULT_PATIENT_NAME",
    "SessionAggregator",
    "build_report",
    "export_report",
    "json_safe",
    "load_report",
    "report_filename",
    "snapshots_to_dataframe",
    "summarize_snapshots",
]
