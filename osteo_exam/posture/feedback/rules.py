"""Recommendation rule engine for exam summaries.

Rules are evaluated against the latest `MetricsRecord` only (never the
snapshot history) and return the matched clinical recommendations in the order
they appear in the config. Each rule fires independently; when none fires the
config's `fallback_text` is returned instead. Rules can be provided as Python
objects (dict/list) or loaded from a JSON file (default:
`config/recommendation_rules.json` at project root).

Rule shape (JSON / dict):
    {
      "rule_id": "pelvic_tilt",
      "feedback_text": "🔸 Revisar alineación pélvica - inclinación fuera del rango normal",
      "condition": {"metric": "posture.pelvicTilt", "op": ">", "value": 5, "unit": "degrees"}
    }

Condition operators:
  - Comparisons: >, <, >=, <=, ==, !=
  - Range checks: "range" / "between" (inclusive, `min`/`max` or a 2-item `value`)
  - Logic: {"all": [..]} (AND), {"any": [..]} (OR), {"not": {...}}

Metric lookup uses dotted paths into the camelCase record shape
(`symmetry.overallBalance`). A missing or non-finite metric never matches.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Tuple

from ...models import MetricsRecord, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).resolve().parents[3] / "config" / "recommendation_rules.json"

FALLBACK_TEXT = "✅ Parámetros posturales dentro de rangos normales"

DEFAULT_RULES_CONFIG: dict[str, object] = {
    "version": 1,
    "fallback_text": FALLBACK_TEXT,
    "rules": [
        {
            "rule_id": "cervical_alignment",
            "feedback_text": "🔸 Considerar evaluación de postura cervical - desviación significativa detectada",
            "condition": {"metric": "posture.cervicalAlignment", "op": ">", "value": 15, "unit": "degrees"},
        },
        {
            "rule_id": "pelvic_tilt",
            "feedback_text": "🔸 Revisar alineación pélvica - inclinación fuera del rango normal",
            "condition": {"metric": "posture.pelvicTilt", "op": ">", "value": 5, "unit": "degrees"},
        },
        {
            "rule_id": "shoulder_symmetry",
            "feedback_text": "🔸 Asimetría en hombros detectada - considerar evaluación ortopédica",
            "condition": {"metric": "symmetry.shoulderSymmetry", "op": "<", "value": 85, "unit": "percent"},
        },
        {
            "rule_id": "overall_balance",
            "feedback_text": "🔸 Desequilibrio postural general - recomendable fisioterapia postural",
            "condition": {"metric": "symmetry.overallBalance", "op": "<", "value": 80, "unit": "percent"},
        },
    ],
}

_RANGE_OPS = {"range", "between", "in_range"}


def _load_json_object(path: Path) -> dict:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Rules file {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValidationError(f"Expected a JSON object in {path}.")
    return payload


def _coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return num


def load_rules_config(rules_config: Any | None = None) -> dict[str, object]:
    """Load/normalize a rules config.

    Accepted inputs:
      - None: loads DEFAULT_RULES_PATH if present; otherwise the built-in defaults.
      - Path/str: JSON file path.
      - dict: either a full config (with "rules") or a single rule object.
      - list: a list of rule objects.
    """
    if rules_config is None:
        if not DEFAULT_RULES_PATH.exists():
            return dict(DEFAULT_RULES_CONFIG)
        rules_config = DEFAULT_RULES_PATH

    if isinstance(rules_config, (str, Path)):
        loaded = _load_json_object(Path(rules_config))
        if "rules" not in loaded:
            raise ValidationError("Rules config JSON must include a top-level 'rules' list.")
        loaded.setdefault("fallback_text", FALLBACK_TEXT)
        return loaded

    if isinstance(rules_config, list):
        return {"version": 1, "fallback_text": FALLBACK_TEXT, "rules": list(rules_config)}

    if isinstance(rules_config, Mapping):
        cfg = dict(rules_config)
        if "rules" in cfg:
            cfg.setdefault("fallback_text", FALLBACK_TEXT)
            return cfg
        if "rule_id" in cfg and "condition" in cfg:
            return {"version": 1, "fallback_text": FALLBACK_TEXT, "rules": [cfg]}
        raise ValidationError("Unsupported rules mapping; expected {'rules': [...]} or a single rule object.")

    raise ValidationError("Unsupported rules config type; expected None, path, dict, or list.")


def _lookup_metric(metrics: Mapping[str, Any], metric_key: str) -> Any:
    if metric_key in metrics:
        return metrics[metric_key]

    current: Any = metrics
    for part in (metric_key or "").split("."):
        if not part:
            return None
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def _coerce_range(condition: Mapping[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    value = condition.get("value")
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)) and len(value) == 2:
        return _coerce_float(value[0]), _coerce_float(value[1])
    return _coerce_float(condition.get("min")), _coerce_float(condition.get("max"))


def _compare(observed: float, op: str, condition: Mapping[str, Any]) -> bool:
    if op in _RANGE_OPS:
        lo, hi = _coerce_range(condition)
        if lo is None or hi is None:
            return False
        low, high = (lo, hi) if lo <= hi else (hi, lo)
        return low <= observed <= high

    target = _coerce_float(condition.get("value"))
    if target is None:
        return False
    if op in {">", "gt"}:
        return observed > target
    if op in {"<", "lt"}:
        return observed < target
    if op in {">=", "gte"}:
        return observed >= target
    if op in {"<=", "lte"}:
        return observed <= target
    if op in {"==", "eq"}:
        return observed == target
    if op in {"!=", "ne"}:
        return observed != target
    logger.warning("Unknown rule operator %r; condition treated as not matched", op)
    return False


def _eval_condition(condition: Any, metrics: Mapping[str, Any]) -> tuple[bool, list[dict[str, object]]]:
    """Return (matched, observed atoms) for a condition tree."""
    if not isinstance(condition, Mapping):
        return False, []

    if "all" in condition or "any" in condition:
        key = "all" if "all" in condition else "any"
        raw = condition.get(key)
        if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)) or not raw:
            return False, []
        results: list[bool] = []
        atoms: list[dict[str, object]] = []
        for item in raw:
            ok, atomic = _eval_condition(item, metrics)
            results.append(ok)
            atoms.extend(atomic)
        return (all(results) if key == "all" else any(results)), atoms

    if "not" in condition:
        ok, atoms = _eval_condition(condition.get("not"), metrics)
        return not ok, atoms

    if "metric" in condition:
        metric = str(condition.get("metric") or "").strip()
        observed = _coerce_float(_lookup_metric(metrics, metric))
        if observed is None:
            return False, []
        op = str(condition.get("op") or "==").strip().lower()
        matched = _compare(observed, op, condition)
        return matched, [{"metric": metric, "observed": observed, "unit": condition.get("unit")}]

    return False, []


def _metrics_mapping(metrics: Any) -> Mapping[str, Any]:
    if isinstance(metrics, MetricsRecord):
        return metrics.to_dict()
    if isinstance(metrics, Mapping):
        return metrics
    if metrics is None:
        return MetricsRecord.empty().to_dict()
    raise ValidationError(f"Metrics must be a MetricsRecord or mapping; received {type(metrics).__name__}.")


def evaluate_rules(metrics: Any, rules_config: Any | None = None) -> list[dict[str, object]]:
    """Evaluate rules against one metrics record and return matches in config order."""
    values = _metrics_mapping(metrics)
    cfg = load_rules_config(rules_config)

    rules_raw = cfg.get("rules", [])
    if not isinstance(rules_raw, list):
        raise ValidationError("rules config 'rules' must be a list.")

    matches: list[dict[str, object]] = []
    for rule in rules_raw:
        if not isinstance(rule, Mapping):
            continue
        rule_id = str(rule.get("rule_id") or "").strip()
        feedback_text = str(rule.get("feedback_text") or rule.get("text") or "").strip()
        condition = rule.get("condition")
        if not rule_id or not feedback_text or condition is None:
            continue

        ok, atoms = _eval_condition(condition, values)
        if not ok:
            continue
        matches.append(
            {
                "rule_id": rule_id,
                "feedback_text": feedback_text,
                "metric_value": atoms[0]["observed"] if len(atoms) == 1 else {a["metric"]: a["observed"] for a in atoms},
            }
        )
    return matches


def summarize(metrics: Any, rules_config: Any | None = None) -> list[str]:
    """Recommendation texts for the latest metrics record, or the fallback when none fire."""
    cfg = load_rules_config(rules_config)
    matches = evaluate_rules(metrics, cfg)
    if matches:
        return [str(match["feedback_text"]) for match in matches]
    return [str(cfg.get("fallback_text") or FALLBACK_TEXT)]


__all__ = [
    "DEFAULT_RULES_PATH",
    "DEFAULT_RULES_CONFIG",
    "FALLBACK_TEXT",
    "load_rules_config",
    "evaluate_rules",
    "summarize",
]
