"""Rule-based clinical recommendations for exam summaries."""

from .rules import DEFAULT_RULES_CONFIG, DEFAULT_RULES_PATH, FALLBACK_TEXT, evaluate_rules, load_rules_config, summarize

__all__ = [
    "DEFAULT_RULES_CONFIG",
    "DEFAULT_RULES_PATH",
    "FALLBACK_TEXT",
    "evaluate_rules",
    "load_rules_config",
    "summarize",
]
