"""
Portfolio query guardrails: config-driven question validation and the
non-additive metric check used by sum aggregations.

All behaviour is controlled by guardrails.yaml.
"""

import re
from pathlib import Path

import yaml

# ---------------------------------------------------------------------------
# Config Loading
# ---------------------------------------------------------------------------

_CONFIG_PATH = Path(__file__).parent / "guardrails.yaml"
_config: dict | None = None


def load_guardrails(path: str | Path | None = None) -> dict:
    """Load and cache the guardrail config from YAML."""
    global _config
    if _config is not None and path is None:
        return _config
    p = Path(path) if path else _CONFIG_PATH
    with open(p, "r") as f:
        _config = yaml.safe_load(f) or {}
    return _config


def _cfg() -> dict:
    """Get the cached config (auto-loads if needed)."""
    if _config is None:
        load_guardrails()
    return _config


# ---------------------------------------------------------------------------
# Question Validation
# ---------------------------------------------------------------------------

def validate_question(question: str) -> tuple[bool, str | None]:
    """Validate the raw question against config rules.

    Returns (is_valid, rejection_reason).
    """
    cfg = _cfg().get("question", {})
    text = (question or "").strip()

    min_length = cfg.get("min_length", 3)
    max_length = cfg.get("max_length", 500)
    if len(text) < min_length:
        return False, f"Query must be at least {min_length} characters."
    if len(text) > max_length:
        return False, f"Query must be at most {max_length} characters."

    for pattern in cfg.get("blocked_patterns", []):
        if re.search(pattern, text):
            return False, "Query contains disallowed content."

    return True, None


# ---------------------------------------------------------------------------
# Aggregation Checks
# ---------------------------------------------------------------------------

def is_non_additive(metric_name: str) -> bool:
    """True for percentage/ratio metrics whose portfolio sum is meaningless."""
    names = {n.lower().strip() for n in _cfg().get("aggregation", {}).get("non_additive_metrics", [])}
    return (metric_name or "").lower().strip() in names


def sum_warning(metric_name: str, aggregation: str) -> str | None:
    """Warning text for summing a non-additive metric, or None."""
    cfg = _cfg().get("aggregation", {})
    if aggregation != "sum" or not cfg.get("warn_on_sum", True):
        return None
    if not is_non_additive(metric_name):
        return None
    return (
        f"{metric_name} is a rate or ratio, so a portfolio total is not meaningful. "
        f"Consider the average or median instead."
    )
