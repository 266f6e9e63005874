"""
Metric-aware number formatting for answers: currency, percentage, or count.
"""

_PERCENT_HINTS = ("rate", "margin", "retention", "churn", "conversion")
_CURRENCY_HINTS = ("revenue", "mrr", "arr", "cac", "ltv", "burn", "cost",
                   "expense", "gmv", "aov", "arpu")


def format_number(value: float) -> str:
    """Thousands separators; two decimals only when the value has cents."""
    if float(value).is_integer():
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def format_value(value, metric_name: str | None = None) -> str:
    if value is None:
        return "-"

    name = (metric_name or "").lower()
    # "Burn Rate" is a dollar amount per period, not a percentage
    if "burn" in name:
        return f"${format_number(value)}"
    if "ratio" in name:
        return format_number(value)
    if any(hint in name for hint in _PERCENT_HINTS):
        return f"{format_number(value)}%"
    if any(hint in name for hint in _CURRENCY_HINTS):
        return f"${format_number(value)}"
    return format_number(value)
