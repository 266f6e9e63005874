"""
Period labels, grouping keys, and latest-period selection for metric records.
"""

from datetime import date, datetime

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_YEARLY_TYPES = {"yearly", "annual"}


def _parse_date(value) -> date | None:
    """Convert a date value to a date object if it's a string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value[:10], "%Y-%m-%d").date()
        except ValueError:
            return None
    return None


def _quarter(d: date) -> int:
    return (d.month - 1) // 3 + 1


def period_type_aliases(period_type: str) -> list[str]:
    """Stored period_type values that belong to ``period_type``. 'yearly' and 'annual' are one kind."""
    kind = (period_type or "").lower()
    if kind in _YEARLY_TYPES:
        return sorted(_YEARLY_TYPES)
    return [kind]


def format_period_label(period_start, period_type: str, period_end=None) -> str:
    """Short human label for a period: 'Q3 2025', 'Sep 2025', or '2025'."""
    start = _parse_date(period_start)
    if start is None:
        return str(period_start)

    kind = (period_type or "").lower()
    if kind == "quarterly":
        return f"Q{_quarter(start)} {start.year}"
    if kind == "monthly":
        return f"{MONTH_ABBR[start.month - 1]} {start.year}"
    if kind in _YEARLY_TYPES:
        return str(start.year)

    end = _parse_date(period_end)
    if end is not None:
        return f"{start.isoformat()} - {end.isoformat()}"
    return start.isoformat()


def period_key(period_start, period_type: str) -> str:
    """Sortable grouping key: '2025-09', '2025-Q3', or '2025'."""
    start = _parse_date(period_start)
    if start is None:
        return str(period_start)

    kind = (period_type or "").lower()
    if kind == "monthly":
        return f"{start.year}-{start.month:02d}"
    if kind == "quarterly":
        return f"{start.year}-Q{_quarter(start)}"
    if kind in _YEARLY_TYPES:
        return str(start.year)
    return start.isoformat()


def select_latest_record(records):
    """Pick the record with the greatest period_end.

    Ties on period_end go to the later period_start; records still tied keep
    their fetch order (the first one wins).
    """
    latest = None
    latest_key = None
    for record in records:
        key = (_parse_date(record.period_end) or date.min,
               _parse_date(record.period_start) or date.min)
        if latest_key is None or key > latest_key:
            latest, latest_key = record, key
    return latest
