from datetime import date, datetime

import pytest

from models import MetricRecord
from periods import format_period_label, period_key, period_type_aliases, select_latest_record


@pytest.mark.parametrize("start, period_type, expected", [
    ("2025-07-01", "quarterly", "Q3 2025"),
    ("2025-01-01", "quarterly", "Q1 2025"),
    ("2025-12-01", "quarterly", "Q4 2025"),
    ("2025-09-15", "monthly", "Sep 2025"),
    ("2025-01-01", "annual", "2025"),
    ("2025-01-01", "yearly", "2025"),
    (date(2024, 4, 1), "quarterly", "Q2 2024"),
    (datetime(2024, 2, 10, 12, 30), "monthly", "Feb 2024"),
    ("2025-03-01", "Quarterly", "Q1 2025"),
])
def test_format_period_label(start, period_type, expected):
    assert format_period_label(start, period_type) == expected


def test_unrecognized_period_type_uses_range():
    assert format_period_label("2025-01-01", "weekly", "2025-01-07") == "2025-01-01 - 2025-01-07"
    assert format_period_label("2025-01-01", "weekly") == "2025-01-01"


def test_unparseable_start_is_echoed():
    assert format_period_label("sometime", "quarterly") == "sometime"


@pytest.mark.parametrize("start, period_type, expected", [
    ("2025-09-15", "monthly", "2025-09"),
    ("2025-07-01", "quarterly", "2025-Q3"),
    ("2025-07-01", "yearly", "2025"),
])
def test_period_key(start, period_type, expected):
    assert period_key(start, period_type) == expected


def _record(start, end, value=1):
    return MetricRecord("c1", "Revenue", value, "monthly", start, end)


class TestSelectLatestRecord:

    def test_greatest_period_end_wins(self):
        older = _record(date(2025, 1, 1), date(2025, 1, 31), value="old")
        newer = _record(date(2025, 2, 1), date(2025, 2, 28), value="new")
        assert select_latest_record([older, newer]).value == "new"
        assert select_latest_record([newer, older]).value == "new"

    def test_tie_on_end_prefers_later_start(self):
        quarter = _record(date(2025, 7, 1), date(2025, 9, 30), value="quarter")
        month = _record(date(2025, 9, 1), date(2025, 9, 30), value="month")
        assert select_latest_record([quarter, month]).value == "month"
        assert select_latest_record([month, quarter]).value == "month"

    def test_full_tie_keeps_fetch_order(self):
        first = _record(date(2025, 9, 1), date(2025, 9, 30), value="first")
        second = _record(date(2025, 9, 1), date(2025, 9, 30), value="second")
        assert select_latest_record([first, second]).value == "first"

    def test_string_dates(self):
        a = _record("2025-01-01", "2025-03-31", value="a")
        b = _record("2025-04-01", "2025-06-30", value="b")
        assert select_latest_record([a, b]).value == "b"

    def test_empty(self):
        assert select_latest_record([]) is None


@pytest.mark.parametrize("period_type, expected", [
    ("yearly", ["annual", "yearly"]),
    ("Annual", ["annual", "yearly"]),
    ("quarterly", ["quarterly"]),
    ("Monthly", ["monthly"]),
])
def test_period_type_aliases(period_type, expected):
    assert period_type_aliases(period_type) == expected
