"""
Portfolio-wide analytics: growth distribution, growth outliers, year-over-year
averages, and percentile benchmarks for a single metric.

Only approved relationships count here; pending companies are left out.
"""

import logging
from datetime import date

from aggregation import (
    bucket_growth_rates,
    calculate_growth_rate,
    calculate_percentiles,
    classify_outliers,
    estimate_percentile,
    extract_numeric_value,
    percentile_rank,
)
from config import DEFAULT_TREND_PERIODS, OUTLIER_THRESHOLD
from periods import MONTH_ABBR, period_key
from portfolio import get_metric_across_portfolio, list_portfolio_companies

logger = logging.getLogger(__name__)


def _latest_growth(period_values: dict[str, float], recent_periods: list[str]) -> float | None:
    """Growth between the two most recent periods the company reported in the window."""
    reported = [p for p in recent_periods if p in period_values]
    if len(reported) < 2:
        return None
    return calculate_growth_rate(period_values[reported[-1]], period_values[reported[-2]])


def _year_and_slot(period_start, period_type: str) -> tuple[int | None, str]:
    """Split a period key into its year and a year-agnostic slot ('Q3', '09', 'annual')."""
    year, _, slot = period_key(period_start, period_type).partition("-")
    try:
        year = int(year)
    except ValueError:
        return None, ""
    return year, slot or "annual"


def _slot_label(slot: str) -> str:
    if slot == "annual":
        return "Annual"
    if slot.isdigit() and 1 <= int(slot) <= 12:
        return MONTH_ABBR[int(slot) - 1]
    return slot


def _average(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def year_over_year(history, period_type: str, current_year: int) -> list[dict]:
    """Average value per period slot for ``current_year`` next to the year before.

    Every numeric record of either year contributes, one value per record.
    """
    prior_year = current_year - 1
    buckets: dict[str, dict[int, list[float]]] = {}
    for record in history:
        value = extract_numeric_value(record.value)
        if value is None:
            continue
        year, slot = _year_and_slot(record.period_start, period_type)
        if year not in (current_year, prior_year):
            continue
        buckets.setdefault(slot, {current_year: [], prior_year: []})[year].append(value)

    return [
        {
            "period": slot,
            "label": _slot_label(slot),
            "current_year": _average(buckets[slot][current_year]),
            "prior_year": _average(buckets[slot][prior_year]),
        }
        for slot in sorted(buckets)
    ]


def growth_trends(store, investor_id: str, metric_name: str, period_type: str = "quarterly",
                  periods: int = DEFAULT_TREND_PERIODS, threshold: float = OUTLIER_THRESHOLD,
                  current_year: int | None = None) -> dict:
    """Growth-rate distribution, outliers and year-over-year averages for one metric.

    Each company's growth is measured between its two most recent reported
    periods inside the last ``periods`` periods seen across the portfolio.
    ``current_year`` defaults to today's year.
    """
    if current_year is None:
        current_year = date.today().year

    companies = list_portfolio_companies(store, investor_id, approved_only=True)
    names = {c.id: c.name for c in companies}
    history = [
        r for r in store.fetch_metric_history(list(names), metric_name, period_type)
        if r.company_id in names
    ]

    # company_id -> {period_key: value}; later rows for the same period win
    company_periods: dict[str, dict[str, float]] = {}
    all_keys = set()
    for record in history:
        value = extract_numeric_value(record.value)
        if value is None:
            continue
        key = period_key(record.period_start, period_type)
        all_keys.add(key)
        company_periods.setdefault(record.company_id, {})[key] = value

    recent_periods = sorted(all_keys)[-periods:]

    growth_by_company = {}
    for company_id, period_values in company_periods.items():
        growth = _latest_growth(period_values, recent_periods)
        if growth is not None:
            growth_by_company[company_id] = growth

    outliers = classify_outliers(growth_by_company, threshold)
    for outlier in outliers:
        outlier["company_name"] = names.get(outlier["company_id"], "Unknown")

    logger.debug("%s trends for %r: %d companies with growth", investor_id, metric_name, len(growth_by_company))
    return {
        "metric": metric_name,
        "period_type": period_type,
        "periods": periods,
        "company_count": len(company_periods),
        "companies_with_growth": len(growth_by_company),
        "growth_distribution": bucket_growth_rates(list(growth_by_company.values())),
        "outliers": outliers,
        "yoy": year_over_year(history, period_type, current_year),
        "current_year": current_year,
        "prior_year": current_year - 1,
    }


def metric_benchmark(store, investor_id: str, metric_name: str, filters: dict | None = None) -> dict:
    """Percentile breakpoints of a metric's latest values and each company's position."""
    entries = get_metric_across_portfolio(store, investor_id, metric_name, filters, approved_only=True)
    numeric = []
    for company, record in entries:
        value = extract_numeric_value(record.value)
        if value is not None:
            numeric.append((company, value))

    values = [v for _, v in numeric]
    benchmark = calculate_percentiles(values)

    rows = []
    for company, value in numeric:
        rows.append({
            "company": company.name,
            "value": value,
            "percentile_rank": percentile_rank(value, values),
            "benchmark_percentile": estimate_percentile(value, benchmark) if benchmark else None,
        })
    rows.sort(key=lambda r: r["value"], reverse=True)

    return {
        "metric": metric_name,
        "filters": filters or {},
        "sample_size": len(values),
        "benchmark": benchmark,
        "companies": rows,
    }
