"""
Metric aggregation and benchmarking math for portfolio queries.

Every function here is pure: callers hand in plain numbers (already run
through extract_numeric_value and stripped of None) and get plain results
back.  No database or network access.
"""

import math
from dataclasses import dataclass

from config import OUTLIER_THRESHOLD, MIN_BENCHMARK_SAMPLE


# ---------------------------------------------------------------------------
# Numeric normalization
# ---------------------------------------------------------------------------

def extract_numeric_value(value) -> float | None:
    """Coerce a stored metric value to float.

    Returns None (value absent) for anything that is not a finite number or a
    numeric-looking string.  Stored values wrapped as {"value": ...} are
    unwrapped once.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        value = value.get("value")
        if value is None or isinstance(value, (bool, dict)):
            return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        # float() accepts digit separators like "1_000"; stored text never should
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AggregateStats:
    sum: float | None
    average: float
    median: float
    min: float
    max: float
    count: int

    def get(self, statistic: str) -> float:
        if statistic == "sum":
            return self.sum if self.sum is not None else 0.0
        return getattr(self, statistic)


def calculate_median(values: list[float]) -> float:
    """Median without mutating the caller's list. Empty input gives 0.0."""
    if not values:
        return 0.0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return float(ordered[mid])
    return (ordered[mid - 1] + ordered[mid]) / 2


def aggregate(values: list[float]) -> AggregateStats:
    """Sum, average, median, min, max and count of a numeric sequence.

    An empty sequence does not raise: count is 0, sum is None, and the other
    statistics are 0.0.
    """
    if not values:
        return AggregateStats(sum=None, average=0.0, median=0.0, min=0.0, max=0.0, count=0)

    total = math.fsum(values)
    return AggregateStats(
        sum=total,
        average=total / len(values),
        median=calculate_median(values),
        min=float(min(values)),
        max=float(max(values)),
        count=len(values),
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentile_rank(value: float, distribution: list[float]) -> int:
    """Share of the distribution strictly below ``value``, as an integer 0-100."""
    if not distribution:
        return 0
    below = sum(1 for v in distribution if v < value)
    return _round_half_up(below / len(distribution) * 100)


# ---------------------------------------------------------------------------
# Growth distribution and outliers
# ---------------------------------------------------------------------------

# (label, lower bound inclusive, upper bound exclusive) over growth ratios
GROWTH_BUCKETS = [
    ("<-20%", -math.inf, -0.20),
    ("-20% to -10%", -0.20, -0.10),
    ("-10% to 0%", -0.10, 0.0),
    ("0% to 10%", 0.0, 0.10),
    ("10% to 20%", 0.10, 0.20),
    (">20%", 0.20, math.inf),
]


def calculate_growth_rate(current: float, previous: float) -> float | None:
    """Period-over-period growth as a ratio (0.1 == 10%). None when previous is 0."""
    if previous == 0:
        return None
    return (current - previous) / abs(previous)


def bucket_growth_rates(growth_rates: list[float]) -> list[dict]:
    """Count growth ratios per fixed band. All six bands are always returned."""
    counts = [0] * len(GROWTH_BUCKETS)
    for rate in growth_rates:
        for i, (_, lower, upper) in enumerate(GROWTH_BUCKETS):
            if lower <= rate < upper:
                counts[i] += 1
                break
    return [
        {"bucket": label, "count": count}
        for (label, _, _), count in zip(GROWTH_BUCKETS, counts)
    ]


def classify_outliers(growth_by_company: dict[str, float],
                      threshold: float = OUTLIER_THRESHOLD) -> list[dict]:
    """Flag companies whose growth sits more than ``threshold`` from the mean.

    Uses distance from the portfolio mean, not a z-score.  Results are sorted
    by absolute growth, largest first.
    """
    if not growth_by_company:
        return []

    mean = math.fsum(growth_by_company.values()) / len(growth_by_company)
    outliers = []
    for company_id, growth in growth_by_company.items():
        distance = growth - mean
        if distance > threshold:
            direction = "outperforming"
        elif -distance > threshold:
            direction = "underperforming"
        else:
            continue
        outliers.append({
            "company_id": company_id,
            "growth": growth,
            "distance_from_mean": distance,
            "direction": direction,
        })

    outliers.sort(key=lambda o: abs(o["growth"]), reverse=True)
    return outliers


# ---------------------------------------------------------------------------
# Benchmarks
# ---------------------------------------------------------------------------

def calculate_percentiles(values: list[float]) -> dict | None:
    """p25/p50/p75/p90 using R-7 linear interpolation (Excel PERCENTILE.INC).

    Returns None when fewer than MIN_BENCHMARK_SAMPLE values are supplied.
    """
    if len(values) < MIN_BENCHMARK_SAMPLE:
        return None

    ordered = sorted(values)

    def _percentile(p: float) -> float:
        index = (len(ordered) - 1) * p
        lower = math.floor(index)
        upper = math.ceil(index)
        if lower == upper:
            return float(ordered[lower])
        fraction = index - lower
        return ordered[lower] + fraction * (ordered[upper] - ordered[lower])

    return {
        "p25": _percentile(0.25),
        "p50": _percentile(0.50),
        "p75": _percentile(0.75),
        "p90": _percentile(0.90),
    }


def estimate_percentile(value: float, benchmark: dict) -> int:
    """Place ``value`` on a 0-100 scale by interpolating between benchmark breakpoints.

    The 0th and 100th breakpoints are extrapolated from the interquartile
    range and the p75-p90 spread respectively.
    """
    p25, p50, p75, p90 = benchmark["p25"], benchmark["p50"], benchmark["p75"], benchmark["p90"]
    points = [
        (0, p25 - 1.5 * (p75 - p25)),
        (25, p25),
        (50, p50),
        (75, p75),
        (90, p90),
        (100, p90 + (p90 - p75)),
    ]

    if value <= points[0][1]:
        return 0
    if value >= points[-1][1]:
        return 100

    for (p_low, v_low), (p_high, v_high) in zip(points, points[1:]):
        if v_low <= value <= v_high:
            if v_high == v_low:
                return p_low
            fraction = (value - v_low) / (v_high - v_low)
            return _round_half_up(p_low + fraction * (p_high - p_low))

    return 50
