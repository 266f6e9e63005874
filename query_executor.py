"""
Portfolio Query Executor

Runs a StructuredQuery against an investor's portfolio and builds the
QueryResult: a displayable answer, tabular rows, and an optional chart
series.  Business conditions (unknown company, missing metric, empty
portfolio) come back as ordinary results with an explanatory answer.
Store errors are not caught.
"""

import logging

from aggregation import aggregate, extract_numeric_value
from config import DEFAULT_RANKING_LIMIT, MAX_RANKING_LIMIT
from formatting import format_value
from guardrails import sum_warning
from models import QueryResult, StructuredQuery, FOUND
from periods import format_period_label
from portfolio import (
    find_company_by_name,
    get_latest_metric_value,
    get_metric_across_portfolio,
    lookup_companies,
)

logger = logging.getLogger(__name__)

EXAMPLE_HINT = 'Try asking something like "What is Stripe\'s MRR?" or "Top 5 companies by revenue".'

# aggregation param -> (AggregateStats field, word used in the answer)
AGGREGATIONS = {
    "average": ("average", "average"),
    "sum": ("sum", "total"),
    "median": ("median", "median"),
    "min": ("min", "minimum"),
    "max": ("max", "maximum"),
}


# --- Param helpers ---

def _text_param(params: dict, key: str) -> str | None:
    value = params.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _filters_param(params: dict) -> dict | None:
    filters = params.get("filters")
    if not isinstance(filters, dict):
        return None
    cleaned = {k: filters[k].strip() for k in ("industry", "stage")
               if isinstance(filters.get(k), str) and filters[k].strip()}
    return cleaned or None


def _limit_param(params: dict) -> int:
    value = params.get("limit")
    if isinstance(value, bool):
        return DEFAULT_RANKING_LIMIT
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_RANKING_LIMIT
    if limit < 1:
        return DEFAULT_RANKING_LIMIT
    return min(limit, MAX_RANKING_LIMIT)


def _filter_label(filters: dict | None) -> str:
    if not filters:
        return ""
    parts = []
    if filters.get("industry"):
        parts.append(f"{filters['industry']} companies")
    if filters.get("stage"):
        parts.append(f"{filters['stage']} stage")
    return f" ({', '.join(parts)})"


def _record_period(record) -> str:
    return format_period_label(record.period_start, record.period_type, record.period_end)


def _plural(count: int) -> str:
    return "company" if count == 1 else "companies"


# --- Branches ---

def execute_metric_lookup(params: dict, store, investor_id: str) -> QueryResult:
    company_name = _text_param(params, "companyName")
    metric_name = _text_param(params, "metricName")
    if not company_name or not metric_name:
        return QueryResult(
            type="metric_lookup",
            answer="I need both a company name and a metric name to look that up.",
        )

    company = find_company_by_name(store, investor_id, company_name)
    if company is None:
        return QueryResult(
            type="metric_lookup",
            answer=f'I couldn\'t find "{company_name}" in your portfolio. Please check the company name.',
        )

    record = get_latest_metric_value(store, company.id, metric_name)
    if record is None:
        return QueryResult(
            type="metric_lookup",
            answer=(
                f'No data found for "{metric_name}" for {company.name}. '
                f"The company may not have submitted this metric yet."
            ),
        )

    number = extract_numeric_value(record.value)
    formatted = format_value(number, metric_name) if number is not None else str(record.value)
    period = _record_period(record)

    return QueryResult(
        type="metric_lookup",
        answer=f"{company.name}'s {record.metric_name} is {formatted} (as of {period}).",
        data=[{
            "company": company.name,
            "metric": record.metric_name,
            "value": number if number is not None else record.value,
            "period": period,
        }],
    )


def execute_comparison(params: dict, store, investor_id: str) -> QueryResult:
    names = params.get("companyNames")
    metric_name = _text_param(params, "metricName")
    if isinstance(names, list):
        names = [n.strip() for n in names if isinstance(n, str) and n.strip()]
    if not isinstance(names, list) or len(names) < 2 or not metric_name:
        return QueryResult(
            type="comparison",
            answer="I need at least two company names and a metric to compare.",
        )

    rows = []
    for lookup in lookup_companies(store, investor_id, names, metric_name):
        if lookup.status == FOUND:
            value = extract_numeric_value(lookup.record.value)
            rows.append({"company": lookup.display_name, "value": value,
                         "period": _record_period(lookup.record)})
        else:
            rows.append({"company": lookup.display_name, "value": None, "period": "N/A"})

    valid = [r for r in rows if r["value"] is not None]
    if not valid:
        return QueryResult(
            type="comparison",
            answer=f"No {metric_name} data found for any of the requested companies.",
        )

    lines = []
    for r in rows:
        shown = format_value(r["value"], metric_name) if r["value"] is not None else "No data"
        suffix = f" ({r['period']})" if r["period"] != "N/A" else ""
        lines.append(f"- {r['company']}: {shown}{suffix}")

    return QueryResult(
        type="comparison",
        answer=f"{metric_name} comparison:\n" + "\n".join(lines),
        data=rows,
        chart_data=[{"label": r["company"], "value": r["value"]} for r in valid],
    )


def execute_aggregation(params: dict, store, investor_id: str) -> QueryResult:
    metric_name = _text_param(params, "metricName")
    aggregation = _text_param(params, "aggregation")
    aggregation = aggregation.lower() if aggregation else "average"
    if aggregation not in AGGREGATIONS:
        aggregation = "average"
    filters = _filters_param(params)

    if not metric_name:
        return QueryResult(
            type="aggregation",
            answer="I need a metric name to calculate an aggregate.",
        )

    entries = get_metric_across_portfolio(store, investor_id, metric_name, filters)
    if not entries:
        return QueryResult(
            type="aggregation",
            answer=f'No data found for "{metric_name}" across your portfolio{_filter_label(filters)}.',
        )

    numeric = []
    for company, record in entries:
        value = extract_numeric_value(record.value)
        if value is not None:
            numeric.append((company, value))

    if not numeric:
        return QueryResult(
            type="aggregation",
            answer=f'No numeric values found for "{metric_name}" across your portfolio{_filter_label(filters)}.',
        )

    stats = aggregate([v for _, v in numeric])
    field, label = AGGREGATIONS[aggregation]
    formatted = format_value(stats.get(field), metric_name)

    answer = (
        f"The {label} {metric_name} across your portfolio{_filter_label(filters)} is {formatted} "
        f"(based on {stats.count} {_plural(stats.count)})."
    )
    warnings = []
    warning = sum_warning(metric_name, aggregation)
    if warning:
        warnings.append(warning)
        answer += f" Note: {warning}"

    return QueryResult(
        type="aggregation",
        answer=answer,
        data=[{"company": c.name, "value": v} for c, v in numeric],
        chart_data=[{"label": c.name, "value": v} for c, v in numeric],
        warnings=warnings,
    )


def execute_ranking(params: dict, store, investor_id: str) -> QueryResult:
    metric_name = _text_param(params, "metricName")
    order = "bottom" if _text_param(params, "order") == "bottom" else "top"
    limit = _limit_param(params)
    filters = _filters_param(params)

    if not metric_name:
        return QueryResult(type="ranking", answer="I need a metric name to rank companies.")

    entries = get_metric_across_portfolio(store, investor_id, metric_name, filters)
    if not entries:
        return QueryResult(
            type="ranking",
            answer=f'No data found for "{metric_name}" across your portfolio{_filter_label(filters)}.',
        )

    candidates = []
    for company, record in entries:
        value = extract_numeric_value(record.value)
        if value is not None:
            candidates.append({"company": company.name, "value": value, "period": _record_period(record)})

    # Stable sort: equal values keep portfolio order in both directions
    sign = -1 if order == "top" else 1
    ranked = sorted(candidates, key=lambda r: sign * r["value"])[:limit]

    if not ranked:
        return QueryResult(
            type="ranking",
            answer=f"No numeric {metric_name} data available for ranking.",
        )

    direction = "Top" if order == "top" else "Bottom"
    lines = [
        f"{i}. {r['company']}: {format_value(r['value'], metric_name)} ({r['period']})"
        for i, r in enumerate(ranked, start=1)
    ]
    return QueryResult(
        type="ranking",
        answer=f"{direction} {len(ranked)} {_plural(len(ranked))} by {metric_name}:\n" + "\n".join(lines),
        data=ranked,
        chart_data=[{"label": r["company"], "value": r["value"]} for r in ranked],
    )


def execute_unknown(params: dict) -> QueryResult:
    reason = _text_param(params, "reason") or "I wasn't able to understand that question."
    return QueryResult(type="unknown", answer=f"{reason} {EXAMPLE_HINT}")


_DISPATCH = {
    "metric_lookup": execute_metric_lookup,
    "comparison": execute_comparison,
    "aggregation": execute_aggregation,
    "ranking": execute_ranking,
}


def execute_structured_query(query: StructuredQuery, store, investor_id: str) -> QueryResult:
    """Execute one structured query. Unrecognized types take the unknown path."""
    params = query.params if isinstance(query.params, dict) else {}
    handler = _DISPATCH.get(query.type)
    if handler is None:
        if query.type != "unknown":
            logger.info("Routing unsupported query type %r to unknown", query.type)
        return execute_unknown(params)
    return handler(params, store, investor_id)
