"""
Portfolio resolution and per-company metric lookups.

Lookups across several companies are independent and run on a bounded
thread pool.  Results always come back in the order the companies were
requested, and a company without data never affects the others.  Store
errors propagate to the caller unchanged.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

from config import APPROVED_STATUSES, DENIED_STATUS, FANOUT_MAX_WORKERS
from models import Company, CompanyLookup, MetricRecord, FOUND, NO_METRIC, NOT_FOUND
from periods import select_latest_record

logger = logging.getLogger(__name__)


def _matches(field_value: str | None, wanted: str | None) -> bool:
    if not wanted:
        return True
    return (field_value or "").lower() == wanted.lower()


def _counts(status: str | None, approved_only: bool) -> bool:
    status = (status or "").lower()
    if approved_only:
        return status in APPROVED_STATUSES
    return status != DENIED_STATUS


def list_portfolio_companies(store, investor_id: str, filters: dict | None = None,
                             approved_only: bool = False) -> list[Company]:
    """Companies in the investor's portfolio, optionally narrowed by industry/stage.

    A relationship counts unless its approval status is denied.  With
    ``approved_only`` pending relationships are left out as well.
    """
    relationships = store.fetch_relationships(investor_id) or []
    filters = filters or {}
    return [
        c for c, status in relationships
        if c is not None
        and _counts(status, approved_only)
        and _matches(c.industry, filters.get("industry"))
        and _matches(c.stage, filters.get("stage"))
    ]


def find_company_by_name(store, investor_id: str, name: str) -> Company | None:
    """Exact, case-insensitive name match. Near misses are not found."""
    wanted = (name or "").strip().lower()
    if not wanted:
        return None
    for company in list_portfolio_companies(store, investor_id):
        if company.name.strip().lower() == wanted:
            return company
    return None


def get_latest_metric_value(store, company_id: str, metric_name: str) -> MetricRecord | None:
    wanted = metric_name.strip().lower()
    records = [
        r for r in store.fetch_metric_records(company_id, metric_name)
        if r.metric_name.strip().lower() == wanted
    ]
    return select_latest_record(records)


def _fan_out(fn, items: list) -> list:
    """Apply fn to every item on the worker pool, preserving input order."""
    if not items:
        return []
    if len(items) == 1:
        return [fn(items[0])]
    with ThreadPoolExecutor(max_workers=min(len(items), FANOUT_MAX_WORKERS)) as executor:
        return list(executor.map(fn, items))


def get_metric_across_portfolio(store, investor_id: str, metric_name: str,
                                filters: dict | None = None,
                                approved_only: bool = False) -> list[tuple[Company, MetricRecord]]:
    """Latest value of a metric for every portfolio company that has one.

    Companies without the metric are omitted rather than returned as None.
    """
    companies = list_portfolio_companies(store, investor_id, filters, approved_only)
    records = _fan_out(lambda c: get_latest_metric_value(store, c.id, metric_name), companies)
    entries = [(c, r) for c, r in zip(companies, records) if r is not None]
    logger.debug("%s: %d of %d companies report %r",
                 investor_id, len(entries), len(companies), metric_name)
    return entries


def lookup_companies(store, investor_id: str, names: list[str], metric_name: str) -> list[CompanyLookup]:
    """Resolve each requested name and its latest metric value.

    Unlike get_metric_across_portfolio, every requested name gets an entry,
    with a status telling found, no_metric, and not_found apart.
    """
    portfolio = list_portfolio_companies(store, investor_id)
    by_name = {}
    for company in portfolio:
        by_name.setdefault(company.name.strip().lower(), company)

    def _lookup(name: str) -> CompanyLookup:
        company = by_name.get((name or "").strip().lower())
        if company is None:
            return CompanyLookup(requested_name=name, status=NOT_FOUND)
        record = get_latest_metric_value(store, company.id, metric_name)
        if record is None:
            return CompanyLookup(requested_name=name, status=NO_METRIC, company=company)
        return CompanyLookup(requested_name=name, status=FOUND, company=company, record=record)

    return _fan_out(_lookup, list(names))
