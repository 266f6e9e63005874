import os
from datetime import date

# Keep tests off Redis and the language model
os.environ["CACHE_ENABLED"] = "false"
os.environ.pop("OPENAI_API_KEY", None)

import pytest

from models import Company, MetricRecord
from periods import period_type_aliases
from rate_limit import query_limiter

INVESTOR = "investor-1"


class FakeStore:
    """In-memory stand-in for metric_store.MetricStore."""

    def __init__(self):
        self.relationships: dict[str, list[tuple[Company, str]]] = {}
        self.records: list[MetricRecord] = []
        self.failing_companies: set[str] = set()

    def add_company(self, company_id, name, industry=None, stage=None,
                    investor_id=INVESTOR, status="approved") -> Company:
        company = Company(id=company_id, name=name, industry=industry, stage=stage)
        self.relationships.setdefault(investor_id, []).append((company, status))
        return company

    def add_metric(self, company_id, metric_name, value, period_start, period_end,
                   period_type="quarterly") -> MetricRecord:
        record = MetricRecord(
            company_id=company_id,
            metric_name=metric_name,
            value=value,
            period_type=period_type,
            period_start=period_start,
            period_end=period_end,
        )
        self.records.append(record)
        return record

    def fetch_relationships(self, investor_id):
        return list(self.relationships.get(investor_id, []))

    def fetch_metric_records(self, company_id, metric_name):
        if company_id in self.failing_companies:
            raise ConnectionError("metric store unreachable")
        return [
            r for r in self.records
            if r.company_id == company_id and r.metric_name.lower() == metric_name.strip().lower()
        ]

    def fetch_metric_history(self, company_ids, metric_name, period_type):
        rows = [
            r for r in self.records
            if r.company_id in company_ids
            and r.period_type.lower() in period_type_aliases(period_type)
            and r.metric_name.lower() == metric_name.strip().lower()
        ]
        return sorted(rows, key=lambda r: r.period_start)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def q3():
    """Period bounds for Q3 2025."""
    return date(2025, 7, 1), date(2025, 9, 30)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    query_limiter.reset()
    yield
    query_limiter.reset()
