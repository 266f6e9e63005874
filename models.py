"""
Data model shared by the resolver, executor, and analytics modules.
"""

from dataclasses import dataclass, field
from datetime import date

QUERY_TYPES = ("metric_lookup", "comparison", "aggregation", "ranking", "unknown")


@dataclass(frozen=True)
class Company:
    id: str
    name: str
    industry: str | None = None
    stage: str | None = None


@dataclass(frozen=True)
class MetricRecord:
    company_id: str
    metric_name: str
    value: object
    period_type: str
    period_start: date
    period_end: date


@dataclass
class StructuredQuery:
    type: str
    params: dict = field(default_factory=dict)

    @classmethod
    def unknown(cls, reason: str) -> "StructuredQuery":
        return cls(type="unknown", params={"reason": reason})

    def to_dict(self) -> dict:
        return {"type": self.type, "params": dict(self.params)}


@dataclass
class QueryResult:
    """Outcome of one executed query. ``answer`` is always displayable on its own."""

    type: str
    answer: str
    data: list[dict] | None = None
    chart_data: list[dict] | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        result = {"type": self.type, "answer": self.answer}
        if self.data is not None:
            result["data"] = self.data
        if self.chart_data is not None:
            result["chartData"] = self.chart_data
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result


# Per-entity outcomes of a comparison lookup
FOUND = "found"
NO_METRIC = "no_metric"
NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CompanyLookup:
    requested_name: str
    status: str
    company: Company | None = None
    record: MetricRecord | None = None

    @property
    def display_name(self) -> str:
        return self.company.name if self.company else self.requested_name
