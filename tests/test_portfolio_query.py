import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

import portfolio_query as pq
import query_parser
from conftest import INVESTOR
from models import StructuredQuery
from query_executor import EXAMPLE_HINT
from rate_limit import RateLimitExceeded


@pytest.fixture
def acme(store, q3):
    store.add_company("c1", "Acme")
    store.add_metric("c1", "MRR", 1200.5, *q3)
    return store


def test_end_to_end_metric_lookup(acme):
    structured = StructuredQuery("metric_lookup", {"companyName": "Acme", "metricName": "MRR"})
    with patch.object(pq, "parse_query", return_value=structured) as parse:
        result = pq.portfolio_query("  What is Acme's MRR?  ", INVESTOR, store=acme)

    parse.assert_called_once_with("What is Acme's MRR?")
    assert result["type"] == "metric_lookup"
    assert result["answer"] == "Acme's MRR is $1,200.50 (as of Q3 2025)."
    assert result["structured_query"] == structured.to_dict()
    assert result["query_rejected"] is False
    assert result["response_time"] >= 0


def test_gibberish_reaches_unknown_with_hint(store):
    """Unparseable model output still produces a helpful answer."""
    client = MagicMock()
    message = SimpleNamespace(tool_calls=[SimpleNamespace(function=SimpleNamespace(arguments="%%%"))])
    client.chat.completions.create.return_value = SimpleNamespace(choices=[SimpleNamespace(message=message)])

    with patch.object(query_parser, "_get_client", return_value=client):
        result = pq.portfolio_query("asdkjhasd", INVESTOR, store=store)

    assert result["type"] == "unknown"
    assert EXAMPLE_HINT in result["answer"]
    assert result["data"] is None


def test_short_question_rejected_before_interpreting(store):
    with patch.object(pq, "parse_query") as parse:
        result = pq.portfolio_query("hi", INVESTOR, store=store)

    parse.assert_not_called()
    assert result["query_rejected"] is True
    assert result["type"] is None
    assert result["answer"] == "Query must be at least 3 characters."


def test_rate_limit_is_per_investor(store, monkeypatch):
    monkeypatch.setattr(pq.query_limiter, "max_calls", 2)
    unknown = StructuredQuery.unknown("nope")
    with patch.object(pq, "parse_query", return_value=unknown) as parse:
        pq.portfolio_query("first question", INVESTOR, store=store)
        pq.portfolio_query("second question", INVESTOR, store=store)
        with pytest.raises(RateLimitExceeded) as excinfo:
            pq.portfolio_query("third question", INVESTOR, store=store)
        pq.portfolio_query("other investor", "investor-2", store=store)

    assert excinfo.value.retry_after >= 1
    assert parse.call_count == 3


def test_store_fault_propagates(acme):
    acme.failing_companies.add("c1")
    structured = StructuredQuery("ranking", {"metricName": "MRR"})
    with patch.object(pq, "parse_query", return_value=structured):
        with pytest.raises(ConnectionError):
            pq.portfolio_query("Top companies by MRR", INVESTOR, store=acme)


def test_cached_interpretation_round_trips_through_json(acme):
    structured = StructuredQuery("comparison", {"companyNames": ["Acme", "Globex"], "metricName": "MRR"})
    payload = json.loads(json.dumps(structured.to_dict()))
    with patch.object(query_parser, "get_cached_interpretation", return_value=payload):
        result = pq.portfolio_query("Compare Acme and Globex MRR", INVESTOR, store=acme)
    assert result["answer"] == "MRR comparison:\n- Acme: $1,200.50 (Q3 2025)\n- Globex: No data"
