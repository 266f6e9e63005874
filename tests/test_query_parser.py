import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

import query_parser
from query_parser import (
    GENERIC_UNKNOWN_REASON,
    InterpretationError,
    parse_query,
    validate_structured_query,
)


def _response(arguments: str | None):
    """Mimic an OpenAI chat completion carrying one tool call."""
    tool_calls = None
    if arguments is not None:
        tool_calls = [SimpleNamespace(function=SimpleNamespace(name="structure_query", arguments=arguments))]
    message = SimpleNamespace(tool_calls=tool_calls, content=None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client_returning(arguments: str | None):
    client = MagicMock()
    client.chat.completions.create.return_value = _response(arguments)
    return client


class TestValidateStructuredQuery:

    def test_metric_lookup(self):
        query = validate_structured_query(
            {"type": "metric_lookup", "params": {"companyName": "Stripe", "metricName": "MRR", "periodType": "monthly"}}
        )
        assert query.type == "metric_lookup"
        assert query.params == {"companyName": "Stripe", "metricName": "MRR"}

    def test_defaults_applied(self):
        ranking = validate_structured_query({"type": "ranking", "params": {"metricName": "Revenue", "limit": None}})
        assert ranking.params == {"metricName": "Revenue", "order": "top", "limit": 5}

        agg = validate_structured_query({"type": "aggregation", "params": {"metricName": "Burn Rate"}})
        assert agg.params == {"metricName": "Burn Rate", "aggregation": "average"}

    def test_filters_kept(self):
        query = validate_structured_query({
            "type": "aggregation",
            "params": {"metricName": "ARR", "aggregation": "median", "filters": {"industry": "Fintech"}},
        })
        assert query.params["filters"] == {"industry": "Fintech"}

    @pytest.mark.parametrize("payload", [
        "not a dict",
        {"type": "forecast", "params": {}},
        {"params": {"metricName": "Revenue"}},
        {"type": "metric_lookup", "params": {"companyName": "Stripe"}},
        {"type": "comparison", "params": {"companyNames": ["Stripe"], "metricName": "Revenue"}},
        {"type": "aggregation", "params": {"metricName": "Revenue", "aggregation": "mode"}},
        {"type": "ranking", "params": {"metricName": "Revenue", "order": "sideways"}},
        {"type": "ranking", "params": {"metricName": "Revenue", "limit": 0}},
        {"type": "metric_lookup", "params": "companyName=Stripe"},
    ])
    def test_rejects_deviations(self, payload):
        with pytest.raises(InterpretationError):
            validate_structured_query(payload)

    def test_unknown_gets_generic_reason(self):
        query = validate_structured_query({"type": "unknown", "params": {}})
        assert query.params == {"reason": GENERIC_UNKNOWN_REASON}


class TestParseQuery:

    def test_successful_interpretation(self):
        arguments = json.dumps({"type": "ranking", "params": {"metricName": "Revenue", "order": "top", "limit": 3}})
        client = _client_returning(arguments)
        with patch.object(query_parser, "_get_client", return_value=client):
            query = parse_query("Top 3 companies by revenue")

        assert query.type == "ranking"
        assert query.params["limit"] == 3
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0]["content"] == query_parser.SYSTEM_PROMPT
        assert kwargs["messages"][1]["content"] == "Top 3 companies by revenue"
        assert kwargs["tool_choice"]["function"]["name"] == "structure_query"

    def test_unparseable_payload_becomes_unknown(self):
        with patch.object(query_parser, "_get_client", return_value=_client_returning("{not json")):
            query = parse_query("asdkjhasd")
        assert query.type == "unknown"
        assert query.params["reason"] == GENERIC_UNKNOWN_REASON

    def test_missing_tool_call_becomes_unknown(self):
        with patch.object(query_parser, "_get_client", return_value=_client_returning(None)):
            assert parse_query("hello there").type == "unknown"

    def test_network_error_becomes_unknown(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = TimeoutError("timed out")
        with patch.object(query_parser, "_get_client", return_value=client):
            assert parse_query("average burn rate").type == "unknown"

    def test_no_api_key_becomes_unknown(self, monkeypatch):
        monkeypatch.setattr(query_parser, "OPENAI_API_KEY", None)
        monkeypatch.setattr(query_parser, "_client", None)
        assert parse_query("average burn rate").type == "unknown"

    def test_cached_interpretation_skips_model(self):
        cached = {"type": "metric_lookup", "params": {"companyName": "Stripe", "metricName": "MRR"}}
        with patch.object(query_parser, "get_cached_interpretation", return_value=cached), \
             patch.object(query_parser, "_get_client") as get_client:
            query = parse_query("What is Stripe's MRR?")
        assert query.type == "metric_lookup"
        get_client.assert_not_called()

    def test_successful_result_is_cached(self):
        arguments = json.dumps({"type": "metric_lookup", "params": {"companyName": "Stripe", "metricName": "MRR"}})
        with patch.object(query_parser, "_get_client", return_value=_client_returning(arguments)), \
             patch.object(query_parser, "set_cached_interpretation") as set_cached:
            parse_query("What is Stripe's MRR?")
        set_cached.assert_called_once_with(
            "What is Stripe's MRR?",
            {"type": "metric_lookup", "params": {"companyName": "Stripe", "metricName": "MRR"}},
        )
