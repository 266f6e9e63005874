from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import api_server
from conftest import INVESTOR
from models import StructuredQuery
from rate_limit import RateLimitExceeded

HEADERS = {"X-Investor-Id": INVESTOR}


@pytest.fixture
def client(store, q3):
    store.add_company("c1", "Acme", industry="Fintech")
    store.add_company("c2", "Globex", industry="SaaS")
    store.add_metric("c1", "Revenue", 5000, *q3)
    store.add_metric("c2", "Revenue", 7000, *q3)
    api_server.app.dependency_overrides[api_server.get_store] = lambda: store
    yield TestClient(api_server.app)
    api_server.app.dependency_overrides.clear()


def _interpreted(query_type, **params):
    return patch("portfolio_query.parse_query", return_value=StructuredQuery(query_type, params))


class TestQueryEndpoint:

    def test_ranking(self, client):
        with _interpreted("ranking", metricName="Revenue", order="top", limit=5):
            response = client.post("/query", json={"query": "Top companies by revenue"}, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["queryType"] == "ranking"
        assert body["answer"].startswith("Top 2 companies by Revenue:")
        assert [row["company"] for row in body["data"]] == ["Globex", "Acme"]
        assert body["chartData"] == [{"label": "Globex", "value": 7000.0}, {"label": "Acme", "value": 5000.0}]
        assert body["warnings"] == []
        assert "responseTime" in body

    def test_missing_investor_is_unauthorized(self, client):
        response = client.post("/query", json={"query": "Top companies by revenue"})
        assert response.status_code == 401

    def test_rejected_question(self, client):
        response = client.post("/query", json={"query": "x"}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json() == {"error": "Query must be at least 3 characters."}

    def test_rate_limited(self, client):
        with patch("api_server.portfolio_query", side_effect=RateLimitExceeded("query:investor-1", 42)):
            response = client.post("/query", json={"query": "Top companies by revenue"}, headers=HEADERS)
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "42"

    def test_store_failure_is_server_error(self, client):
        with patch("api_server.portfolio_query", side_effect=ConnectionError("metric store unreachable")):
            response = client.post("/query", json={"query": "Top companies by revenue"}, headers=HEADERS)
        assert response.status_code == 500
        assert response.json() == {"error": "metric store unreachable"}


class TestTrendsEndpoint:

    def test_requires_metric(self, client):
        response = client.get("/trends", headers=HEADERS)
        assert response.status_code == 400

    def test_rejects_unknown_period_type(self, client):
        response = client.get("/trends", params={"metric": "Revenue", "periodType": "weekly"}, headers=HEADERS)
        assert response.status_code == 400

    def test_periods_are_clamped(self, client):
        response = client.get("/trends", params={"metric": "Revenue", "periods": "500"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["periods"] == 24

    def test_unparseable_periods_use_default(self, client):
        response = client.get("/trends", params={"metric": "Revenue", "periods": "many"}, headers=HEADERS)
        assert response.json()["periods"] == 8


class TestBenchmarksEndpoint:

    def test_filtered_benchmark(self, client):
        response = client.get("/benchmarks", params={"metric": "Revenue", "industry": "fintech"}, headers=HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["filters"] == {"industry": "fintech"}
        assert body["sample_size"] == 1
        assert body["benchmark"] is None

    def test_requires_investor(self, client):
        assert client.get("/benchmarks", params={"metric": "Revenue"}).status_code == 401


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_cache_stats_without_redis(client):
    assert client.get("/cache/stats").json()["connected"] is False
