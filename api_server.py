"""
FastAPI server wrapping the portfolio query engine and portfolio analytics.
Run: .venv/bin/uvicorn api_server:app --host 0.0.0.0 --port 8000

The investor identity arrives in the X-Investor-Id header, set by the
authenticating proxy in front of this service.
"""

import logging
import os
from urllib.parse import urlparse

from dotenv import load_dotenv

load_dotenv()

# Railway (and similar PaaS) provide DATABASE_URL as a single connection string.
# Parse it into individual PG_* env vars that the rest of the codebase expects.
_database_url = os.environ.get("DATABASE_URL")
if _database_url and not os.environ.get("PG_HOST"):
    _parsed = urlparse(_database_url)
    os.environ.setdefault("PG_HOST", _parsed.hostname or "localhost")
    os.environ.setdefault("PG_PORT", str(_parsed.port or 5432))
    os.environ.setdefault("PG_USER", _parsed.username or "")
    os.environ.setdefault("PG_PASSWORD", _parsed.password or "")
    os.environ.setdefault("PG_DATABASE", _parsed.path.lstrip("/") or "portfolio")

from fastapi import Depends, FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from cache import cache_stats, cache_clear
from config import VALID_PERIOD_TYPES, DEFAULT_TREND_PERIODS, MAX_TREND_PERIODS
from metric_store import MetricStore
from portfolio_analytics import growth_trends, metric_benchmark
from portfolio_query import portfolio_query
from rate_limit import RateLimitExceeded

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("api_server")

app = FastAPI(title="Portfolio Query API")

# CORS: allow localhost for dev + production frontend URL from env
_cors_origins = ["http://localhost:3000"]
_frontend_url = os.environ.get("FRONTEND_URL", "")
if _frontend_url:
    url = _frontend_url.rstrip("/")
    if not url.startswith("http"):
        url = "https://" + url
    _cors_origins.append(url)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: MetricStore | None = None


def get_store() -> MetricStore:
    global _store
    if _store is None:
        _store = MetricStore()
    return _store


def _error(message: str, status: int, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message}, headers=headers)


class QueryRequest(BaseModel):
    query: str


@app.post("/query")
def handle_query(req: QueryRequest,
                 x_investor_id: str | None = Header(default=None),
                 store=Depends(get_store)):
    """Answer a natural-language question about the caller's portfolio."""
    if not x_investor_id:
        return _error("Unauthorized.", 401)

    try:
        result = portfolio_query(req.query, x_investor_id, store=store)
    except RateLimitExceeded as e:
        return _error("Too many requests. Please try again shortly.", 429,
                      {"Retry-After": str(e.retry_after)})
    except Exception as e:
        logger.exception("Query failed for investor %s", x_investor_id)
        return _error(str(e) or "An unexpected error occurred.", 500)

    if result["query_rejected"]:
        return _error(result["answer"], 400)

    return {
        "answer": result["answer"],
        "data": result.get("data"),
        "chartData": result.get("chartData"),
        "queryType": result["type"],
        "warnings": result.get("warnings", []),
        "responseTime": result["response_time"],
    }


@app.get("/trends")
def handle_trends(metric: str | None = None,
                  periodType: str = "quarterly",
                  periods: str | None = None,
                  x_investor_id: str | None = Header(default=None),
                  store=Depends(get_store)):
    """Growth distribution and outliers for one metric across the portfolio."""
    if not x_investor_id:
        return _error("Unauthorized.", 401)
    if not metric or not metric.strip():
        return _error("Missing required query parameter: metric", 400)
    if periodType not in VALID_PERIOD_TYPES:
        return _error("Invalid periodType. Must be monthly, quarterly, or yearly.", 400)

    try:
        n_periods = int(periods) if periods else DEFAULT_TREND_PERIODS
    except ValueError:
        n_periods = DEFAULT_TREND_PERIODS
    n_periods = min(max(n_periods, 1), MAX_TREND_PERIODS)

    try:
        return growth_trends(store, x_investor_id, metric.strip(), periodType, n_periods)
    except Exception as e:
        logger.exception("Trend analysis failed for investor %s", x_investor_id)
        return _error(str(e) or "An unexpected error occurred.", 500)


@app.get("/benchmarks")
def handle_benchmarks(metric: str | None = None,
                      industry: str | None = None,
                      stage: str | None = None,
                      x_investor_id: str | None = Header(default=None),
                      store=Depends(get_store)):
    """Percentile breakpoints for a metric and each company's position."""
    if not x_investor_id:
        return _error("Unauthorized.", 401)
    if not metric or not metric.strip():
        return _error("Missing required query parameter: metric", 400)

    filters = {k: v for k, v in (("industry", industry), ("stage", stage)) if v}
    try:
        return metric_benchmark(store, x_investor_id, metric.strip(), filters or None)
    except Exception as e:
        logger.exception("Benchmark failed for investor %s", x_investor_id)
        return _error(str(e) or "An unexpected error occurred.", 500)


@app.get("/health")
def health():
    return {"status": "ok"}


# --- Cache Management Endpoints ---

@app.get("/cache/stats")
def get_cache_stats():
    """Return Redis cache statistics."""
    return cache_stats()


class CacheClearRequest(BaseModel):
    layer: str | None = None  # "interpret", or None for all


@app.post("/cache/clear")
def clear_cache(req: CacheClearRequest = CacheClearRequest()):
    """Clear cache. Optionally specify a layer."""
    return cache_clear(req.layer)
