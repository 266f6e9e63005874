"""
Shared configuration for the Portfolio Metrics Query Engine.

Central location for model settings, fan-out limits, ranking defaults,
outlier threshold, and rate limiting.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Language-model interpreter
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
INTERPRETER_MODEL = os.getenv("INTERPRETER_MODEL", "gpt-4o-mini")
INTERPRETER_TIMEOUT = float(os.getenv("INTERPRETER_TIMEOUT", "20"))  # seconds

# Per-company lookups run on a bounded thread pool
FANOUT_MAX_WORKERS = int(os.getenv("FANOUT_MAX_WORKERS", "8"))

# Ranking defaults
DEFAULT_RANKING_LIMIT = 5
MAX_RANKING_LIMIT = 50

# Mean-distance outlier rule: growth ratios further than this from the
# portfolio mean are flagged (0.10 == 10 percentage points)
OUTLIER_THRESHOLD = float(os.getenv("OUTLIER_THRESHOLD", "0.10"))

# Benchmarks need at least this many values before percentiles are reported
MIN_BENCHMARK_SAMPLE = 5

# Interpreter rate limit per investor
QUERY_RATE_LIMIT = int(os.getenv("QUERY_RATE_LIMIT", "20"))
QUERY_RATE_WINDOW = float(os.getenv("QUERY_RATE_WINDOW", "60"))  # seconds

# Trend analysis
VALID_PERIOD_TYPES = ("monthly", "quarterly", "yearly")
DEFAULT_TREND_PERIODS = 8
MAX_TREND_PERIODS = 24

# Approval status that removes a company from an investor's portfolio
DENIED_STATUS = "denied"
# Portfolio analytics (trends, benchmarks) only count confirmed relationships
APPROVED_STATUSES = ("approved", "auto_approved")

# Postgres connection settings
PG_HOST = os.getenv("PG_HOST", "localhost")
PG_PORT = os.getenv("PG_PORT", "5432")
PG_USER = os.getenv("PG_USER")
PG_PASSWORD = os.getenv("PG_PASSWORD")
PG_DATABASE = os.getenv("PG_DATABASE", "portfolio")
PG_POOL_MAX = int(os.getenv("PG_POOL_MAX", "10"))
