"""
PostgreSQL access to portfolio relationships and per-company metric values.
Read-only apart from the schema bootstrap in init_db().
"""

from contextlib import contextmanager
import threading

from psycopg2 import pool

from config import (
    PG_HOST, PG_PORT, PG_USER, PG_PASSWORD, PG_DATABASE, PG_POOL_MAX,
)
from models import Company, MetricRecord
from periods import period_type_aliases

# Connection pool shared by every thread in the process
_connection_pool = None
# ThreadedConnectionPool raises PoolError when empty; callers wait on this instead
_pool_slots = threading.BoundedSemaphore(PG_POOL_MAX)
_pool_lock = threading.Lock()


def get_connection_pool():
    global _connection_pool
    with _pool_lock:
        if _connection_pool is None:
            _connection_pool = pool.ThreadedConnectionPool(
                minconn=1,
                maxconn=PG_POOL_MAX,
                host=PG_HOST,
                port=PG_PORT,
                user=PG_USER,
                password=PG_PASSWORD,
                database=PG_DATABASE,
            )
    return _connection_pool


@contextmanager
def get_db_connection():
    """Get connection from pool with automatic return.

    Blocks while PG_POOL_MAX connections are checked out.
    """
    with _pool_slots:
        db_pool = get_connection_pool()
        conn = db_pool.getconn()
        try:
            yield conn
        finally:
            db_pool.putconn(conn)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS companies (
    id UUID PRIMARY KEY,
    name VARCHAR(255) NOT NULL,
    industry VARCHAR(100),
    stage VARCHAR(100),
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS investor_company_relationships (
    id SERIAL PRIMARY KEY,
    investor_id VARCHAR(255) NOT NULL,
    company_id UUID REFERENCES companies(id) ON DELETE CASCADE,
    approval_status VARCHAR(30) NOT NULL DEFAULT 'pending',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (investor_id, company_id)
);

CREATE TABLE IF NOT EXISTS company_metric_values (
    id SERIAL PRIMARY KEY,
    company_id UUID REFERENCES companies(id) ON DELETE CASCADE,
    metric_name VARCHAR(255) NOT NULL,
    value JSONB,
    period_type VARCHAR(20) NOT NULL,
    period_start DATE NOT NULL,
    period_end DATE NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_relationships_investor
    ON investor_company_relationships(investor_id);
CREATE INDEX IF NOT EXISTS idx_metric_values_company_name
    ON company_metric_values(company_id, LOWER(metric_name), period_end DESC);
"""


def init_db():
    with get_db_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()


_METRIC_COLUMNS = ["company_id", "metric_name", "value", "period_type",
                   "period_start", "period_end"]


def _to_record(row) -> MetricRecord:
    data = dict(zip(_METRIC_COLUMNS, row))
    data["company_id"] = str(data["company_id"])
    return MetricRecord(**data)


class MetricStore:
    """Read access used by the portfolio resolver and analytics.

    Errors from psycopg2 are not caught here: an unreachable store must
    surface as an error, never as "no data".
    """

    def fetch_relationships(self, investor_id: str) -> list[tuple[Company, str]]:
        """(company, approval_status) pairs for the investor, in relationship order."""
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT c.id, c.name, c.industry, c.stage, r.approval_status
                    FROM investor_company_relationships r
                    JOIN companies c ON c.id = r.company_id
                    WHERE r.investor_id::text = %s
                    ORDER BY r.id
                """, (investor_id,))
                return [
                    (Company(id=str(cid), name=name, industry=industry, stage=stage), status)
                    for cid, name, industry, stage, status in cur.fetchall()
                ]

    def fetch_metric_records(self, company_id: str, metric_name: str) -> list[MetricRecord]:
        """All records for one company whose metric_name matches case-insensitively.

        Newest period_end first.
        """
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT company_id, metric_name, value, period_type,
                           period_start, period_end
                    FROM company_metric_values
                    WHERE company_id = %s AND LOWER(metric_name) = LOWER(%s)
                    ORDER BY period_end DESC
                """, (company_id, metric_name.strip()))
                return [_to_record(row) for row in cur.fetchall()]

    def fetch_metric_history(self, company_ids: list[str], metric_name: str,
                             period_type: str) -> list[MetricRecord]:
        """Records of one metric and period type across companies, oldest first."""
        if not company_ids:
            return []
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT company_id, metric_name, value, period_type,
                           period_start, period_end
                    FROM company_metric_values
                    WHERE company_id::text = ANY(%s)
                      AND LOWER(period_type) = ANY(%s)
                      AND LOWER(metric_name) = LOWER(%s)
                    ORDER BY period_start ASC
                """, (list(company_ids), period_type_aliases(period_type), metric_name.strip()))
                return [_to_record(row) for row in cur.fetchall()]
