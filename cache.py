"""
Redis-based caching layer for the portfolio query interpreter.

Caches interpreted questions (keyed by normalized question text) so that
repeated questions skip the language-model call.  Executed results are never
cached: they depend on live portfolio data.

Gracefully degrades to no-op if Redis is unavailable.
"""

import hashlib
import json
import os

import redis
from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
CACHE_ENABLED = os.getenv("CACHE_ENABLED", "true").lower() in ("true", "1", "yes")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
CACHE_TTL = int(os.getenv("CACHE_TTL", "7200"))  # default 2 hours
CACHE_VERSION = "v1"  # bump to invalidate all cached entries after prompt changes
CACHE_PREFIX = f"portfolio_query:{CACHE_VERSION}:"

TTL_INTERPRETATION = int(os.getenv("CACHE_TTL_INTERPRET", str(CACHE_TTL)))

# ---------------------------------------------------------------------------
# Redis connection (singleton, lazy)
# ---------------------------------------------------------------------------
_redis_client: redis.Redis | None = None
_redis_available: bool | None = None  # None = not checked yet


def _get_redis() -> redis.Redis | None:
    """Return a Redis client, or None if Redis is unavailable."""
    global _redis_client, _redis_available

    if not CACHE_ENABLED:
        return None

    if _redis_available is False:
        return None

    if _redis_client is not None:
        return _redis_client

    try:
        _redis_client = redis.from_url(REDIS_URL, decode_responses=True)
        _redis_client.ping()
        _redis_available = True
        return _redis_client
    except redis.RedisError:
        _redis_available = False
        _redis_client = None
        return None


# ---------------------------------------------------------------------------
# Key helpers
# ---------------------------------------------------------------------------

def _normalize_question(question: str) -> str:
    """Normalize question for consistent cache keys."""
    return " ".join(question.lower().strip().split())


def _make_key(layer: str, *parts) -> str:
    """Build a namespaced Redis key from a deterministic hash of the parts."""
    raw = json.dumps(parts, sort_keys=True, default=str)
    digest = hashlib.sha256(raw.encode()).hexdigest()[:16]
    return f"{CACHE_PREFIX}{layer}:{digest}"


# ---------------------------------------------------------------------------
# Core cache operations
# ---------------------------------------------------------------------------

def cache_get(key: str) -> dict | None:
    """Get a cached value. Returns None on miss or error."""
    r = _get_redis()
    if r is None:
        return None
    try:
        raw = r.get(key)
        if raw is None:
            return None
        return json.loads(raw)
    except (redis.RedisError, ValueError):
        return None


def cache_set(key: str, value, ttl: int = CACHE_TTL) -> bool:
    """Set a cached value with TTL. Returns True on success."""
    r = _get_redis()
    if r is None:
        return False
    try:
        r.setex(key, ttl, json.dumps(value, default=str))
        return True
    except (redis.RedisError, TypeError):
        return False


# ---------------------------------------------------------------------------
# Interpretation layer
# ---------------------------------------------------------------------------

def get_cached_interpretation(question: str) -> dict | None:
    """Check cache for an interpreted question ({type, params})."""
    return cache_get(_make_key("interpret", _normalize_question(question)))


def set_cached_interpretation(question: str, structured: dict) -> bool:
    """Cache an interpreted question."""
    return cache_set(_make_key("interpret", _normalize_question(question)), structured, TTL_INTERPRETATION)


# ---------------------------------------------------------------------------
# Cache management
# ---------------------------------------------------------------------------

def cache_stats() -> dict:
    """Return cache statistics."""
    r = _get_redis()
    if r is None:
        return {"enabled": CACHE_ENABLED, "connected": False}

    try:
        info = r.info("stats")
        memory = r.info("memory")
        interpret_keys = len(r.keys(f"{CACHE_PREFIX}interpret:*"))
        return {
            "enabled": CACHE_ENABLED,
            "connected": True,
            "redis_url": REDIS_URL,
            "total_keys": interpret_keys,
            "layers": {"interpretations": interpret_keys},
            "ttl": {"interpretation": TTL_INTERPRETATION},
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "memory_used_mb": round(memory.get("used_memory", 0) / 1024 / 1024, 2),
        }
    except redis.RedisError as e:
        return {"enabled": CACHE_ENABLED, "connected": False, "error": str(e)}


def cache_clear(layer: str | None = None) -> dict:
    """Clear cache keys. If layer is specified, clear only that layer."""
    r = _get_redis()
    if r is None:
        return {"cleared": 0, "error": "Redis not available"}

    pattern = f"{CACHE_PREFIX}{layer}:*" if layer else f"{CACHE_PREFIX}*"
    try:
        keys = r.keys(pattern)
        if keys:
            r.delete(*keys)
        return {"cleared": len(keys), "pattern": pattern}
    except redis.RedisError as e:
        return {"cleared": 0, "error": str(e)}
