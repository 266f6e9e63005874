"""
Natural language -> StructuredQuery via an OpenAI chat model.

The model is forced to call a single function whose arguments are the
structured query.  Those arguments are validated against the closed set of
query shapes; anything that fails (no key, network error, timeout, bad JSON,
unknown type, missing parameters) becomes an ``unknown`` query.  parse_query
never raises.
"""

import json
import logging
from typing import Literal

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cache import get_cached_interpretation, set_cached_interpretation
from config import OPENAI_API_KEY, INTERPRETER_MODEL, INTERPRETER_TIMEOUT, DEFAULT_RANKING_LIMIT
from models import StructuredQuery

logger = logging.getLogger(__name__)

GENERIC_UNKNOWN_REASON = "I wasn't able to understand that question."


class InterpretationError(Exception):
    """The model's output could not be turned into a valid StructuredQuery."""


# --- Instruction block ---

SYSTEM_PROMPT = """You are a portfolio analytics assistant for an investment platform. You help investors answer questions about their portfolio companies and metrics.

Available data:
- Company names and details (industry, stage)
- Metric values for each company (metric_name, value, period_type, period_start, period_end)
- Common metrics: Revenue, MRR, ARR, Burn Rate, Runway, Gross Margin, Headcount, Customer Count, etc.

Convert the question into a structured query by calling structure_query.

Query types:
1. metric_lookup: Get a specific metric for a specific company
   params: { companyName: string, metricName: string }
   Example: "What is Stripe's MRR?" -> { "type": "metric_lookup", "params": { "companyName": "Stripe", "metricName": "MRR" } }

2. comparison: Compare a metric across 2+ companies
   params: { companyNames: string[], metricName: string }
   Example: "Compare revenue of Stripe vs Plaid" -> { "type": "comparison", "params": { "companyNames": ["Stripe", "Plaid"], "metricName": "Revenue" } }

3. aggregation: Calculate aggregate stats across portfolio
   params: { metricName: string, aggregation: "average" | "sum" | "median" | "min" | "max", filters?: { industry?: string, stage?: string } }
   Example: "What's the average burn rate?" -> { "type": "aggregation", "params": { "metricName": "Burn Rate", "aggregation": "average" } }

4. ranking: Rank companies by a metric
   params: { metricName: string, order: "top" | "bottom", limit: number, filters?: { industry?: string, stage?: string } }
   Example: "Top 5 companies by revenue" -> { "type": "ranking", "params": { "metricName": "Revenue", "order": "top", "limit": 5 } }

Rules:
- Map informal language to standard metric names (e.g., "burn" -> "Burn Rate", "revenue" -> "Revenue")
- Default to latest period unless a specific period is mentioned
- Default limit to 5 for rankings unless specified
- If the question is ambiguous or you can't map it, use { "type": "unknown", "params": { "reason": "..." } }"""

STRUCTURE_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "structure_query",
            "description": "Return the structured form of an investor's portfolio question.",
            "parameters": {
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": ["metric_lookup", "comparison", "aggregation", "ranking", "unknown"],
                    },
                    "params": {
                        "type": "object",
                        "properties": {
                            "companyName": {"type": "string"},
                            "companyNames": {"type": "array", "items": {"type": "string"}},
                            "metricName": {"type": "string"},
                            "aggregation": {
                                "type": "string",
                                "enum": ["average", "sum", "median", "min", "max"],
                            },
                            "order": {"type": "string", "enum": ["top", "bottom"]},
                            "limit": {"type": "integer"},
                            "filters": {
                                "type": "object",
                                "properties": {
                                    "industry": {"type": "string"},
                                    "stage": {"type": "string"},
                                },
                            },
                            "reason": {"type": "string"},
                        },
                    },
                },
                "required": ["type", "params"],
            },
        },
    }
]


# --- Per-type parameter schemas ---

class _Params(BaseModel):
    model_config = ConfigDict(extra="ignore")


class QueryFilters(_Params):
    industry: str | None = None
    stage: str | None = None


class MetricLookupParams(_Params):
    companyName: str = Field(min_length=1)
    metricName: str = Field(min_length=1)


class ComparisonParams(_Params):
    companyNames: list[str] = Field(min_length=2)
    metricName: str = Field(min_length=1)


class AggregationParams(_Params):
    metricName: str = Field(min_length=1)
    aggregation: Literal["average", "sum", "median", "min", "max"] = "average"
    filters: QueryFilters | None = None


class RankingParams(_Params):
    metricName: str = Field(min_length=1)
    order: Literal["top", "bottom"] = "top"
    limit: int = Field(DEFAULT_RANKING_LIMIT, ge=1)
    filters: QueryFilters | None = None


class UnknownParams(_Params):
    reason: str = GENERIC_UNKNOWN_REASON


PARAMS_SCHEMAS = {
    "metric_lookup": MetricLookupParams,
    "comparison": ComparisonParams,
    "aggregation": AggregationParams,
    "ranking": RankingParams,
    "unknown": UnknownParams,
}


def validate_structured_query(payload) -> StructuredQuery:
    """Check a decoded payload against the closed query alphabet.

    Raises InterpretationError on any deviation; no partial recovery.
    """
    if not isinstance(payload, dict):
        raise InterpretationError("payload is not an object")

    query_type = payload.get("type")
    schema = PARAMS_SCHEMAS.get(query_type) if isinstance(query_type, str) else None
    if schema is None:
        raise InterpretationError(f"unsupported query type: {query_type!r}")

    params = payload.get("params") or {}
    if not isinstance(params, dict):
        raise InterpretationError("params is not an object")
    # JSON nulls mean "not given", so schema defaults apply
    params = {k: v for k, v in params.items() if v is not None}

    try:
        validated = schema.model_validate(params)
    except ValidationError as e:
        raise InterpretationError(f"invalid params for {query_type}: {e.error_count()} error(s)") from e

    return StructuredQuery(type=query_type, params=validated.model_dump(exclude_none=True))


# --- Model call ---

_client: OpenAI | None = None


def _get_client() -> OpenAI:
    global _client
    if _client is None:
        if not OPENAI_API_KEY:
            raise InterpretationError("No AI provider configured.")
        _client = OpenAI(api_key=OPENAI_API_KEY, timeout=INTERPRETER_TIMEOUT, max_retries=1)
    return _client


def _request_structure(raw_text: str) -> dict:
    response = _get_client().chat.completions.create(
        model=INTERPRETER_MODEL,
        temperature=0,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": raw_text},
        ],
        tools=STRUCTURE_TOOLS,
        tool_choice={"type": "function", "function": {"name": "structure_query"}},
    )

    if not response.choices:
        raise InterpretationError("No response from AI")
    tool_calls = response.choices[0].message.tool_calls or []
    if not tool_calls:
        raise InterpretationError("No response from AI")

    try:
        return json.loads(tool_calls[0].function.arguments)
    except (TypeError, ValueError) as e:
        raise InterpretationError("tool arguments are not valid JSON") from e


def parse_query(raw_text: str) -> StructuredQuery:
    """Interpret a raw question. Falls back to an ``unknown`` query on any failure."""
    cached = get_cached_interpretation(raw_text)
    if cached is not None:
        try:
            return validate_structured_query(cached)
        except InterpretationError:
            logger.info("Ignoring stale cached interpretation for %r", raw_text)

    try:
        structured = validate_structured_query(_request_structure(raw_text))
    except Exception as e:
        logger.warning("Interpreter fallback to unknown for %r: %s", raw_text, e)
        return StructuredQuery.unknown(GENERIC_UNKNOWN_REASON)

    if structured.type != "unknown":
        set_cached_interpretation(raw_text, structured.to_dict())
    return structured
