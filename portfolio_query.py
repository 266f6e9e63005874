"""
Portfolio Query Engine

Natural language question -> structured query (language model) -> executed
against the investor's portfolio metrics.

Usage:
  python portfolio_query.py --investor <investor-id>
"""

import argparse
import logging
import time

from guardrails import validate_question
from metric_store import MetricStore
from query_executor import execute_structured_query
from query_parser import parse_query
from rate_limit import query_limiter, rate_limited

logger = logging.getLogger(__name__)

# --- Colors for terminal output ---
COLORS = {
    "green": "\033[92m",
    "blue": "\033[94m",
    "yellow": "\033[93m",
    "cyan": "\033[96m",
    "magenta": "\033[95m",
    "bold": "\033[1m",
    "dim": "\033[2m",
    "reset": "\033[0m",
}

QUERY_TYPE_LABELS = {
    "metric_lookup": f"{COLORS['blue']}[METRIC LOOKUP]{COLORS['reset']}",
    "comparison": f"{COLORS['magenta']}[COMPARISON]{COLORS['reset']}",
    "aggregation": f"{COLORS['green']}[AGGREGATION]{COLORS['reset']}",
    "ranking": f"{COLORS['cyan']}[RANKING]{COLORS['reset']}",
    "unknown": f"{COLORS['yellow']}[UNKNOWN]{COLORS['reset']}",
}


@rate_limited(query_limiter, lambda investor_id, question: f"query:{investor_id}")
def interpret_question(investor_id: str, question: str):
    """Rate-limited interpreter call, keyed per investor."""
    return parse_query(question)


def portfolio_query(question: str, investor_id: str, *, store=None) -> dict:
    """
    Main entry point. Validates the question, interprets it, and executes the
    structured query against the investor's portfolio.

    Raises RateLimitExceeded when the investor has used up the current window.
    Store errors propagate.

    Returns dict with keys: type, answer, data?, chartData?, warnings?,
        structured_query, query_rejected, response_time
    """
    start = time.time()

    is_valid, rejection_reason = validate_question(question)
    if not is_valid:
        return {
            "type": None,
            "answer": rejection_reason,
            "structured_query": None,
            "query_rejected": True,
            "response_time": round(time.time() - start, 2),
        }

    structured = interpret_question(investor_id, question.strip())
    result = execute_structured_query(structured, store or MetricStore(), investor_id)

    return {
        **result.to_dict(),
        "structured_query": structured.to_dict(),
        "query_rejected": False,
        "response_time": round(time.time() - start, 2),
    }


# --- Interactive CLI ---

def print_header():
    print(f"\n{COLORS['bold']}{'='*60}")
    print("  Portfolio Query Engine")
    print(f"{'='*60}{COLORS['reset']}")
    print(f"{COLORS['dim']}Query types: metric_lookup | comparison | aggregation | ranking")
    print(f"Type 'quit' or 'exit' to stop.{COLORS['reset']}\n")


def main():
    parser = argparse.ArgumentParser(description="Ask questions about your portfolio metrics.")
    parser.add_argument("--investor", required=True, help="Investor id whose portfolio to query")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    store = MetricStore()
    print_header()

    while True:
        try:
            question = input(f"{COLORS['cyan']}Question: {COLORS['reset']}").strip()
        except (EOFError, KeyboardInterrupt):
            print(f"\n{COLORS['dim']}Goodbye.{COLORS['reset']}")
            break

        if not question:
            continue
        if question.lower() in ("quit", "exit", "q"):
            print(f"{COLORS['dim']}Goodbye.{COLORS['reset']}")
            break

        print(f"\n{COLORS['dim']}Interpreting question...{COLORS['reset']}")

        try:
            result = portfolio_query(question, args.investor, store=store)
        except Exception as e:
            logger.debug("Query failed", exc_info=True)
            print(f"\n{COLORS['yellow']}Error: {e}{COLORS['reset']}\n")
            continue

        if result.get("query_rejected"):
            print(f"\n{COLORS['yellow']}{result['answer']}{COLORS['reset']}\n")
            continue

        label = QUERY_TYPE_LABELS.get(result["type"], result["type"])
        print(f"\n{COLORS['bold']}Type:{COLORS['reset']} {label}")
        params = result["structured_query"]["params"]
        if params:
            extracted = ", ".join(f"{k}={v}" for k, v in params.items())
            print(f"{COLORS['dim']}Extracted: {extracted}{COLORS['reset']}")

        print(f"\n{COLORS['bold']}Answer:{COLORS['reset']}")
        print(result["answer"])

        print(f"\n{COLORS['dim']}({result['response_time']}s){COLORS['reset']}")
        print(f"\n{'-'*60}\n")


if __name__ == "__main__":
    main()
