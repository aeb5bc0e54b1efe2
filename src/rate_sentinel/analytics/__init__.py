"""Read-side aggregation over stored rate history."""

from rate_sentinel.analytics.catalog import BOOTSTRAP_SYMBOLS, SEARCH_LIMIT
from rate_sentinel.analytics.engine import AggregationEngine

__all__ = ["AggregationEngine", "BOOTSTRAP_SYMBOLS", "SEARCH_LIMIT"]
