"""
Aggregation package for team health.

Turns a channel's scored messages for one week into WeeklyMetrics and
heuristic risk factors.
"""

from .service import MetricsAggregator, metrics_aggregator

__all__ = ["MetricsAggregator", "metrics_aggregator"]
