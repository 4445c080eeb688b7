"""
Insights package for team health.

Risk classification, week-over-week trends and recommendation authoring
(AI first, rule-based fallback) for weekly channel reports.
"""

from .parser import ParsedInsights, UnparseableReply, parse_insight_reply
from .service import (
    ChannelAssessment,
    DashboardRequestError,
    GenerationSummary,
    InsightContext,
    InsightEngine,
    InsightResult,
    WeeklyDashboard,
    insight_engine,
)

__all__ = [
    "ChannelAssessment",
    "DashboardRequestError",
    "GenerationSummary",
    "InsightContext",
    "InsightEngine",
    "InsightResult",
    "ParsedInsights",
    "UnparseableReply",
    "WeeklyDashboard",
    "insight_engine",
    "parse_insight_reply",
]
