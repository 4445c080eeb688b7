"""
Team health feature package.

This vertical slice keeps every layer of the team health flow co-located:
domain models, Redis repositories, the scoring/aggregation/insights
pipeline, background jobs and the API router.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as team_health_router  # noqa: F401
from .pipeline.insights.service import InsightEngine, insight_engine  # noqa: F401
from .pipeline.scoring.service import BatchScorer, batch_scorer  # noqa: F401
from .domain.models import Message, WeeklyInsight, WeeklyMetrics  # noqa: F401
