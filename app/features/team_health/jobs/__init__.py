"""
Job runners for the team health feature.
"""

from .sentiment_sweep_job import sentiment_sweep_job, start_sentiment_sweep_scheduler
from .weekly_insights_job import weekly_insights_job, start_weekly_insights_scheduler

__all__ = [
    "sentiment_sweep_job",
    "start_sentiment_sweep_scheduler",
    "weekly_insights_job",
    "start_weekly_insights_scheduler",
]
