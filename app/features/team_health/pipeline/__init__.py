"""
Pipeline components for team health.

Scoring turns raw messages into sentiment scores; aggregation and insights
turn a week of scores into per-channel reports.
"""

__all__ = ["aggregation", "insights", "scoring"]
