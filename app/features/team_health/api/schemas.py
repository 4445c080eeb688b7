"""
Team health API request/response models.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.features.team_health.domain.models import WeeklyInsight, WeeklyMetrics, WeeklyReport
from app.features.team_health.pipeline.insights.service import WeeklyDashboard


def _metrics_body(metrics: WeeklyMetrics) -> dict[str, Any]:
    body = metrics.to_record()
    body.pop("window_start", None)
    body.pop("window_end", None)
    return body


class ScoreMessagesRequest(BaseModel):
    """Request body for scoring specific messages."""

    message_ids: list[str] = Field(..., min_length=1, max_length=500, description="Message IDs")


class GenerateInsightsRequest(BaseModel):
    """Manual weekly insight trigger."""

    week_start: datetime | None = Field(
        None, description="Monday 00:00 UTC of the target week; defaults to last complete week"
    )
    channel_ids: list[str] | None = Field(None, description="Channels to include; defaults to all active")


class BatchScoreResponse(BaseModel):
    status: str
    processed_count: int
    failed_count: int
    failed_ids: list[str]
    degraded_count: int
    skipped_count: int
    errors: list[str] = Field(default_factory=list)
    duration_ms: float


class GenerationSummaryResponse(BaseModel):
    status: str
    window_start: datetime | None = None
    window_end: datetime | None = None
    succeeded_channels: list[str]
    failed_channels: list[str]
    overall_risk: str | None = None
    insight_source: str | None = None
    insight_outcome: str | None = None
    report_stored: bool = False
    error: str | None = None
    duration_ms: float


class TrendResponse(BaseModel):
    sentiment_delta: float
    activity_delta_pct: float
    engagement_delta_pct: float
    has_previous: bool


class InsightResponse(BaseModel):
    """Response model for one stored weekly insight."""

    id: str
    channel_id: str
    window_start: datetime
    window_end: datetime
    burnout_risk: str
    risk_factors: list[str]
    recommendations: list[str]
    metrics: dict[str, Any]
    trend: TrendResponse
    generated_at: datetime
    generated_by: str
    insight_source: str

    @classmethod
    def from_domain(cls, insight: WeeklyInsight) -> "InsightResponse":
        return cls(
            id=insight.id,
            channel_id=insight.channel_id,
            window_start=insight.window_start,
            window_end=insight.window_end,
            burnout_risk=insight.burnout_risk.value,
            risk_factors=insight.risk_factors,
            recommendations=insight.recommendations,
            metrics=_metrics_body(insight.metrics),
            trend=TrendResponse(**insight.trend.to_record()),
            generated_at=insight.generated_at,
            generated_by=insight.generated_by,
            insight_source=insight.insight_source.value,
        )


class WeeklyReportResponse(BaseModel):
    overall_risk: str
    global_recommendations: list[str]
    channel_ids: list[str]
    generated_at: datetime
    insight_source: str

    @classmethod
    def from_domain(cls, report: WeeklyReport) -> "WeeklyReportResponse":
        return cls(
            overall_risk=report.overall_risk.value,
            global_recommendations=report.global_recommendations,
            channel_ids=report.channel_ids,
            generated_at=report.generated_at,
            insight_source=report.insight_source.value,
        )


class InsightListResponse(BaseModel):
    week_start: datetime
    insights: list[InsightResponse]
    report: WeeklyReportResponse | None = None
    total_count: int


class BurnoutAlertsResponse(BaseModel):
    alerts: list[InsightResponse]
    total_count: int


class DailySentimentResponse(BaseModel):
    date: str
    sentiment: float
    volume: int


class SentimentTrendResponse(BaseModel):
    channel_id: str
    days: int
    points: list[DailySentimentResponse]


class DashboardChannelResponse(BaseModel):
    channel_id: str
    burnout_risk: str
    metrics: dict[str, Any]


class DashboardAggregatesResponse(BaseModel):
    channel_count: int
    message_count: int
    active_user_count: int
    avg_sentiment: float
    thread_reply_ratio: float
    avg_reactions_per_message: float


class WeeklyDashboardResponse(BaseModel):
    """Live per-channel metrics for one week with cross-channel aggregates."""

    week_start: datetime
    week_end: datetime
    overall_risk: str
    channels: list[DashboardChannelResponse]
    aggregates: DashboardAggregatesResponse
    failed_channels: list[str]

    @classmethod
    def from_domain(cls, dashboard: WeeklyDashboard) -> "WeeklyDashboardResponse":
        return cls(
            week_start=dashboard.window_start,
            week_end=dashboard.window_end,
            overall_risk=dashboard.overall_risk.value,
            channels=[
                DashboardChannelResponse(
                    channel_id=snapshot.metrics.channel_id,
                    burnout_risk=snapshot.burnout_risk.value,
                    metrics=_metrics_body(snapshot.metrics),
                )
                for snapshot in dashboard.channels
            ],
            aggregates=DashboardAggregatesResponse(
                channel_count=len(dashboard.channels),
                message_count=dashboard.message_count,
                active_user_count=dashboard.active_user_count,
                avg_sentiment=round(dashboard.avg_sentiment, 4),
                thread_reply_ratio=round(dashboard.thread_reply_ratio, 4),
                avg_reactions_per_message=round(dashboard.avg_reactions_per_message, 4),
            ),
            failed_channels=dashboard.failed_channels,
        )
