"""
Team health routes.

Manual triggers for scoring and weekly insights plus read endpoints over
the stored reports.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.features.team_health.domain.models import BurnoutRisk
from app.features.team_health.jobs.weekly_insights_job import target_week_for
from app.features.team_health.pipeline.aggregation.service import (
    MetricsAggregator,
    metrics_aggregator,
)
from app.features.team_health.pipeline.insights.service import (
    DashboardRequestError,
    InsightEngine,
    insight_engine,
)
from app.features.team_health.pipeline.scoring.service import BatchScorer, batch_scorer
from app.features.team_health.repository.channel_repository import ChannelDirectoryError
from app.features.team_health.repository.insight_repository import (
    InsightRepository,
    InsightStoreError,
)
from app.features.team_health.repository.message_repository import MessageStoreError
from app.infrastructure.observability.logging import get_logger
from app.utils.time_windows import ensure_utc, is_week_aligned

from .schemas import (
    BatchScoreResponse,
    BurnoutAlertsResponse,
    DailySentimentResponse,
    GenerateInsightsRequest,
    GenerationSummaryResponse,
    InsightListResponse,
    InsightResponse,
    ScoreMessagesRequest,
    SentimentTrendResponse,
    WeeklyDashboardResponse,
    WeeklyReportResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/team-health", tags=["team-health"])


def get_batch_scorer() -> BatchScorer:
    return batch_scorer


def get_insight_engine() -> InsightEngine:
    return insight_engine


def get_metrics_aggregator() -> MetricsAggregator:
    return metrics_aggregator


def get_insight_repository() -> InsightRepository:
    return InsightRepository()


@router.post("/scoring/messages", response_model=BatchScoreResponse)
async def score_messages(
    request: ScoreMessagesRequest, scorer: BatchScorer = Depends(get_batch_scorer)
):
    """Score specific messages, e.g. right after ingestion."""
    summary = await scorer.score_messages(request.message_ids)
    return BatchScoreResponse(**summary.to_dict())


@router.post("/scoring/sweep", response_model=BatchScoreResponse)
async def sweep_unscored(scorer: BatchScorer = Depends(get_batch_scorer)):
    """Score one page of the unscored backlog."""
    summary = await scorer.sweep_unscored()
    return BatchScoreResponse(**summary.to_dict())


@router.post("/insights/generate", response_model=GenerationSummaryResponse)
async def generate_insights(
    request: GenerateInsightsRequest, engine: InsightEngine = Depends(get_insight_engine)
):
    """Manually generate weekly insights; the summary status reports the outcome."""
    week_start = request.week_start or target_week_for(datetime.now(UTC))
    summary = await engine.generate_weekly_insights(
        week_start, channel_ids=request.channel_ids, generated_by="manual"
    )
    return GenerationSummaryResponse(**summary.to_dict())


@router.get("/insights", response_model=InsightListResponse)
async def list_insights(
    week_start: datetime = Query(..., description="Monday 00:00 UTC of the week"),
    channel_id: str | None = Query(default=None, description="Restrict to one channel"),
    repository: InsightRepository = Depends(get_insight_repository),
):
    """Stored insights for one week, newest first."""
    week_start = ensure_utc(week_start)
    if not is_week_aligned(week_start):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="week_start must be a Monday at 00:00 UTC",
        )

    try:
        insights = await repository.list_week_insights(week_start, channel_id=channel_id)
        report = await repository.get_week_report(week_start)
    except InsightStoreError as e:
        logger.error("Failed to list insights", week_start=week_start.isoformat(), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Insight store unavailable"
        )

    return InsightListResponse(
        week_start=week_start,
        insights=[InsightResponse.from_domain(insight) for insight in insights],
        report=WeeklyReportResponse.from_domain(report) if report else None,
        total_count=len(insights),
    )


@router.get("/alerts", response_model=BurnoutAlertsResponse)
async def list_burnout_alerts(
    risk_level: BurnoutRisk | None = Query(default=None, description="Only this risk level"),
    repository: InsightRepository = Depends(get_insight_repository),
):
    """Latest non-low insight per channel over the last four weeks, highest risk first."""
    try:
        alerts = await repository.list_burnout_alerts(datetime.now(UTC), risk_level=risk_level)
    except InsightStoreError as e:
        logger.error("Failed to list burnout alerts", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Insight store unavailable"
        )

    return BurnoutAlertsResponse(
        alerts=[InsightResponse.from_domain(insight) for insight in alerts],
        total_count=len(alerts),
    )


@router.get("/channels/{channel_id}/sentiment-trend", response_model=SentimentTrendResponse)
async def get_sentiment_trend(
    channel_id: str,
    days: int = Query(default=7, ge=1, le=90, description="Trailing days to include (1-90)"),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator),
):
    """Daily average sentiment and volume for one channel."""
    try:
        points = await aggregator.compute_daily_sentiment(channel_id, days=days)
    except MessageStoreError as e:
        logger.error("Failed to compute sentiment trend", channel_id=channel_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Message store unavailable"
        )

    return SentimentTrendResponse(
        channel_id=channel_id,
        days=days,
        points=[
            DailySentimentResponse(date=p.date, sentiment=round(p.sentiment, 4), volume=p.volume)
            for p in points
        ],
    )


@router.get("/dashboard", response_model=WeeklyDashboardResponse)
async def get_weekly_dashboard(
    week_start: datetime = Query(..., description="Monday 00:00 UTC of the week"),
    channel_ids: list[str] | None = Query(default=None, description="Channels to include; defaults to all active"),
    engine: InsightEngine = Depends(get_insight_engine),
):
    """Live weekly metrics per channel plus cross-channel aggregates and risk."""
    try:
        dashboard = await engine.build_dashboard(ensure_utc(week_start), channel_ids=channel_ids)
    except DashboardRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ChannelDirectoryError as e:
        logger.error("Failed to build dashboard", week_start=week_start.isoformat(), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Channel directory unavailable"
        )

    if dashboard.failed_channels and not dashboard.channels:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Message store unavailable"
        )

    return WeeklyDashboardResponse.from_domain(dashboard)
