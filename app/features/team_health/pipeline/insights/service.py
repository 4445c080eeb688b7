"""
Weekly insight generation.

Combines current and previous week metrics into burnout risk, trend deltas
and manager-facing recommendations, then persists one WeeklyInsight per
channel plus a workspace WeeklyReport. Recommendations come from the AI
provider when it is reachable and answer cleanly; otherwise the rule-based
generator is used, which always produces at least one recommendation.
"""

from __future__ import annotations

import asyncio
import json
import math
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.config import RiskThresholds, settings
from app.features.team_health.domain.models import (
    BurnoutRisk,
    Channel,
    InsightSource,
    Outcome,
    RunStatus,
    TrendAnalysis,
    WeeklyInsight,
    WeeklyMetrics,
    WeeklyReport,
)
from app.features.team_health.pipeline.aggregation.service import (
    MetricsAggregator,
    metrics_aggregator,
)
from app.features.team_health.pipeline.scoring.circuit_breaker import (
    Admission,
    CircuitBreaker,
    ai_circuit_breaker,
)
from app.features.team_health.repository.channel_repository import ChannelRepository
from app.features.team_health.repository.insight_repository import InsightRepository
from app.infrastructure.observability.logging import get_logger
from app.services.openai_service import openai_service
from app.utils.time_windows import (
    ensure_utc,
    is_week_aligned,
    previous_week_start,
    window_end_for,
)

from .parser import ParsedInsights, UnparseableReply, parse_insight_reply

logger = get_logger(__name__)

MAX_RISK_POINTS = 10
SENTIMENT_DELTA_LIMIT = 2.0
PERCENT_CHANGE_FLOOR = -100.0
PERCENT_CHANGE_CEILING = 1000.0
SIGNIFICANT_SENTIMENT_DELTA = 0.2
SIGNIFICANT_ACTIVITY_DROP_PCT = -50.0

INSIGHTS_SYSTEM_MESSAGE = """You are an organizational health advisor helping engineering managers support their teams.

You receive weekly communication metrics per channel: average sentiment (-1 to 1), message volume, active users, thread reply ratio, reactions per message, burnout risk and week-over-week trend.

Respond with ONLY a JSON object in this exact format:
{"globalInsights": ["..."], "channelInsights": {"<channelId>": ["..."]}}

Rules:
- At most 5 globalInsights and at most 4 insights per channel
- Each insight is one concrete, actionable sentence for a manager
- Prioritize high burnout risk channels and sharp negative trends
- Use the exact channelId values from the input
- No prose outside the JSON object"""


class DashboardRequestError(ValueError):
    """Dashboard asked for a week or channels that cannot be shown."""


@dataclass(slots=True)
class ChannelAssessment:
    channel: Channel
    metrics: WeeklyMetrics
    burnout_risk: BurnoutRisk
    trend: TrendAnalysis
    previous: WeeklyMetrics | None = None


@dataclass(slots=True)
class InsightContext:
    window_start: datetime
    window_end: datetime
    overall_risk: BurnoutRisk
    channels: list[ChannelAssessment]


@dataclass(slots=True)
class InsightResult:
    global_recommendations: list[str]
    channel_recommendations: dict[str, list[str]]
    source: InsightSource
    outcome: Outcome = Outcome.SUCCESS
    reason: str | None = None


@dataclass(slots=True)
class GenerationSummary:
    status: RunStatus
    window_start: datetime | None = None
    window_end: datetime | None = None
    succeeded_channels: list[str] = field(default_factory=list)
    failed_channels: list[str] = field(default_factory=list)
    overall_risk: BurnoutRisk | None = None
    insight_source: InsightSource | None = None
    insight_outcome: Outcome | None = None
    report_stored: bool = False
    error: str | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "window_start": self.window_start.isoformat() if self.window_start else None,
            "window_end": self.window_end.isoformat() if self.window_end else None,
            "succeeded_channels": list(self.succeeded_channels),
            "failed_channels": list(self.failed_channels),
            "overall_risk": self.overall_risk.value if self.overall_risk else None,
            "insight_source": self.insight_source.value if self.insight_source else None,
            "insight_outcome": self.insight_outcome.value if self.insight_outcome else None,
            "report_stored": self.report_stored,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass(slots=True)
class ChannelSnapshot:
    metrics: WeeklyMetrics
    burnout_risk: BurnoutRisk


@dataclass(slots=True)
class WeeklyDashboard:
    """Live cross-channel view of one week, computed from scored messages."""

    window_start: datetime
    window_end: datetime
    channels: list[ChannelSnapshot] = field(default_factory=list)
    failed_channels: list[str] = field(default_factory=list)
    overall_risk: BurnoutRisk = BurnoutRisk.LOW

    @property
    def message_count(self) -> int:
        return sum(c.metrics.message_count for c in self.channels)

    @property
    def active_user_count(self) -> int:
        # Per-channel counts summed; a person active in two channels counts twice
        return sum(c.metrics.active_user_count for c in self.channels)

    def _mean(self, attr: str) -> float:
        if not self.channels:
            return 0.0
        return sum(getattr(c.metrics, attr) for c in self.channels) / len(self.channels)

    @property
    def avg_sentiment(self) -> float:
        return self._mean("avg_sentiment")

    @property
    def thread_reply_ratio(self) -> float:
        return self._mean("thread_reply_ratio")

    @property
    def avg_reactions_per_message(self) -> float:
        return self._mean("avg_reactions_per_message")


def _percent_change(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100.0


def _clamp(value: float, low: float, high: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return max(low, min(high, value))


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _names(assessments: list[ChannelAssessment], limit: int = 3) -> str:
    names = [f"#{a.channel.display_name}" for a in assessments[:limit]]
    if len(assessments) > limit:
        names.append(f"{len(assessments) - limit} more")
    return ", ".join(names)


class InsightEngine:
    def __init__(
        self,
        aggregator: MetricsAggregator | None = None,
        channel_repository: ChannelRepository | None = None,
        insight_repository: InsightRepository | None = None,
        service=None,
        breaker: CircuitBreaker | None = None,
        thresholds: RiskThresholds | None = None,
        use_ai: bool | None = None,
        channel_concurrency: int | None = None,
        group_pause_seconds: float | None = None,
        aggregation_timeout_seconds: float | None = None,
        generation_timeout_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.aggregator = aggregator or metrics_aggregator
        self.channel_repository = channel_repository or ChannelRepository()
        self.insight_repository = insight_repository or InsightRepository()
        self.service = service or openai_service
        self.breaker = breaker or ai_circuit_breaker
        self.thresholds = thresholds or settings.get_risk_thresholds()
        self.use_ai = use_ai
        self.channel_concurrency = max(1, channel_concurrency or settings.INSIGHT_CHANNEL_CONCURRENCY)
        self.group_pause_seconds = (
            group_pause_seconds
            if group_pause_seconds is not None
            else settings.INSIGHT_GROUP_PAUSE_SECONDS
        )
        self.aggregation_timeout_seconds = (
            aggregation_timeout_seconds or settings.get_aggregation_config()["timeout_seconds"]
        )
        self.generation_timeout_seconds = (
            generation_timeout_seconds or settings.INSIGHT_GENERATION_TIMEOUT_SECONDS
        )
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Risk and trend
    # ------------------------------------------------------------------

    def channel_risk_points(self, metrics: WeeklyMetrics) -> int:
        """Weighted 0-10 point score; higher means more burnout signals."""
        t = self.thresholds
        points = 0

        if metrics.avg_sentiment < t.severe_negative_sentiment:
            points += t.severe_negative_points
        elif metrics.avg_sentiment < t.negative_sentiment:
            points += t.negative_points

        # Engagement only means something when people are talking
        if metrics.message_count > 0:
            if metrics.thread_reply_ratio < t.very_low_thread_ratio:
                points += t.very_low_thread_points
            elif metrics.thread_reply_ratio < t.low_thread_ratio:
                points += t.low_thread_points

            if metrics.avg_reactions_per_message < t.low_reactions_per_message:
                points += t.low_reactions_points

        if metrics.message_count < t.low_volume_messages:
            points += t.low_volume_points

        if metrics.negative_ratio >= t.high_negative_ratio:
            points += t.high_negative_ratio_points
        elif metrics.negative_ratio >= t.elevated_negative_ratio:
            points += t.elevated_negative_ratio_points

        return min(points, MAX_RISK_POINTS)

    def classify_channel_risk(self, metrics: WeeklyMetrics) -> BurnoutRisk:
        points = self.channel_risk_points(metrics)
        if points >= self.thresholds.high_risk_score:
            return BurnoutRisk.HIGH
        if points >= self.thresholds.medium_risk_score:
            return BurnoutRisk.MEDIUM
        return BurnoutRisk.LOW

    def classify_overall_risk(self, risks: list[BurnoutRisk]) -> BurnoutRisk:
        if not risks:
            return BurnoutRisk.LOW

        t = self.thresholds
        total = len(risks)
        high = sum(1 for risk in risks if risk == BurnoutRisk.HIGH) / total
        medium = sum(1 for risk in risks if risk == BurnoutRisk.MEDIUM) / total

        if high > t.overall_high_fraction or (
            high > t.overall_mixed_high_fraction and medium > t.overall_mixed_medium_fraction
        ):
            return BurnoutRisk.HIGH
        if medium > t.overall_medium_fraction or high > t.overall_any_high_fraction:
            return BurnoutRisk.MEDIUM
        return BurnoutRisk.LOW

    def compute_trend(
        self, current: WeeklyMetrics, previous: WeeklyMetrics | None
    ) -> TrendAnalysis:
        if previous is None:
            return TrendAnalysis()

        sentiment_delta = current.avg_sentiment - previous.avg_sentiment
        activity = _percent_change(current.message_count, previous.message_count)
        engagement = _percent_change(current.engagement_score, previous.engagement_score)

        return TrendAnalysis(
            sentiment_delta=_clamp(sentiment_delta, -SENTIMENT_DELTA_LIMIT, SENTIMENT_DELTA_LIMIT),
            activity_delta_pct=_clamp(activity, PERCENT_CHANGE_FLOOR, PERCENT_CHANGE_CEILING),
            engagement_delta_pct=_clamp(engagement, PERCENT_CHANGE_FLOOR, PERCENT_CHANGE_CEILING),
            has_previous=True,
        )

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def _ai_enabled(self) -> bool:
        if self.use_ai is not None:
            return self.use_ai
        return settings.openai_configured()

    async def generate_insights(self, context: InsightContext) -> InsightResult:
        """AI-authored recommendations, degrading to the rule-based set."""
        if not self._ai_enabled():
            return self._degrade(context, "ai provider not configured")

        admission = await self.breaker.allow_request()
        if admission is None:
            logger.warning("Insight circuit open, using rule-based insights")
            return self._degrade(context, "circuit_open")

        try:
            return await self._author_insights(context, admission)
        finally:
            await self.breaker.release(admission)

    async def _author_insights(self, context: InsightContext, admission: Admission) -> InsightResult:
        try:
            raw = await asyncio.wait_for(
                self.service.complete(
                    INSIGHTS_SYSTEM_MESSAGE,
                    self._build_prompt(context),
                    model=settings.OPENAI_INSIGHTS_MODEL,
                ),
                timeout=self.generation_timeout_seconds,
            )
        except TimeoutError:
            reason = f"timeout after {self.generation_timeout_seconds}s"
            await self.breaker.record_failure(admission, reason)
            logger.warning("Insight generation timed out", timeout_seconds=self.generation_timeout_seconds)
            return self._degrade(context, reason, Outcome.FAILED)
        except Exception as e:
            await self.breaker.record_failure(admission, str(e))
            logger.warning(
                "Insight generation call failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._degrade(context, f"ai call failed: {e}", Outcome.FAILED)

        parsed = parse_insight_reply(raw)
        if isinstance(parsed, UnparseableReply):
            await self.breaker.record_failure(admission, f"unparseable reply: {parsed.reason}")
            logger.warning(
                "Insight reply unparseable", reason=parsed.reason, excerpt=parsed.excerpt[:80]
            )
            return self._degrade(context, f"unparseable reply: {parsed.reason}", Outcome.FAILED)

        await self.breaker.record_success(admission)
        return self._merge_ai_insights(context, parsed)

    def _degrade(
        self, context: InsightContext, reason: str, outcome: Outcome = Outcome.DEGRADED
    ) -> InsightResult:
        result = self.generate_rule_based_insights(context)
        result.outcome = outcome
        result.reason = reason
        return result

    def _merge_ai_insights(self, context: InsightContext, parsed: ParsedInsights) -> InsightResult:
        rule_based = self.generate_rule_based_insights(context)
        channel_recommendations: dict[str, list[str]] = {}
        missing = 0
        for assessment in context.channels:
            channel_id = assessment.channel.id
            authored = parsed.channel_insights.get(channel_id)
            if authored:
                channel_recommendations[channel_id] = authored[: settings.MAX_CHANNEL_RECOMMENDATIONS]
            else:
                missing += 1
                channel_recommendations[channel_id] = rule_based.channel_recommendations[channel_id]

        logger.info(
            "AI insights generated",
            strategy=parsed.strategy,
            global_count=len(parsed.global_insights),
            channels_filled_by_rules=missing,
        )
        return InsightResult(
            global_recommendations=parsed.global_insights[: settings.MAX_GLOBAL_RECOMMENDATIONS],
            channel_recommendations=channel_recommendations,
            source=InsightSource.AI,
            outcome=Outcome.SUCCESS,
        )

    def _build_prompt(self, context: InsightContext) -> str:
        payload = {
            "weekStart": context.window_start.isoformat(),
            "weekEnd": context.window_end.isoformat(),
            "overallRisk": context.overall_risk.value,
            "channels": [
                {
                    "channelId": a.channel.id,
                    "name": a.channel.display_name,
                    "burnoutRisk": a.burnout_risk.value,
                    "avgSentiment": round(a.metrics.avg_sentiment, 3),
                    "messageCount": a.metrics.message_count,
                    "activeUsers": a.metrics.active_user_count,
                    "threadReplyRatio": round(a.metrics.thread_reply_ratio, 3),
                    "reactionsPerMessage": round(a.metrics.avg_reactions_per_message, 3),
                    "riskFactors": a.metrics.risk_factors,
                    "trend": a.trend.to_record() if a.trend.has_previous else None,
                }
                for a in context.channels
            ],
        }
        return "Weekly team metrics:\n" + json.dumps(payload, indent=2)

    def generate_rule_based_insights(self, context: InsightContext) -> InsightResult:
        """Deterministic recommendations; never empty."""
        t = self.thresholds
        channels = context.channels
        high = [a for a in channels if a.burnout_risk == BurnoutRisk.HIGH]
        medium = [a for a in channels if a.burnout_risk == BurnoutRisk.MEDIUM]
        low_engagement = [
            a
            for a in channels
            if a.metrics.message_count > 0 and a.metrics.thread_reply_ratio < t.low_thread_ratio
        ]
        declining = [
            a
            for a in channels
            if a.trend.has_previous and a.trend.sentiment_delta <= -SIGNIFICANT_SENTIMENT_DELTA
        ]
        improving = [
            a
            for a in channels
            if a.trend.has_previous and a.trend.sentiment_delta >= SIGNIFICANT_SENTIMENT_DELTA
        ]
        quieter = [
            a
            for a in channels
            if a.trend.has_previous and a.trend.activity_delta_pct <= SIGNIFICANT_ACTIVITY_DROP_PCT
        ]
        silent = [a for a in channels if a.metrics.message_count == 0]

        global_recommendations: list[str] = []
        if high:
            global_recommendations.append(
                f"{_plural(len(high), 'channel')} at high burnout risk ({_names(high)}): "
                "schedule 1:1 check-ins with those teams this week."
            )
        if context.overall_risk == BurnoutRisk.HIGH:
            global_recommendations.append(
                "Overall team risk is high: review deadlines and meeting load before adding new work."
            )
        if declining:
            global_recommendations.append(
                f"Sentiment dropped sharply in {_names(declining)}: look for recent changes in "
                "scope, staffing or incidents."
            )
        if medium:
            global_recommendations.append(
                f"{_plural(len(medium), 'channel')} at medium risk ({_names(medium)}): "
                "monitor workload and check in at the next team meeting."
            )
        if low_engagement:
            global_recommendations.append(
                f"Collaboration is low in {_names(low_engagement)}: encourage threaded "
                "discussions and async reviews."
            )
        if quieter:
            global_recommendations.append(
                f"Activity fell by half or more in {_names(quieter)}: confirm the team is not blocked."
            )
        if silent:
            global_recommendations.append(
                f"{_plural(len(silent), 'channel')} had no scored activity this week: "
                "confirm they are still in use."
            )
        if improving:
            global_recommendations.append(
                f"Sentiment improved in {_names(improving)}: recognize what is working and share it."
            )
        if not global_recommendations:
            global_recommendations.append(
                "Team health looks stable this week: keep regular check-ins and recognize good work."
            )

        return InsightResult(
            global_recommendations=global_recommendations[: settings.MAX_GLOBAL_RECOMMENDATIONS],
            channel_recommendations={
                a.channel.id: self._channel_recommendations(a)[: settings.MAX_CHANNEL_RECOMMENDATIONS]
                for a in channels
            },
            source=InsightSource.RULE_BASED,
        )

    def _channel_recommendations(self, assessment: ChannelAssessment) -> list[str]:
        t = self.thresholds
        metrics = assessment.metrics
        trend = assessment.trend
        items: list[str] = []

        if metrics.message_count == 0:
            return ["No scored activity this week: confirm the channel is still the team's main space."]

        if assessment.burnout_risk == BurnoutRisk.HIGH:
            items.append("Schedule 1:1 check-ins with the most active members this week.")
        if metrics.avg_sentiment < t.severe_negative_sentiment:
            items.append("Tone is persistently negative: ask about blockers and workload directly.")
        elif metrics.negative_ratio >= t.elevated_negative_ratio:
            items.append("A large share of messages is negative: review recent pressure points.")
        if trend.has_previous and trend.sentiment_delta <= -SIGNIFICANT_SENTIMENT_DELTA:
            items.append("Sentiment declined versus last week: follow up on what changed.")
        if metrics.thread_reply_ratio < t.low_thread_ratio:
            items.append("Encourage threaded replies to keep discussions collaborative.")
        if metrics.avg_reactions_per_message < t.low_reactions_per_message:
            items.append("Acknowledge contributions more visibly; reactions are rare.")
        if metrics.message_count < t.low_volume_messages:
            items.append("Volume is very low: check whether conversation moved elsewhere.")
        if trend.has_previous and trend.activity_delta_pct <= SIGNIFICANT_ACTIVITY_DROP_PCT:
            items.append("Activity dropped sharply: make sure the team is not blocked.")

        if not items:
            items.append("Healthy week: keep current rituals and recognize contributors.")
        return items

    # ------------------------------------------------------------------
    # Weekly run
    # ------------------------------------------------------------------

    async def generate_weekly_insights(
        self,
        window_start: datetime,
        channel_ids: list[str] | None = None,
        generated_by: str = "system",
        now: datetime | None = None,
    ) -> GenerationSummary:
        """
        Build and persist weekly insights for one Monday-aligned week.

        Never raises. Invalid input yields an error summary without touching
        storage; per-channel failures yield a partial summary.
        """
        started = time.perf_counter()
        summary = GenerationSummary(status=RunStatus.ERROR)
        now = ensure_utc(now) if now else datetime.now(UTC)

        try:
            window_start = ensure_utc(window_start)
            if not is_week_aligned(window_start):
                return self._reject(summary, started, "week start must be Monday 00:00 UTC")
            if window_start > now:
                return self._reject(summary, started, "week start is in the future")

            window_end = window_end_for(window_start)
            summary.window_start = window_start
            summary.window_end = window_end

            channels, error = await self._resolve_channels(channel_ids)
            if error:
                return self._reject(summary, started, error)

            logger.info(
                "Generating weekly insights",
                window_start=window_start.isoformat(),
                channel_count=len(channels),
                generated_by=generated_by,
            )

            current, failures = await self._compute_metrics(channels, window_start, window_end)
            for channel_id, reason in failures.items():
                summary.failed_channels.append(channel_id)
                logger.warning("Channel metrics failed", channel_id=channel_id, error=reason)

            if not current:
                return self._reject(summary, started, "metrics failed for every channel")

            measured = [c for c in channels if c.id in current]
            previous_start = previous_week_start(window_start)
            previous, previous_failures = await self._compute_metrics(
                measured, previous_start, window_end_for(previous_start)
            )
            if previous_failures:
                logger.info(
                    "Previous week metrics unavailable, skipping trend",
                    channel_ids=sorted(previous_failures),
                )

            assessments = [
                ChannelAssessment(
                    channel=channel,
                    metrics=current[channel.id],
                    burnout_risk=self.classify_channel_risk(current[channel.id]),
                    trend=self.compute_trend(current[channel.id], previous.get(channel.id)),
                    previous=previous.get(channel.id),
                )
                for channel in measured
            ]
            overall_risk = self.classify_overall_risk([a.burnout_risk for a in assessments])
            summary.overall_risk = overall_risk

            context = InsightContext(
                window_start=window_start,
                window_end=window_end,
                overall_risk=overall_risk,
                channels=assessments,
            )
            insights = await self.generate_insights(context)
            summary.insight_source = insights.source
            summary.insight_outcome = insights.outcome

            await self._persist(summary, context, insights, generated_by, now)

        except Exception as e:
            logger.error(
                "Weekly insight generation failed",
                error=str(e),
                error_type=type(e).__name__,
                window_start=summary.window_start.isoformat() if summary.window_start else None,
            )
            summary.status = RunStatus.ERROR
            summary.error = str(e)
            summary.duration_ms = round((time.perf_counter() - started) * 1000, 2)
            return summary

        if not summary.failed_channels:
            summary.status = RunStatus.SUCCESS
        elif summary.succeeded_channels:
            summary.status = RunStatus.PARTIAL
        else:
            summary.status = RunStatus.ERROR
            summary.error = "no insights were stored"

        summary.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info("Weekly insight generation completed", **summary.to_dict())
        return summary

    async def build_dashboard(
        self,
        window_start: datetime,
        channel_ids: list[str] | None = None,
        now: datetime | None = None,
    ) -> WeeklyDashboard:
        """
        Per-channel metrics and cross-channel aggregates for one week,
        computed live rather than read from stored insights.

        Raises DashboardRequestError for a misaligned or future week and for
        unknown channel ids.
        """
        window_start = ensure_utc(window_start)
        now = ensure_utc(now) if now else datetime.now(UTC)
        if not is_week_aligned(window_start):
            raise DashboardRequestError("week start must be Monday 00:00 UTC")
        if window_start > now:
            raise DashboardRequestError("week start is in the future")

        dashboard = WeeklyDashboard(window_start=window_start, window_end=window_end_for(window_start))

        channels, error = await self._resolve_channels(channel_ids)
        if error:
            if channel_ids is None:
                return dashboard
            raise DashboardRequestError(error)

        metrics, failures = await self._compute_metrics(channels, window_start, dashboard.window_end)
        dashboard.failed_channels = [c.id for c in channels if c.id in failures]
        dashboard.channels = [
            ChannelSnapshot(metrics=metrics[c.id], burnout_risk=self.classify_channel_risk(metrics[c.id]))
            for c in channels
            if c.id in metrics
        ]
        dashboard.overall_risk = self.classify_overall_risk([c.burnout_risk for c in dashboard.channels])

        if failures:
            logger.warning(
                "Dashboard metrics incomplete",
                window_start=window_start.isoformat(),
                failed_channels=dashboard.failed_channels,
            )
        return dashboard

    def _reject(self, summary: GenerationSummary, started: float, error: str) -> GenerationSummary:
        logger.warning("Weekly insight generation rejected", error=error)
        summary.status = RunStatus.ERROR
        summary.error = error
        summary.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        return summary

    async def _resolve_channels(
        self, channel_ids: list[str] | None
    ) -> tuple[list[Channel], str | None]:
        if channel_ids is None:
            channels = await self.channel_repository.list_active_channels()
            if not channels:
                return [], "no active channels"
            return channels, None

        requested = list(dict.fromkeys(cid for cid in channel_ids if cid))
        if not requested:
            return [], "no channels requested"

        channels = []
        unknown = []
        for channel_id in requested:
            channel = await self.channel_repository.get_channel(channel_id)
            if channel is None:
                unknown.append(channel_id)
            else:
                channels.append(channel)
        if unknown:
            return [], f"unknown channel ids: {', '.join(unknown)}"
        return channels, None

    async def _compute_metrics(
        self, channels: list[Channel], window_start: datetime, window_end: datetime
    ) -> tuple[dict[str, WeeklyMetrics], dict[str, str]]:
        """Per-channel metrics in bounded groups; failures are returned, not raised."""
        results: dict[str, WeeklyMetrics] = {}
        failures: dict[str, str] = {}
        groups = [
            channels[i : i + self.channel_concurrency]
            for i in range(0, len(channels), self.channel_concurrency)
        ]

        for index, group in enumerate(groups):
            outcomes = await asyncio.gather(
                *[
                    asyncio.wait_for(
                        self.aggregator.compute_weekly_metrics(channel.id, window_start, window_end),
                        timeout=self.aggregation_timeout_seconds,
                    )
                    for channel in group
                ],
                return_exceptions=True,
            )
            for channel, outcome in zip(group, outcomes):
                if isinstance(outcome, TimeoutError):
                    failures[channel.id] = f"aggregation timed out after {self.aggregation_timeout_seconds}s"
                elif isinstance(outcome, BaseException):
                    failures[channel.id] = f"{type(outcome).__name__}: {outcome}"
                else:
                    results[channel.id] = outcome

            if index < len(groups) - 1 and self.group_pause_seconds > 0:
                await self._sleep(self.group_pause_seconds)

        return results, failures

    async def _persist(
        self,
        summary: GenerationSummary,
        context: InsightContext,
        insights: InsightResult,
        generated_by: str,
        generated_at: datetime,
    ) -> None:
        for assessment in context.channels:
            channel_id = assessment.channel.id
            insight = WeeklyInsight(
                id=WeeklyInsight.build_id(channel_id, context.window_start),
                channel_id=channel_id,
                window_start=context.window_start,
                window_end=context.window_end,
                metrics=assessment.metrics,
                burnout_risk=assessment.burnout_risk,
                risk_factors=list(assessment.metrics.risk_factors),
                recommendations=insights.channel_recommendations.get(channel_id, []),
                trend=assessment.trend,
                generated_at=generated_at,
                generated_by=generated_by,
                insight_source=insights.source,
            )
            try:
                await self.insight_repository.upsert_insight(insight)
                summary.succeeded_channels.append(channel_id)
            except Exception as e:
                logger.warning(
                    "Failed to store weekly insight",
                    channel_id=channel_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                summary.failed_channels.append(channel_id)

        report = WeeklyReport(
            window_start=context.window_start,
            window_end=context.window_end,
            overall_risk=context.overall_risk,
            global_recommendations=insights.global_recommendations,
            channel_ids=[a.channel.id for a in context.channels],
            generated_at=generated_at,
            insight_source=insights.source,
        )
        try:
            await self.insight_repository.upsert_week_report(report)
            summary.report_stored = True
        except Exception as e:
            logger.warning("Failed to store weekly report", error=str(e), error_type=type(e).__name__)


insight_engine = InsightEngine()
