"""
Tests for burnout risk, trends, recommendation authoring and the weekly
insight run.
"""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, call

import pytest

from app.config import RiskThresholds
from app.features.team_health.domain.models import (
    BurnoutRisk,
    Channel,
    InsightSource,
    Outcome,
    RunStatus,
    SentimentHistogram,
    TrendAnalysis,
    WeeklyMetrics,
)
from app.features.team_health.pipeline.aggregation.service import MetricsAggregator
from app.features.team_health.pipeline.insights.service import (
    ChannelAssessment,
    InsightContext,
    InsightEngine,
)
from app.features.team_health.pipeline.scoring.circuit_breaker import BreakerState, CircuitBreaker
from app.features.team_health.repository.insight_repository import InsightStoreError
from app.utils.time_windows import window_end_for


def _metrics(week_start, channel_id="C1", **values) -> WeeklyMetrics:
    return WeeklyMetrics(
        channel_id=channel_id,
        window_start=week_start,
        window_end=window_end_for(week_start),
        **values,
    )


@pytest.fixture
def breaker():
    return CircuitBreaker(failure_threshold=3, cooldown_seconds=60, name="test")


@pytest.fixture
def ai_service():
    service = AsyncMock()
    service.complete = AsyncMock()
    return service


@pytest.fixture
def aggregator(message_repository):
    return MetricsAggregator(
        repository=message_repository, thresholds=RiskThresholds(), page_size=50, max_pages=10, max_messages=1000
    )


@pytest.fixture
def engine(aggregator, channel_repository, insight_repository, ai_service, breaker):
    return InsightEngine(
        aggregator=aggregator,
        channel_repository=channel_repository,
        insight_repository=insight_repository,
        service=ai_service,
        breaker=breaker,
        thresholds=RiskThresholds(),
        use_ai=False,
        channel_concurrency=2,
        group_pause_seconds=0,
        aggregation_timeout_seconds=5,
        generation_timeout_seconds=5,
        sleep=AsyncMock(),
    )


# ----------------------------------------------------------------------
# Risk classification
# ----------------------------------------------------------------------


def test_negative_quiet_collaboration_is_high_risk(engine, week_start):
    metrics = _metrics(
        week_start,
        avg_sentiment=-0.5,
        thread_reply_ratio=0.05,
        message_count=30,
        avg_reactions_per_message=0.5,
    )

    assert engine.classify_channel_risk(metrics) == BurnoutRisk.HIGH


def test_healthy_channel_is_low_risk(engine, week_start):
    metrics = _metrics(
        week_start,
        avg_sentiment=0.3,
        thread_reply_ratio=0.35,
        message_count=40,
        avg_reactions_per_message=0.8,
        sentiment_histogram=SentimentHistogram(positive=25, neutral=12, negative=3),
    )

    assert engine.classify_channel_risk(metrics) == BurnoutRisk.LOW


def test_mildly_negative_channel_is_medium_risk(engine, week_start):
    metrics = _metrics(
        week_start,
        avg_sentiment=-0.1,
        thread_reply_ratio=0.15,
        message_count=25,
        avg_reactions_per_message=0.5,
    )

    assert engine.channel_risk_points(metrics) == 3
    assert engine.classify_channel_risk(metrics) == BurnoutRisk.MEDIUM


def test_silent_channel_is_not_flagged_for_engagement(engine, week_start):
    metrics = _metrics(week_start)

    assert engine.channel_risk_points(metrics) == 1
    assert engine.classify_channel_risk(metrics) == BurnoutRisk.LOW


def test_risk_points_are_capped(engine, week_start):
    metrics = _metrics(
        week_start,
        avg_sentiment=-0.9,
        message_count=3,
        sentiment_histogram=SentimentHistogram(negative=3),
    )

    assert engine.channel_risk_points(metrics) <= 10


@pytest.mark.parametrize(
    "risks, expected",
    [
        ([], BurnoutRisk.LOW),
        ([BurnoutRisk.HIGH, BurnoutRisk.HIGH, BurnoutRisk.LOW, BurnoutRisk.LOW, BurnoutRisk.LOW], BurnoutRisk.HIGH),
        ([BurnoutRisk.HIGH] + [BurnoutRisk.MEDIUM] * 5 + [BurnoutRisk.LOW] * 4, BurnoutRisk.LOW),
        ([BurnoutRisk.HIGH] * 2 + [BurnoutRisk.MEDIUM] * 5 + [BurnoutRisk.LOW] * 3, BurnoutRisk.HIGH),
        ([BurnoutRisk.MEDIUM] * 6 + [BurnoutRisk.LOW] * 4, BurnoutRisk.MEDIUM),
        ([BurnoutRisk.HIGH] * 2 + [BurnoutRisk.LOW] * 8, BurnoutRisk.MEDIUM),
        ([BurnoutRisk.LOW] * 10, BurnoutRisk.LOW),
    ],
)
def test_classify_overall_risk(engine, risks, expected):
    assert engine.classify_overall_risk(risks) == expected


def test_overridden_thresholds_change_classification(engine, week_start):
    strict = InsightEngine(
        aggregator=engine.aggregator,
        channel_repository=engine.channel_repository,
        insight_repository=engine.insight_repository,
        service=engine.service,
        breaker=engine.breaker,
        thresholds=RiskThresholds(high_risk_score=8, medium_risk_score=6),
        use_ai=False,
    )
    metrics = _metrics(week_start, avg_sentiment=-0.5, thread_reply_ratio=0.05, message_count=30, avg_reactions_per_message=0.5)

    assert strict.classify_channel_risk(metrics) == BurnoutRisk.MEDIUM


# ----------------------------------------------------------------------
# Trends
# ----------------------------------------------------------------------


def test_trend_sentiment_delta(engine, week_start):
    previous = _metrics(week_start - timedelta(days=7), avg_sentiment=0.2, message_count=10)
    current = _metrics(week_start, avg_sentiment=0.5, message_count=15)

    trend = engine.compute_trend(current, previous)

    assert trend.sentiment_delta == pytest.approx(0.3, abs=0.001)
    assert trend.activity_delta_pct == pytest.approx(50.0)
    assert trend.has_previous is True


def test_trend_without_previous_is_zero(engine, week_start):
    trend = engine.compute_trend(_metrics(week_start, avg_sentiment=0.5, message_count=10), None)

    assert trend == TrendAnalysis()


def test_trend_from_zero_baseline_is_plus_100(engine, week_start):
    previous = _metrics(week_start - timedelta(days=7))
    current = _metrics(week_start, message_count=12, thread_reply_ratio=0.2, avg_reactions_per_message=0.3)

    trend = engine.compute_trend(current, previous)

    assert trend.activity_delta_pct == 100.0
    assert trend.engagement_delta_pct == 100.0


def test_trend_is_clamped(engine, week_start):
    previous = _metrics(week_start - timedelta(days=7), message_count=1)
    current = _metrics(week_start, message_count=500)

    trend = engine.compute_trend(current, previous)

    assert trend.activity_delta_pct == 1000.0


# ----------------------------------------------------------------------
# Recommendations
# ----------------------------------------------------------------------


def _assessment(week_start, channel_id, risk, trend=None, **metric_values):
    return ChannelAssessment(
        channel=Channel(id=channel_id, display_name=channel_id.lower()),
        metrics=_metrics(week_start, channel_id=channel_id, **metric_values),
        burnout_risk=risk,
        trend=trend or TrendAnalysis(),
    )


def _context(week_start, assessments, overall=BurnoutRisk.LOW):
    return InsightContext(
        window_start=week_start,
        window_end=window_end_for(week_start),
        overall_risk=overall,
        channels=assessments,
    )


def test_rule_based_always_emits_a_recommendation(engine, week_start):
    context = _context(
        week_start,
        [
            _assessment(
                week_start,
                "C1",
                BurnoutRisk.LOW,
                avg_sentiment=0.4,
                message_count=40,
                thread_reply_ratio=0.5,
                avg_reactions_per_message=1.0,
            )
        ],
    )

    result = engine.generate_rule_based_insights(context)

    assert result.source == InsightSource.RULE_BASED
    assert len(result.global_recommendations) == 1
    assert result.channel_recommendations["C1"]


def test_rule_based_with_no_channels_still_recommends(engine, week_start):
    result = engine.generate_rule_based_insights(_context(week_start, []))

    assert len(result.global_recommendations) >= 1


def test_rule_based_caps_recommendations(engine, week_start):
    declining = TrendAnalysis(
        sentiment_delta=-0.5, activity_delta_pct=-80, engagement_delta_pct=-60, has_previous=True
    )
    assessments = [
        _assessment(
            week_start,
            f"C{i}",
            BurnoutRisk.HIGH if i % 2 else BurnoutRisk.MEDIUM,
            trend=declining,
            avg_sentiment=-0.6,
            message_count=3,
            thread_reply_ratio=0.0,
            avg_reactions_per_message=0.0,
            sentiment_histogram=SentimentHistogram(negative=3),
        )
        for i in range(6)
    ] + [_assessment(week_start, "C9", BurnoutRisk.LOW)]

    result = engine.generate_rule_based_insights(_context(week_start, assessments, BurnoutRisk.HIGH))

    assert 1 <= len(result.global_recommendations) <= 5
    assert "high burnout risk" in result.global_recommendations[0]
    assert all(1 <= len(items) <= 4 for items in result.channel_recommendations.values())


@pytest.mark.asyncio
async def test_generate_insights_uses_ai_reply(engine, ai_service, breaker, week_start):
    engine.use_ai = True
    ai_service.complete.return_value = json.dumps(
        {"globalInsights": ["AI global"], "channelInsights": {"C1": ["AI for C1"]}}
    )
    context = _context(
        week_start,
        [_assessment(week_start, "C1", BurnoutRisk.HIGH), _assessment(week_start, "C2", BurnoutRisk.LOW)],
    )

    result = await engine.generate_insights(context)

    assert result.source == InsightSource.AI
    assert result.outcome == Outcome.SUCCESS
    assert result.global_recommendations == ["AI global"]
    assert result.channel_recommendations["C1"] == ["AI for C1"]
    assert result.channel_recommendations["C2"]
    assert breaker.state == BreakerState.CLOSED


@pytest.mark.asyncio
async def test_generate_insights_falls_back_on_unparseable_reply(engine, ai_service, breaker, week_start):
    engine.use_ai = True
    ai_service.complete.return_value = "Sorry, I cannot help with that."

    result = await engine.generate_insights(_context(week_start, [_assessment(week_start, "C1", BurnoutRisk.LOW)]))

    assert result.source == InsightSource.RULE_BASED
    assert result.outcome == Outcome.FAILED
    assert result.global_recommendations
    assert breaker.snapshot().failure_count == 1


@pytest.mark.asyncio
async def test_generate_insights_falls_back_on_call_failure(engine, ai_service, week_start):
    engine.use_ai = True
    ai_service.complete.side_effect = RuntimeError("connection reset")

    result = await engine.generate_insights(_context(week_start, [_assessment(week_start, "C1", BurnoutRisk.LOW)]))

    assert result.source == InsightSource.RULE_BASED
    assert "connection reset" in result.reason


@pytest.mark.asyncio
async def test_generate_insights_skips_ai_when_breaker_open(engine, ai_service, breaker, week_start):
    engine.use_ai = True
    for _ in range(3):
        await breaker.record_failure(await breaker.allow_request(), "down")

    result = await engine.generate_insights(_context(week_start, [_assessment(week_start, "C1", BurnoutRisk.LOW)]))

    ai_service.complete.assert_not_awaited()
    assert result.outcome == Outcome.DEGRADED
    assert result.reason == "circuit_open"


@pytest.mark.asyncio
async def test_generate_insights_skips_ai_when_not_configured(engine, ai_service, week_start):
    result = await engine.generate_insights(_context(week_start, [_assessment(week_start, "C1", BurnoutRisk.LOW)]))

    ai_service.complete.assert_not_awaited()
    assert result.source == InsightSource.RULE_BASED


# ----------------------------------------------------------------------
# Weekly run
# ----------------------------------------------------------------------


async def _seed_week(seed_channel, seed_messages, make_message, week_start):
    await seed_channel("C1", "backend")
    await seed_channel("C2", "design")
    await seed_channel("C3", "archived", is_active=False)
    day = week_start + timedelta(days=1)
    await seed_messages(
        [make_message(f"b{i}", "C1", posted_at=day, score=-0.6) for i in range(30)]
        + [
            make_message(f"d{i}", "C2", posted_at=day, score=0.4, thread_id="d0", reactions={"+1": 1})
            for i in range(10)
        ]
        + [
            make_message(f"p{i}", "C1", posted_at=day - timedelta(days=7), score=0.2)
            for i in range(10)
        ]
    )


@pytest.mark.asyncio
async def test_weekly_insights_are_idempotent_per_week(
    engine, insight_repository, seed_channel, seed_messages, make_message, week_start
):
    await _seed_week(seed_channel, seed_messages, make_message, week_start)
    now = week_start + timedelta(days=7, hours=9)

    first = await engine.generate_weekly_insights(week_start, now=now)
    second = await engine.generate_weekly_insights(week_start, generated_by="manual", now=now)

    assert first.status == RunStatus.SUCCESS
    assert second.status == RunStatus.SUCCESS
    assert sorted(second.succeeded_channels) == ["C1", "C2"]

    insights = await insight_repository.list_week_insights(week_start)
    assert sorted(i.channel_id for i in insights) == ["C1", "C2"]
    assert all(i.generated_by == "manual" for i in insights)

    backend = await insight_repository.get_insight("C1", week_start)
    assert backend.burnout_risk == BurnoutRisk.HIGH
    assert backend.trend.has_previous is True
    assert backend.trend.sentiment_delta == pytest.approx(-0.8)
    assert backend.recommendations
    assert backend.id == f"C1:{int(week_start.timestamp() * 1000)}"

    report = await insight_repository.get_week_report(week_start)
    assert report.global_recommendations
    assert report.channel_ids == ["C1", "C2"]


@pytest.mark.asyncio
async def test_weekly_insights_for_selected_channels(
    engine, insight_repository, seed_channel, seed_messages, make_message, week_start
):
    await _seed_week(seed_channel, seed_messages, make_message, week_start)

    summary = await engine.generate_weekly_insights(
        week_start, channel_ids=["C2"], now=week_start + timedelta(days=8)
    )

    assert summary.succeeded_channels == ["C2"]
    assert await insight_repository.get_insight("C1", week_start) is None


@pytest.mark.asyncio
async def test_weekly_insights_reject_misaligned_week(engine, insight_repository, week_start):
    summary = await engine.generate_weekly_insights(
        week_start + timedelta(hours=3), now=week_start + timedelta(days=8)
    )

    assert summary.status == RunStatus.ERROR
    assert "Monday" in summary.error
    assert await insight_repository.get_week_report(week_start) is None


@pytest.mark.asyncio
async def test_weekly_insights_reject_future_week(engine, week_start):
    summary = await engine.generate_weekly_insights(week_start, now=week_start - timedelta(days=1))

    assert summary.status == RunStatus.ERROR
    assert "future" in summary.error


@pytest.mark.asyncio
async def test_weekly_insights_without_active_channels(engine, week_start):
    summary = await engine.generate_weekly_insights(week_start, now=week_start + timedelta(days=8))

    assert summary.status == RunStatus.ERROR
    assert summary.error == "no active channels"


@pytest.mark.asyncio
async def test_weekly_insights_unknown_channel_ids(engine, seed_channel, week_start):
    await seed_channel("C1")

    summary = await engine.generate_weekly_insights(
        week_start, channel_ids=["C1", "ghost"], now=week_start + timedelta(days=8)
    )

    assert summary.status == RunStatus.ERROR
    assert "ghost" in summary.error


@pytest.mark.asyncio
async def test_weekly_insights_isolate_storage_failures(
    engine, insight_repository, seed_channel, seed_messages, make_message, week_start
):
    await _seed_week(seed_channel, seed_messages, make_message, week_start)
    original = insight_repository.upsert_insight

    async def flaky_upsert(insight):
        if insight.channel_id == "C1":
            raise InsightStoreError("write failed", channel_id="C1")
        await original(insight)

    insight_repository.upsert_insight = flaky_upsert

    summary = await engine.generate_weekly_insights(week_start, now=week_start + timedelta(days=8))

    assert summary.status == RunStatus.PARTIAL
    assert summary.failed_channels == ["C1"]
    assert summary.succeeded_channels == ["C2"]


@pytest.mark.asyncio
async def test_previous_week_failure_degrades_to_no_trend(
    engine, aggregator, insight_repository, seed_channel, seed_messages, make_message, week_start
):
    await _seed_week(seed_channel, seed_messages, make_message, week_start)
    original = aggregator.compute_weekly_metrics

    async def current_only(channel_id, window_start, window_end=None):
        if window_start < week_start:
            raise RuntimeError("previous week unavailable")
        return await original(channel_id, window_start, window_end)

    aggregator.compute_weekly_metrics = current_only

    summary = await engine.generate_weekly_insights(week_start, now=week_start + timedelta(days=8))

    assert summary.status == RunStatus.SUCCESS
    backend = await insight_repository.get_insight("C1", week_start)
    assert backend.trend.has_previous is False


@pytest.mark.asyncio
async def test_previous_week_timeout_degrades_to_no_trend(
    engine, aggregator, insight_repository, seed_channel, seed_messages, make_message, week_start
):
    await _seed_week(seed_channel, seed_messages, make_message, week_start)
    engine.aggregation_timeout_seconds = 0.05
    original = aggregator.compute_weekly_metrics

    async def previous_hangs(channel_id, window_start, window_end=None):
        if window_start < week_start:
            await asyncio.Event().wait()
        return await original(channel_id, window_start, window_end)

    aggregator.compute_weekly_metrics = previous_hangs

    summary = await engine.generate_weekly_insights(week_start, now=week_start + timedelta(days=8))

    assert summary.status == RunStatus.SUCCESS
    backend = await insight_repository.get_insight("C1", week_start)
    assert backend.trend.has_previous is False


@pytest.mark.asyncio
async def test_channels_measured_in_paused_groups_with_timeout(
    channel_repository, insight_repository, ai_service, breaker, seed_channel, week_start
):
    for channel_id in ["C0", "C1", "C2", "C3", "C4", "C5", "HANG"]:
        await seed_channel(channel_id)

    in_flight = 0
    peak = 0

    async def compute(channel_id, window_start, window_end=None):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        try:
            if channel_id == "HANG":
                await asyncio.Event().wait()
            await asyncio.sleep(0)
            return _metrics(window_start, channel_id, avg_sentiment=0.2, message_count=10)
        finally:
            in_flight -= 1

    aggregator = AsyncMock()
    aggregator.compute_weekly_metrics = compute
    sleep = AsyncMock()
    engine = InsightEngine(
        aggregator=aggregator,
        channel_repository=channel_repository,
        insight_repository=insight_repository,
        service=ai_service,
        breaker=breaker,
        thresholds=RiskThresholds(),
        use_ai=False,
        channel_concurrency=5,
        group_pause_seconds=0.5,
        aggregation_timeout_seconds=0.2,
        generation_timeout_seconds=5,
        sleep=sleep,
    )

    summary = await engine.generate_weekly_insights(week_start, now=week_start + timedelta(days=8))

    assert summary.status == RunStatus.PARTIAL
    assert summary.failed_channels == ["HANG"]
    assert len(summary.succeeded_channels) == 6
    assert peak <= 5
    # one pause between the two current-week groups, one between the two previous-week groups
    assert sleep.await_args_list == [call(0.5), call(0.5)]
    stored = await insight_repository.get_insight("C0", week_start)
    assert stored.trend.has_previous is True


@pytest.mark.asyncio
async def test_unexpected_failure_becomes_error_summary(engine, channel_repository, week_start):
    channel_repository.list_active_channels = AsyncMock(side_effect=RuntimeError("directory down"))

    summary = await engine.generate_weekly_insights(week_start, now=week_start + timedelta(days=8))

    assert summary.status == RunStatus.ERROR
    assert "directory down" in summary.error
