"""
Integration tests for the team health HTTP API.

Routes run against the in-memory Redis stand-in through dependency
overrides; the lifespan is not started so no real Redis is touched.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.config import RiskThresholds
from app.features.team_health.api.router import (
    get_batch_scorer,
    get_insight_engine,
    get_insight_repository,
    get_metrics_aggregator,
)
from app.features.team_health.domain.models import (
    BurnoutRisk,
    InsightSource,
    Outcome,
    ScoreResult,
    TrendAnalysis,
    WeeklyInsight,
    WeeklyMetrics,
)
from app.features.team_health.pipeline.aggregation.service import MetricsAggregator
from app.features.team_health.pipeline.insights.service import InsightEngine
from app.features.team_health.pipeline.scoring.circuit_breaker import CircuitBreaker
from app.features.team_health.pipeline.scoring.classifier_client import ClassificationBatch
from app.features.team_health.pipeline.scoring.service import BatchScorer
from app.features.team_health.repository.insight_repository import _report_key
from app.main import app
from app.utils.time_windows import to_epoch_ms, week_start_for, window_end_for


class PositiveClassifier:
    async def classify(self, items):
        return ClassificationBatch(
            results=[ScoreResult(message_id=i.id, sentiment_score=0.5, confidence=0.8) for i in items],
            outcome=Outcome.SUCCESS,
            attempts=1,
        )


@pytest.fixture
def client(message_repository, channel_repository, insight_repository):
    aggregator = MetricsAggregator(
        repository=message_repository, thresholds=RiskThresholds(), page_size=50, max_pages=10, max_messages=1000
    )
    scorer = BatchScorer(
        classifier=PositiveClassifier(),
        repository=message_repository,
        batch_size=25,
        inter_batch_delay_seconds=0,
        sweep_page_size=100,
        sleep=AsyncMock(),
    )
    engine = InsightEngine(
        aggregator=aggregator,
        channel_repository=channel_repository,
        insight_repository=insight_repository,
        service=AsyncMock(),
        breaker=CircuitBreaker(name="api-test"),
        thresholds=RiskThresholds(),
        use_ai=False,
        group_pause_seconds=0,
        sleep=AsyncMock(),
    )

    app.dependency_overrides[get_batch_scorer] = lambda: scorer
    app.dependency_overrides[get_metrics_aggregator] = lambda: aggregator
    app.dependency_overrides[get_insight_engine] = lambda: engine
    app.dependency_overrides[get_insight_repository] = lambda: insight_repository
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_score_messages(client, seed_messages, make_message, message_repository):
    asyncio.run(seed_messages([make_message("m1"), make_message("m2")]))

    response = client.post("/team-health/scoring/messages", json={"message_ids": ["m1", "m2", "ghost"]})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["processed_count"] == 2
    assert data["skipped_count"] == 1
    stored = asyncio.run(message_repository.get_message("m1"))
    assert stored.sentiment_score == 0.5


def test_score_messages_rejects_empty_list(client):
    response = client.post("/team-health/scoring/messages", json={"message_ids": []})

    assert response.status_code == 422


def test_sweep_endpoint(client, seed_messages, make_message):
    asyncio.run(seed_messages([make_message("a"), make_message("b", score=0.1)]))

    response = client.post("/team-health/scoring/sweep")

    assert response.status_code == 200
    assert response.json()["processed_count"] == 1


def test_generate_then_list_insights(client, seed_channel, seed_messages, make_message, week_start):
    async def seed():
        await seed_channel("C1", "backend")
        await seed_channel("C2", "design")
        await seed_messages(
            [make_message(f"m{i}", "C1", posted_at=week_start + timedelta(days=2), score=-0.7) for i in range(25)]
        )

    asyncio.run(seed())

    generated = client.post(
        "/team-health/insights/generate", json={"week_start": week_start.isoformat()}
    )

    assert generated.status_code == 200
    summary = generated.json()
    assert summary["status"] == "success"
    assert summary["insight_source"] == "rule_based"
    assert sorted(summary["succeeded_channels"]) == ["C1", "C2"]

    listed = client.get("/team-health/insights", params={"week_start": "2025-03-03T00:00:00Z"})

    assert listed.status_code == 200
    data = listed.json()
    assert data["total_count"] == 2
    assert data["report"]["global_recommendations"]
    backend = next(i for i in data["insights"] if i["channel_id"] == "C1")
    assert backend["burnout_risk"] == "high"
    assert backend["generated_by"] == "manual"
    assert backend["metrics"]["message_count"] == 25


def test_generate_rejects_misaligned_week(client, week_start):
    response = client.post(
        "/team-health/insights/generate",
        json={"week_start": (week_start + timedelta(days=1)).isoformat()},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "error"


def test_list_insights_requires_monday(client):
    response = client.get("/team-health/insights", params={"week_start": "2025-03-04T00:00:00Z"})

    assert response.status_code == 400


def test_list_insights_store_unavailable(client, fake_redis):
    fake_redis.failing.add("smembers")

    response = client.get("/team-health/insights", params={"week_start": "2025-03-03T00:00:00Z"})

    assert response.status_code == 503


def test_list_insights_tolerates_corrupt_report(client, fake_redis, week_start):
    fake_redis.store[_report_key(to_epoch_ms(week_start))] = "{truncated"

    response = client.get("/team-health/insights", params={"week_start": "2025-03-03T00:00:00Z"})

    assert response.status_code == 200
    assert response.json()["report"] is None


def test_burnout_alerts(client, insight_repository):
    this_week = week_start_for(datetime.now(UTC))

    def insight(channel_id, risk):
        return WeeklyInsight(
            id=WeeklyInsight.build_id(channel_id, this_week),
            channel_id=channel_id,
            window_start=this_week,
            window_end=window_end_for(this_week),
            metrics=WeeklyMetrics(channel_id=channel_id, window_start=this_week, window_end=window_end_for(this_week)),
            burnout_risk=risk,
            risk_factors=[],
            recommendations=["check in"],
            trend=TrendAnalysis(),
            generated_at=this_week,
            insight_source=InsightSource.RULE_BASED,
        )

    async def seed():
        await insight_repository.upsert_insight(insight("C1", BurnoutRisk.MEDIUM))
        await insight_repository.upsert_insight(insight("C2", BurnoutRisk.HIGH))
        await insight_repository.upsert_insight(insight("C3", BurnoutRisk.LOW))

    asyncio.run(seed())

    response = client.get("/team-health/alerts")
    high_only = client.get("/team-health/alerts", params={"risk_level": "high"})
    invalid = client.get("/team-health/alerts", params={"risk_level": "critical"})

    assert [a["channel_id"] for a in response.json()["alerts"]] == ["C2", "C1"]
    assert high_only.json()["total_count"] == 1
    assert invalid.status_code == 422


def test_sentiment_trend(client, seed_messages, make_message):
    now = datetime.now(UTC)
    asyncio.run(
        seed_messages(
            [
                make_message("a", posted_at=now - timedelta(hours=1), score=0.4),
                make_message("b", posted_at=now - timedelta(hours=1), score=0.2),
            ]
        )
    )

    response = client.get("/team-health/channels/C1/sentiment-trend", params={"days": 3})

    assert response.status_code == 200
    data = response.json()
    assert data["days"] == 3
    assert sum(p["volume"] for p in data["points"]) == 2


def test_sentiment_trend_validates_days(client):
    assert client.get("/team-health/channels/C1/sentiment-trend", params={"days": 0}).status_code == 422
    assert client.get("/team-health/channels/C1/sentiment-trend", params={"days": 91}).status_code == 422


def test_sentiment_trend_store_unavailable(client, fake_redis):
    fake_redis.failing.add("zrange_by_score")

    response = client.get("/team-health/channels/C1/sentiment-trend")

    assert response.status_code == 503


def _seed_dashboard_week(seed_channel, seed_messages, make_message, week_start):
    async def seed():
        await seed_channel("C1", "backend")
        await seed_channel("C2", "design")
        await seed_messages(
            [make_message(f"b{i}", "C1", posted_at=week_start + timedelta(days=2), score=-0.7) for i in range(25)]
        )
        await seed_messages(
            [
                make_message(f"d{i}", "C2", author_id=f"U{i % 2 + 1}", posted_at=week_start + timedelta(days=3), score=0.5)
                for i in range(10)
            ]
        )

    asyncio.run(seed())


def test_weekly_dashboard(client, seed_channel, seed_messages, make_message, week_start):
    _seed_dashboard_week(seed_channel, seed_messages, make_message, week_start)

    response = client.get("/team-health/dashboard", params={"week_start": "2025-03-03T00:00:00Z"})

    assert response.status_code == 200
    data = response.json()
    assert data["overall_risk"] == "high"
    assert data["failed_channels"] == []
    channels = {c["channel_id"]: c for c in data["channels"]}
    assert channels["C1"]["burnout_risk"] == "high"
    assert channels["C1"]["metrics"]["message_count"] == 25
    assert channels["C2"]["metrics"]["active_user_count"] == 2
    aggregates = data["aggregates"]
    assert aggregates["channel_count"] == 2
    assert aggregates["message_count"] == 35
    assert aggregates["active_user_count"] == 3
    assert aggregates["avg_sentiment"] == pytest.approx(-0.1)


def test_weekly_dashboard_selected_channels(client, seed_channel, seed_messages, make_message, week_start):
    _seed_dashboard_week(seed_channel, seed_messages, make_message, week_start)

    response = client.get(
        "/team-health/dashboard", params={"week_start": "2025-03-03T00:00:00Z", "channel_ids": ["C2"]}
    )

    assert response.status_code == 200
    data = response.json()
    assert [c["channel_id"] for c in data["channels"]] == ["C2"]
    assert data["aggregates"]["avg_sentiment"] == pytest.approx(0.5)


def test_weekly_dashboard_without_channels_is_empty(client):
    response = client.get("/team-health/dashboard", params={"week_start": "2025-03-03T00:00:00Z"})

    assert response.status_code == 200
    data = response.json()
    assert data["channels"] == []
    assert data["overall_risk"] == "low"
    assert data["aggregates"]["message_count"] == 0


@pytest.mark.parametrize(
    "params",
    [
        {"week_start": "2025-03-04T00:00:00Z"},
        {"week_start": "2999-01-07T00:00:00Z"},
        {"week_start": "2025-03-03T00:00:00Z", "channel_ids": ["nope"]},
    ],
)
def test_weekly_dashboard_rejects_bad_request(client, seed_channel, params):
    asyncio.run(seed_channel("C1", "backend"))

    response = client.get("/team-health/dashboard", params=params)

    assert response.status_code == 400


def test_weekly_dashboard_store_unavailable(client, seed_channel, fake_redis):
    asyncio.run(seed_channel("C1", "backend"))
    fake_redis.failing.add("zrange_by_score")

    response = client.get("/team-health/dashboard", params={"week_start": "2025-03-03T00:00:00Z"})

    assert response.status_code == 503
