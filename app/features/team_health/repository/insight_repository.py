"""
Weekly insight store backed by Redis.

Insights are keyed by (channel_id, window_start), so regenerating a week
overwrites the previous record instead of adding a duplicate.

Keys:
    insight:{channel_id}:{window_start_ms}  JSON insight record
    insights:week:{window_start_ms}          set of channel ids with an insight
    insights:weeks                           sorted set of week starts (score = ms)
    report:{window_start_ms}                 JSON workspace-wide weekly report
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta

from app.features.team_health.domain.models import BurnoutRisk, WeeklyInsight, WeeklyReport
from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis
from app.utils.time_windows import from_epoch_ms, to_epoch_ms

logger = get_logger(__name__)

WEEKS_INDEX_KEY = "insights:weeks"
RISK_ORDER = {BurnoutRisk.HIGH: 3, BurnoutRisk.MEDIUM: 2, BurnoutRisk.LOW: 1}


class InsightStoreError(Exception):
    """Raised when an insight cannot be written or read."""

    def __init__(self, message: str, channel_id: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.channel_id = channel_id
        self.recoverable = recoverable


def _insight_key(channel_id: str, window_start_ms: int) -> str:
    return f"insight:{channel_id}:{window_start_ms}"


def _week_members_key(window_start_ms: int) -> str:
    return f"insights:week:{window_start_ms}"


def _report_key(window_start_ms: int) -> str:
    return f"report:{window_start_ms}"


class InsightRepository:
    def __init__(self, redis=None):
        self.redis = redis or fast_redis

    async def upsert_insight(self, insight: WeeklyInsight) -> None:
        start_ms = to_epoch_ms(insight.window_start)
        payload = json.dumps(insight.to_record())

        if not await self.redis.set_with_ttl(_insight_key(insight.channel_id, start_ms), payload):
            raise InsightStoreError("Failed to write insight", channel_id=insight.channel_id)
        if not await self.redis.sadd(_week_members_key(start_ms), insight.channel_id):
            raise InsightStoreError("Failed to index insight", channel_id=insight.channel_id)
        if not await self.redis.zadd(WEEKS_INDEX_KEY, {str(start_ms): start_ms}):
            raise InsightStoreError("Failed to index week", channel_id=insight.channel_id)

    async def get_insight(self, channel_id: str, window_start: datetime) -> WeeklyInsight | None:
        raw = await self.redis.get(_insight_key(channel_id, to_epoch_ms(window_start)))
        if raw is None:
            return None
        try:
            return WeeklyInsight.from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Corrupt insight record", channel_id=channel_id, error=str(e))
            return None

    async def list_week_insights(
        self, window_start: datetime, channel_id: str | None = None
    ) -> list[WeeklyInsight]:
        """Insights for one week, newest generation first."""
        if channel_id:
            insight = await self.get_insight(channel_id, window_start)
            return [insight] if insight else []

        start_ms = to_epoch_ms(window_start)
        channel_ids = await self.redis.smembers(_week_members_key(start_ms))
        if channel_ids is None:
            raise InsightStoreError("Failed to read week index")

        insights = []
        for member in sorted(channel_ids):
            insight = await self.get_insight(member, window_start)
            if insight:
                insights.append(insight)
        return sorted(insights, key=lambda item: item.generated_at, reverse=True)

    async def upsert_week_report(self, report: WeeklyReport) -> None:
        start_ms = to_epoch_ms(report.window_start)
        if not await self.redis.set_with_ttl(_report_key(start_ms), json.dumps(report.to_record())):
            raise InsightStoreError("Failed to write weekly report")

    async def get_week_report(self, window_start: datetime) -> WeeklyReport | None:
        raw = await self.redis.get(_report_key(to_epoch_ms(window_start)))
        if raw is None:
            return None
        try:
            return WeeklyReport.from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                "Corrupt weekly report record", window_start=window_start.isoformat(), error=str(e)
            )
            return None

    async def list_burnout_alerts(
        self,
        now: datetime,
        risk_level: BurnoutRisk | None = None,
        lookback_weeks: int = 4,
    ) -> list[WeeklyInsight]:
        """
        Latest insight per channel over the lookback period, filtered to
        risk_level (or everything above low), highest risk first.
        """
        since_ms = to_epoch_ms(now - timedelta(weeks=lookback_weeks))
        weeks = await self.redis.zrange_by_score(WEEKS_INDEX_KEY, since_ms, to_epoch_ms(now))
        if weeks is None:
            raise InsightStoreError("Failed to read weeks index")

        latest: dict[str, WeeklyInsight] = {}
        for week_ms in weeks:
            for insight in await self.list_week_insights(from_epoch_ms(int(week_ms))):
                current = latest.get(insight.channel_id)
                if current is None or current.window_start < insight.window_start:
                    latest[insight.channel_id] = insight

        if risk_level is not None:
            alerts = [i for i in latest.values() if i.burnout_risk == risk_level]
        else:
            alerts = [i for i in latest.values() if i.burnout_risk != BurnoutRisk.LOW]
        return sorted(alerts, key=lambda item: RISK_ORDER[item.burnout_risk], reverse=True)
