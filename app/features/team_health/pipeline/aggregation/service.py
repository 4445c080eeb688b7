"""
Weekly channel metrics aggregation.

Reduces a bounded window of a channel's scored messages into WeeklyMetrics
plus heuristic risk factors. Scans are paged and capped so a huge channel
can slow a run down but never keep it from finishing.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.config import RiskThresholds, settings
from app.features.team_health.domain.models import Message, SentimentHistogram, WeeklyMetrics
from app.features.team_health.repository.message_repository import MessageRepository
from app.infrastructure.observability.logging import get_logger
from app.utils.time_windows import ensure_utc, window_end_for

logger = get_logger(__name__)

POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1

NO_ACTIVITY = "no activity"
HIGH_NEGATIVE_SENTIMENT = "high negative sentiment"
NEGATIVE_OUTWEIGHS_POSITIVE = "negative outweighs positive"
LOW_COLLABORATION = "low collaboration"
VERY_LOW_VOLUME = "very low volume"
LOW_REACTION_ENGAGEMENT = "low reaction engagement"


@dataclass(slots=True)
class DailySentiment:
    date: str
    sentiment: float
    volume: int


def _no_activity(m: WeeklyMetrics, t: RiskThresholds) -> str | None:
    return NO_ACTIVITY if m.message_count == 0 else None


def _high_negative_sentiment(m: WeeklyMetrics, t: RiskThresholds) -> str | None:
    if m.message_count > 0 and m.avg_sentiment < t.factor_negative_sentiment:
        return HIGH_NEGATIVE_SENTIMENT
    return None


def _negative_outweighs_positive(m: WeeklyMetrics, t: RiskThresholds) -> str | None:
    histogram = m.sentiment_histogram
    if histogram.negative > 0 and histogram.negative > (
        t.factor_negative_to_positive_ratio * histogram.positive
    ):
        return NEGATIVE_OUTWEIGHS_POSITIVE
    return None


def _low_collaboration(m: WeeklyMetrics, t: RiskThresholds) -> str | None:
    if (
        m.message_count >= t.factor_min_messages_for_collaboration
        and m.thread_reply_ratio < t.factor_low_thread_ratio
    ):
        return LOW_COLLABORATION
    return None


def _very_low_volume(m: WeeklyMetrics, t: RiskThresholds) -> str | None:
    if 0 < m.message_count < t.factor_low_volume_messages:
        return VERY_LOW_VOLUME
    return None


def _low_reaction_engagement(m: WeeklyMetrics, t: RiskThresholds) -> str | None:
    if (
        m.message_count >= t.factor_min_messages_for_collaboration
        and m.avg_reactions_per_message < t.factor_low_reactions_per_message
    ):
        return LOW_REACTION_ENGAGEMENT
    return None


# Evaluated in order; each rule contributes at most one factor
RISK_FACTOR_RULES: tuple[Callable[[WeeklyMetrics, RiskThresholds], str | None], ...] = (
    _no_activity,
    _high_negative_sentiment,
    _negative_outweighs_positive,
    _low_collaboration,
    _very_low_volume,
    _low_reaction_engagement,
)


class MetricsAggregator:
    def __init__(
        self,
        repository: MessageRepository | None = None,
        thresholds: RiskThresholds | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        max_messages: int | None = None,
    ):
        config = settings.get_aggregation_config()
        self.repository = repository or MessageRepository()
        self.thresholds = thresholds or settings.get_risk_thresholds()
        self.page_size = page_size or config["page_size"]
        self.max_pages = max_pages or config["max_pages"]
        self.max_messages = max_messages or config["max_messages"]

    async def compute_weekly_metrics(
        self, channel_id: str, window_start: datetime, window_end: datetime | None = None
    ) -> WeeklyMetrics:
        """
        Aggregate one channel's scored, live messages within the window.

        Store errors propagate; the caller decides how to degrade.
        """
        window_start = ensure_utc(window_start)
        window_end = ensure_utc(window_end) if window_end else window_end_for(window_start)

        messages, truncated = await self._collect_messages(channel_id, window_start, window_end)
        metrics = self.build_metrics(channel_id, window_start, window_end, messages)
        metrics.truncated = truncated

        logger.debug(
            "Weekly metrics computed",
            channel_id=channel_id,
            message_count=metrics.message_count,
            avg_sentiment=round(metrics.avg_sentiment, 3),
            truncated=truncated,
        )
        return metrics

    async def _collect_messages(
        self, channel_id: str, window_start: datetime, window_end: datetime
    ) -> tuple[list[Message], bool]:
        collected: list[Message] = []
        cursor: str | None = None
        pages = 0

        while True:
            if pages >= self.max_pages:
                logger.warning(
                    "Aggregation page limit reached, excluding remaining messages",
                    channel_id=channel_id,
                    max_pages=self.max_pages,
                )
                return collected, True

            page = await self.repository.scan_channel_window(
                channel_id, window_start, window_end, cursor=cursor, page_size=self.page_size
            )
            pages += 1

            for message in page.messages:
                if message.deleted or not message.scored:
                    continue
                if len(collected) >= self.max_messages:
                    logger.warning(
                        "Aggregation message limit reached, excluding remaining messages",
                        channel_id=channel_id,
                        max_messages=self.max_messages,
                    )
                    return collected, True
                collected.append(message)

            if not page.next_cursor:
                return collected, False
            cursor = page.next_cursor

    def build_metrics(
        self,
        channel_id: str,
        window_start: datetime,
        window_end: datetime,
        messages: list[Message],
    ) -> WeeklyMetrics:
        metrics = WeeklyMetrics(channel_id=channel_id, window_start=window_start, window_end=window_end)
        total = len(messages)

        if total:
            histogram = SentimentHistogram()
            for message in messages:
                if message.sentiment_score > POSITIVE_THRESHOLD:
                    histogram.positive += 1
                elif message.sentiment_score < NEGATIVE_THRESHOLD:
                    histogram.negative += 1
                else:
                    histogram.neutral += 1

            metrics.avg_sentiment = sum(m.sentiment_score for m in messages) / total
            metrics.message_count = total
            metrics.active_user_count = len({m.author_id for m in messages})
            metrics.thread_reply_ratio = sum(1 for m in messages if m.is_thread_reply) / total
            metrics.avg_reactions_per_message = sum(m.reaction_total for m in messages) / total
            metrics.sentiment_histogram = histogram

        metrics.risk_factors = self.compute_risk_factors(metrics)
        return metrics

    def compute_risk_factors(self, metrics: WeeklyMetrics) -> list[str]:
        factors = []
        for rule in RISK_FACTOR_RULES:
            factor = rule(metrics, self.thresholds)
            if factor:
                factors.append(factor)
        return factors

    async def compute_daily_sentiment(
        self, channel_id: str, days: int = 7, now: datetime | None = None
    ) -> list[DailySentiment]:
        """Daily average sentiment and volume for the trailing `days` days."""
        end = ensure_utc(now) if now else datetime.now(UTC)
        start = end - timedelta(days=days)
        messages, _ = await self._collect_messages(channel_id, start, end)

        buckets: dict[str, list[float]] = defaultdict(list)
        for message in messages:
            buckets[message.posted_at.date().isoformat()].append(message.sentiment_score)

        return [
            DailySentiment(date=day, sentiment=sum(scores) / len(scores), volume=len(scores))
            for day, scores in sorted(buckets.items())
        ]


metrics_aggregator = MetricsAggregator()
