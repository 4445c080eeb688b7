"""
Domain models for the team health feature.

Plain dataclasses shared by repositories, pipeline services, jobs and the
API layer. Persisted records serialize to JSON-friendly dicts with epoch
millisecond timestamps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from app.utils.time_windows import from_epoch_ms, to_epoch_ms


class BurnoutRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Outcome(str, Enum):
    """Tagged outcome for operations that can degrade instead of failing."""

    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class InsightSource(str, Enum):
    AI = "ai"
    RULE_BASED = "rule_based"


@dataclass(slots=True)
class Channel:
    id: str
    display_name: str
    is_active: bool = True

    def to_record(self) -> dict[str, Any]:
        return {"id": self.id, "display_name": self.display_name, "is_active": self.is_active}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Channel:
        return cls(
            id=record["id"],
            display_name=record.get("display_name") or record["id"],
            is_active=bool(record.get("is_active", True)),
        )


@dataclass(slots=True)
class Message:
    id: str
    channel_id: str
    author_id: str
    text: str
    posted_at: datetime
    author_name: str | None = None
    thread_id: str | None = None
    reaction_counts: dict[str, int] = field(default_factory=dict)
    sentiment_score: float = 0.0
    scored: bool = False
    scored_at: datetime | None = None
    deleted: bool = False

    @property
    def is_thread_reply(self) -> bool:
        return bool(self.thread_id) and self.thread_id != self.id

    @property
    def reaction_total(self) -> int:
        return sum(max(0, int(count)) for count in self.reaction_counts.values())

    @property
    def is_scoring_candidate(self) -> bool:
        return bool(self.text and self.text.strip()) and not self.deleted and not self.scored

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "text": self.text,
            "posted_at": to_epoch_ms(self.posted_at),
            "thread_id": self.thread_id,
            "reaction_counts": dict(self.reaction_counts),
            "sentiment_score": self.sentiment_score,
            "scored": self.scored,
            "scored_at": to_epoch_ms(self.scored_at) if self.scored_at else None,
            "deleted": self.deleted,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Message:
        scored_at = record.get("scored_at")
        return cls(
            id=record["id"],
            channel_id=record["channel_id"],
            author_id=record["author_id"],
            author_name=record.get("author_name"),
            text=record.get("text") or "",
            posted_at=from_epoch_ms(record["posted_at"]),
            thread_id=record.get("thread_id"),
            reaction_counts={k: int(v) for k, v in (record.get("reaction_counts") or {}).items()},
            sentiment_score=float(record.get("sentiment_score") or 0.0),
            scored=bool(record.get("scored", False)),
            scored_at=from_epoch_ms(scored_at) if scored_at is not None else None,
            deleted=bool(record.get("deleted", False)),
        )


@dataclass(slots=True)
class ClassificationItem:
    """One message as submitted to the sentiment classifier."""

    id: str
    text: str
    author: str
    timestamp: datetime

    @classmethod
    def from_message(cls, message: Message) -> ClassificationItem:
        return cls(
            id=message.id,
            text=message.text,
            author=message.author_name or message.author_id,
            timestamp=message.posted_at,
        )


@dataclass(slots=True)
class ScoreResult:
    """Raw classifier output for one message, before validation."""

    message_id: Any
    sentiment_score: Any
    confidence: Any
    note: str | None = None


@dataclass(slots=True)
class SentimentHistogram:
    positive: int = 0
    neutral: int = 0
    negative: int = 0

    def to_record(self) -> dict[str, int]:
        return {"positive": self.positive, "neutral": self.neutral, "negative": self.negative}


@dataclass(slots=True)
class WeeklyMetrics:
    channel_id: str
    window_start: datetime
    window_end: datetime
    avg_sentiment: float = 0.0
    message_count: int = 0
    active_user_count: int = 0
    thread_reply_ratio: float = 0.0
    avg_reactions_per_message: float = 0.0
    sentiment_histogram: SentimentHistogram = field(default_factory=SentimentHistogram)
    risk_factors: list[str] = field(default_factory=list)
    truncated: bool = False

    @property
    def engagement_score(self) -> float:
        """Per-message engagement: thread participation plus reactions."""
        return self.thread_reply_ratio + self.avg_reactions_per_message

    @property
    def negative_ratio(self) -> float:
        if self.message_count <= 0:
            return 0.0
        return self.sentiment_histogram.negative / self.message_count

    def to_record(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "window_start": to_epoch_ms(self.window_start),
            "window_end": to_epoch_ms(self.window_end),
            "avg_sentiment": self.avg_sentiment,
            "message_count": self.message_count,
            "active_user_count": self.active_user_count,
            "thread_reply_ratio": self.thread_reply_ratio,
            "avg_reactions_per_message": self.avg_reactions_per_message,
            "sentiment_histogram": self.sentiment_histogram.to_record(),
            "risk_factors": list(self.risk_factors),
            "truncated": self.truncated,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> WeeklyMetrics:
        histogram = record.get("sentiment_histogram") or {}
        return cls(
            channel_id=record["channel_id"],
            window_start=from_epoch_ms(record["window_start"]),
            window_end=from_epoch_ms(record["window_end"]),
            avg_sentiment=float(record.get("avg_sentiment", 0.0)),
            message_count=int(record.get("message_count", 0)),
            active_user_count=int(record.get("active_user_count", 0)),
            thread_reply_ratio=float(record.get("thread_reply_ratio", 0.0)),
            avg_reactions_per_message=float(record.get("avg_reactions_per_message", 0.0)),
            sentiment_histogram=SentimentHistogram(
                positive=int(histogram.get("positive", 0)),
                neutral=int(histogram.get("neutral", 0)),
                negative=int(histogram.get("negative", 0)),
            ),
            risk_factors=list(record.get("risk_factors") or []),
            truncated=bool(record.get("truncated", False)),
        )


@dataclass(slots=True)
class TrendAnalysis:
    sentiment_delta: float = 0.0
    activity_delta_pct: float = 0.0
    engagement_delta_pct: float = 0.0
    has_previous: bool = False

    def to_record(self) -> dict[str, Any]:
        return {
            "sentiment_delta": self.sentiment_delta,
            "activity_delta_pct": self.activity_delta_pct,
            "engagement_delta_pct": self.engagement_delta_pct,
            "has_previous": self.has_previous,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> TrendAnalysis:
        return cls(
            sentiment_delta=float(record.get("sentiment_delta", 0.0)),
            activity_delta_pct=float(record.get("activity_delta_pct", 0.0)),
            engagement_delta_pct=float(record.get("engagement_delta_pct", 0.0)),
            has_previous=bool(record.get("has_previous", False)),
        )


@dataclass(slots=True)
class WeeklyInsight:
    """Represents one persisted per-channel weekly report."""

    id: str
    channel_id: str
    window_start: datetime
    window_end: datetime
    metrics: WeeklyMetrics
    burnout_risk: BurnoutRisk
    risk_factors: list[str]
    recommendations: list[str]
    trend: TrendAnalysis
    generated_at: datetime
    generated_by: str = "system"
    insight_source: InsightSource = InsightSource.RULE_BASED

    @staticmethod
    def build_id(channel_id: str, window_start: datetime) -> str:
        return f"{channel_id}:{to_epoch_ms(window_start)}"

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "window_start": to_epoch_ms(self.window_start),
            "window_end": to_epoch_ms(self.window_end),
            "metrics": self.metrics.to_record(),
            "burnout_risk": self.burnout_risk.value,
            "risk_factors": list(self.risk_factors),
            "recommendations": list(self.recommendations),
            "trend": self.trend.to_record(),
            "generated_at": to_epoch_ms(self.generated_at),
            "generated_by": self.generated_by,
            "insight_source": self.insight_source.value,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> WeeklyInsight:
        return cls(
            id=record["id"],
            channel_id=record["channel_id"],
            window_start=from_epoch_ms(record["window_start"]),
            window_end=from_epoch_ms(record["window_end"]),
            metrics=WeeklyMetrics.from_record(record["metrics"]),
            burnout_risk=BurnoutRisk(record["burnout_risk"]),
            risk_factors=list(record.get("risk_factors") or []),
            recommendations=list(record.get("recommendations") or []),
            trend=TrendAnalysis.from_record(record.get("trend") or {}),
            generated_at=from_epoch_ms(record["generated_at"]),
            generated_by=record.get("generated_by", "system"),
            insight_source=InsightSource(record.get("insight_source", InsightSource.RULE_BASED.value)),
        )


@dataclass(slots=True)
class WeeklyReport:
    """Workspace-wide summary stored next to the per-channel insights."""

    window_start: datetime
    window_end: datetime
    overall_risk: BurnoutRisk
    global_recommendations: list[str]
    channel_ids: list[str]
    generated_at: datetime
    insight_source: InsightSource

    def to_record(self) -> dict[str, Any]:
        return {
            "window_start": to_epoch_ms(self.window_start),
            "window_end": to_epoch_ms(self.window_end),
            "overall_risk": self.overall_risk.value,
            "global_recommendations": list(self.global_recommendations),
            "channel_ids": list(self.channel_ids),
            "generated_at": to_epoch_ms(self.generated_at),
            "insight_source": self.insight_source.value,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> WeeklyReport:
        return cls(
            window_start=from_epoch_ms(record["window_start"]),
            window_end=from_epoch_ms(record["window_end"]),
            overall_risk=BurnoutRisk(record["overall_risk"]),
            global_recommendations=list(record.get("global_recommendations") or []),
            channel_ids=list(record.get("channel_ids") or []),
            generated_at=from_epoch_ms(record["generated_at"]),
            insight_source=InsightSource(record.get("insight_source", InsightSource.RULE_BASED.value)),
        )
