"""
Message store backed by Redis.

Keys:
    message:{id}                  JSON message record
    channel:{channel_id}:messages sorted set, score = posted_at (epoch ms)
    messages:unscored             sorted set of text-bearing, unscored, live messages
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime

from app.features.team_health.domain.models import Message
from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis
from app.utils.time_windows import to_epoch_ms

logger = get_logger(__name__)

UNSCORED_KEY = "messages:unscored"


class MessageStoreError(Exception):
    """Raised when a message read or write cannot be completed."""

    def __init__(self, message: str, message_id: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.message_id = message_id
        self.recoverable = recoverable


@dataclass(slots=True)
class MessagePage:
    messages: list[Message]
    next_cursor: str | None


def _message_key(message_id: str) -> str:
    return f"message:{message_id}"


def _channel_index_key(channel_id: str) -> str:
    return f"channel:{channel_id}:messages"


class MessageRepository:
    """Keyed get/put plus channel range scans over the message store."""

    def __init__(self, redis=None):
        self.redis = redis or fast_redis

    async def get_message(self, message_id: str) -> Message | None:
        raw = await self.redis.get(_message_key(message_id))
        if raw is None:
            return None
        try:
            return Message.from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise MessageStoreError(
                f"Corrupt message record: {e}", message_id=message_id, recoverable=False
            ) from e

    async def get_messages(self, message_ids: list[str]) -> dict[str, Message]:
        """Bulk load; ids that are missing or unreadable are left out."""
        raws = await self.redis.mget([_message_key(mid) for mid in message_ids])
        found: dict[str, Message] = {}
        for message_id, raw in zip(message_ids, raws):
            if raw is None:
                continue
            try:
                found[message_id] = Message.from_record(json.loads(raw))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping corrupt message record", message_id=message_id, error=str(e))
        return found

    async def put_message(self, message: Message) -> None:
        payload = json.dumps(message.to_record())
        if not await self.redis.set_with_ttl(_message_key(message.id), payload):
            raise MessageStoreError("Failed to write message", message_id=message.id)

        posted_ms = to_epoch_ms(message.posted_at)
        if not await self.redis.zadd(_channel_index_key(message.channel_id), {message.id: posted_ms}):
            raise MessageStoreError("Failed to index message", message_id=message.id)

        if message.is_scoring_candidate:
            indexed = await self.redis.zadd(UNSCORED_KEY, {message.id: posted_ms})
        else:
            indexed = await self.redis.zrem(UNSCORED_KEY, message.id)
        if not indexed:
            raise MessageStoreError("Failed to update unscored index", message_id=message.id)

    async def update_sentiment(
        self, message_id: str, score: float, scored_at: datetime | None = None
    ) -> Message:
        """Write the score fields exactly once and drop the message from the backlog."""
        message = await self.get_message(message_id)
        if message is None:
            raise MessageStoreError("Message not found", message_id=message_id, recoverable=False)

        if message.scored:
            logger.info("Message already scored, leaving score untouched", message_id=message_id)
            return message

        message.sentiment_score = score
        message.scored = True
        message.scored_at = scored_at or datetime.now(UTC)

        if not await self.redis.set_with_ttl(_message_key(message_id), json.dumps(message.to_record())):
            raise MessageStoreError("Failed to persist sentiment", message_id=message_id)
        if not await self.redis.zrem(UNSCORED_KEY, message_id):
            # The score itself is stored; the next sweep filters already-scored ids.
            logger.warning("Failed to remove message from unscored index", message_id=message_id)
        return message

    async def scan_channel_window(
        self,
        channel_id: str,
        start: datetime,
        end: datetime,
        cursor: str | None = None,
        page_size: int = 200,
    ) -> MessagePage:
        """
        Page through a channel's messages posted within [start, end].

        The cursor is an opaque offset into the channel index. All messages
        are returned (deleted and unscored included); callers filter.
        """
        offset = int(cursor) if cursor else 0
        ids = await self.redis.zrange_by_score(
            _channel_index_key(channel_id),
            to_epoch_ms(start),
            to_epoch_ms(end),
            offset=offset,
            count=page_size,
        )
        if ids is None:
            raise MessageStoreError(f"Range scan failed for channel {channel_id}")

        loaded = await self.get_messages(ids)
        messages = [loaded[mid] for mid in ids if mid in loaded]
        next_cursor = str(offset + len(ids)) if len(ids) == page_size else None
        return MessagePage(messages=messages, next_cursor=next_cursor)

    async def list_unscored(self, limit: int = 100) -> list[Message]:
        """Oldest eligible messages first."""
        ids = await self.redis.zrange_by_score(
            UNSCORED_KEY, float("-inf"), float("inf"), offset=0, count=limit
        )
        if ids is None:
            raise MessageStoreError("Failed to read unscored backlog")

        loaded = await self.get_messages(ids)
        eligible = []
        for message_id in ids:
            message = loaded.get(message_id)
            if message is None or not message.is_scoring_candidate:
                await self.redis.zrem(UNSCORED_KEY, message_id)
                continue
            eligible.append(message)
        return eligible

    async def count_unscored(self) -> int:
        return await self.redis.zcard(UNSCORED_KEY)
