"""
Channel directory backed by Redis.

Channel administration lives elsewhere; this repository only reads the
roster (and writes it for seeding and tests).
"""

import json

from app.features.team_health.domain.models import Channel
from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

ACTIVE_CHANNELS_KEY = "channels:active"


class ChannelDirectoryError(Exception):
    """Raised when the channel roster cannot be read."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


def _channel_key(channel_id: str) -> str:
    return f"channel:{channel_id}"


class ChannelRepository:
    def __init__(self, redis=None):
        self.redis = redis or fast_redis

    async def get_channel(self, channel_id: str) -> Channel | None:
        raw = await self.redis.get(_channel_key(channel_id))
        if raw is None:
            return None
        try:
            return Channel.from_record(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Corrupt channel record", channel_id=channel_id, error=str(e))
            return None

    async def list_active_channels(self) -> list[Channel]:
        ids = await self.redis.smembers(ACTIVE_CHANNELS_KEY)
        if ids is None:
            raise ChannelDirectoryError("Failed to read active channel set")

        channels = []
        for channel_id in sorted(ids):
            channel = await self.get_channel(channel_id)
            if channel and channel.is_active:
                channels.append(channel)
        return channels

    async def put_channel(self, channel: Channel) -> None:
        if not await self.redis.set_with_ttl(_channel_key(channel.id), json.dumps(channel.to_record())):
            raise ChannelDirectoryError(f"Failed to write channel {channel.id}")
        if channel.is_active:
            updated = await self.redis.sadd(ACTIVE_CHANNELS_KEY, channel.id)
        else:
            updated = await self.redis.srem(ACTIVE_CHANNELS_KEY, channel.id)
        if not updated:
            raise ChannelDirectoryError(f"Failed to update active set for {channel.id}")
