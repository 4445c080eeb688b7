from datetime import UTC, datetime, timedelta

import pytest

from app.features.team_health.domain.models import Channel, Message
from app.features.team_health.repository.channel_repository import ChannelRepository
from app.features.team_health.repository.insight_repository import InsightRepository
from app.features.team_health.repository.message_repository import MessageRepository

# Monday 00:00 UTC
WEEK_START = datetime(2025, 3, 3, tzinfo=UTC)


class FakeRedis:
    """In-memory stand-in for FastRedisClient with the same sentinel semantics."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.sets: dict[str, set[str]] = {}
        self.failing: set[str] = set()

    async def ping(self) -> bool:
        return "ping" not in self.failing

    async def get(self, key: str) -> str | None:
        if "get" in self.failing:
            return None
        return self.store.get(key)

    async def mget(self, keys: list[str]) -> list[str | None]:
        if "mget" in self.failing:
            return [None] * len(keys)
        return [self.store.get(key) for key in keys]

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        if "set_with_ttl" in self.failing:
            return False
        self.store[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def zadd(self, key: str, mapping: dict[str, float]) -> bool:
        if "zadd" in self.failing:
            return False
        self.zsets.setdefault(key, {}).update(mapping)
        return True

    async def zrem(self, key: str, *members: str) -> bool:
        if "zrem" in self.failing:
            return False
        zset = self.zsets.get(key, {})
        for member in members:
            zset.pop(member, None)
        return True

    async def zrange_by_score(self, key, min_score, max_score, offset=None, count=None):
        if "zrange_by_score" in self.failing:
            return None
        members = sorted(
            (
                (score, member)
                for member, score in self.zsets.get(key, {}).items()
                if float(min_score) <= score <= float(max_score)
            ),
        )
        ids = [member for _, member in members]
        if offset is not None and count is not None:
            return ids[offset : offset + count]
        return ids

    async def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))

    async def sadd(self, key: str, *members: str) -> bool:
        if "sadd" in self.failing:
            return False
        self.sets.setdefault(key, set()).update(members)
        return True

    async def srem(self, key: str, *members: str) -> bool:
        self.sets.get(key, set()).difference_update(members)
        return True

    async def smembers(self, key: str) -> set[str] | None:
        if "smembers" in self.failing:
            return None
        return set(self.sets.get(key, set()))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def message_repository(fake_redis):
    return MessageRepository(redis=fake_redis)


@pytest.fixture
def channel_repository(fake_redis):
    return ChannelRepository(redis=fake_redis)


@pytest.fixture
def insight_repository(fake_redis):
    return InsightRepository(redis=fake_redis)


def build_message(
    message_id: str,
    channel_id: str = "C1",
    *,
    author_id: str = "U1",
    text: str = "shipping the release today",
    posted_at: datetime | None = None,
    thread_id: str | None = None,
    reactions: dict[str, int] | None = None,
    score: float | None = None,
    deleted: bool = False,
) -> Message:
    return Message(
        id=message_id,
        channel_id=channel_id,
        author_id=author_id,
        text=text,
        posted_at=posted_at or WEEK_START + timedelta(days=1),
        thread_id=thread_id,
        reaction_counts=reactions or {},
        sentiment_score=score if score is not None else 0.0,
        scored=score is not None,
        scored_at=WEEK_START + timedelta(days=1, hours=1) if score is not None else None,
        deleted=deleted,
    )


@pytest.fixture
def make_message():
    return build_message


@pytest.fixture
def week_start():
    return WEEK_START


@pytest.fixture
def seed_channel(channel_repository):
    async def _seed(channel_id: str, display_name: str | None = None, is_active: bool = True):
        channel = Channel(id=channel_id, display_name=display_name or channel_id, is_active=is_active)
        await channel_repository.put_channel(channel)
        return channel

    return _seed


@pytest.fixture
def seed_messages(message_repository):
    async def _seed(messages: list[Message]) -> list[Message]:
        for message in messages:
            await message_repository.put_message(message)
        return messages

    return _seed
