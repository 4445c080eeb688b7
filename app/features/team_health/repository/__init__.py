"""Redis-backed repositories for messages, channels and weekly insights."""

from .channel_repository import ChannelDirectoryError, ChannelRepository
from .insight_repository import InsightRepository, InsightStoreError
from .message_repository import MessagePage, MessageRepository, MessageStoreError

__all__ = [
    "ChannelDirectoryError",
    "ChannelRepository",
    "InsightRepository",
    "InsightStoreError",
    "MessagePage",
    "MessageRepository",
    "MessageStoreError",
]
