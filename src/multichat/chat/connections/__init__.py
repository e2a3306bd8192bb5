"""Platform chat adapters."""

from .base import ChatAdapter, ReconnectBackoff
from .fake import FakeMessageGenerator
from .tiktok import TikTokChatAdapter
from .twitch import TwitchChatAdapter
from .youtube import YouTubeChatAdapter

__all__ = [
    "ChatAdapter",
    "FakeMessageGenerator",
    "ReconnectBackoff",
    "TikTokChatAdapter",
    "TwitchChatAdapter",
    "YouTubeChatAdapter",
]
