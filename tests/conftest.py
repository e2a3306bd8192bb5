"""Shared test fixtures for multichat tests."""

from types import MappingProxyType

import pytest

from multichat.chat.badges import CHANNEL_LAYER, BadgeCatalog, BadgeEntry
from multichat.chat.emotes.catalog import EmoteCatalog
from multichat.chat.models import ChatEmote, ChatMessage
from multichat.core.models import Platform


class FakeClock:
    """Manually advanced clock for MessageStore tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_message():
    counter = iter(range(1, 100000))

    def _make(
        text="Hello world!",
        platform=Platform.TWITCH,
        username="TestUser",
        badges=(),
        raw=None,
    ):
        n = next(counter)
        return ChatMessage(
            id=f"msg-{n:03d}",
            timestamp=1735734600000 + n,
            platform=platform,
            username=username,
            text=text,
            badges=tuple(badges),
            color="#FF0000",
            raw=MappingProxyType(dict(raw or {})),
        )

    return _make


def _entry(badge_id, version, title, layer="global", platform=Platform.TWITCH):
    return BadgeEntry(
        platform=platform,
        badge_id=badge_id,
        version=version,
        title=title,
        image_url=f"https://example.com/{platform.value}/{layer}/{badge_id}/{version}",
        layer=layer,
    )


@pytest.fixture
def badge_catalog():
    return BadgeCatalog(
        [
            _entry("moderator", "1", "Moderator"),
            _entry("broadcaster", "1", "Broadcaster"),
            _entry("vip", "1", "VIP"),
            # Global subscriber set, overridden by the channel layer below
            _entry("subscriber", "0", "Subscriber"),
            _entry("subscriber", "1", "1-Month Subscriber"),
            _entry("subscriber", "1", "1-Month Channel Sub", layer=CHANNEL_LAYER),
            _entry("subscriber", "3", "3-Month Channel Sub", layer=CHANNEL_LAYER),
            _entry("subscriber", "6", "6-Month Channel Sub", layer=CHANNEL_LAYER),
            _entry("subscriber", "12", "1-Year Channel Sub", layer=CHANNEL_LAYER),
            _entry("subscriber", "24", "2-Year Channel Sub", layer=CHANNEL_LAYER),
            _entry("bits", "1", "cheer 1"),
            _entry("bits", "100", "cheer 100"),
            _entry("bits", "1000", "cheer 1000"),
            _entry("bits", "5000", "cheer 5000"),
            _entry("member", "1", "Member", platform=Platform.YOUTUBE),
            _entry("member", "2", "Member (2 months)", platform=Platform.YOUTUBE),
            _entry("member", "6", "Member (6 months)", platform=Platform.YOUTUBE),
            _entry("moderator", "1", "TikTok Moderator", platform=Platform.TIKTOK),
        ]
    )


@pytest.fixture
def emote_catalog():
    return EmoteCatalog(
        [
            ChatEmote(
                id="305954156", name="PogChamp", url="https://example.com/pog", provider="twitch"
            ),
            ChatEmote(id="25", name="Kappa", url="https://example.com/kappa", provider="twitch"),
            ChatEmote(id="60ae", name="KEKW", url="https://example.com/kekw", provider="7tv"),
        ]
    )
