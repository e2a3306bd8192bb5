"""Tests for YouTube chat parsing functions."""

import sys
from types import SimpleNamespace

import pytest

from multichat.chat.connections.youtube import (
    YouTubeChatAdapter,
    extract_live_video_id,
    pytchat_item_to_event,
    youtube_badges,
)
from multichat.core.models import ConnectionStatus
from multichat.core.settings import YouTubeSettings

LIVE_HTML = (
    '<html><head><link rel="canonical" href="https://www.youtube.com/watch?v=dQw4w9WgXcQ">'
    '</head><script>var ytInitialPlayerResponse = {"isLiveNow":true};</script></html>'
)


def _author(**flags):
    defaults = {
        "name": "Viewer",
        "channelId": "UCviewer",
        "badgeUrl": "",
        "isChatOwner": False,
        "isChatModerator": False,
        "isChatSponsor": False,
        "isVerified": False,
    }
    defaults.update(flags)
    return SimpleNamespace(**defaults)


def _item(message="hello", type="textMessage", amountString="", **author_flags):
    return SimpleNamespace(
        author=_author(**author_flags), message=message, type=type, amountString=amountString
    )


# --- extract_live_video_id ---


def test_extract_live_video_id():
    assert extract_live_video_id(LIVE_HTML) == "dQw4w9WgXcQ"


def test_extract_live_video_id_not_live():
    html = LIVE_HTML.replace('"isLiveNow":true', '"isLiveNow":false')
    assert extract_live_video_id(html) is None


def test_extract_live_video_id_no_canonical_link():
    assert extract_live_video_id('{"isLiveNow":true}') is None


# --- youtube_badges ---


def test_youtube_badges_order():
    item = _item(isChatOwner=True, isChatModerator=True, isChatSponsor=True, isVerified=True)
    assert youtube_badges(item) == ["owner", "moderator", "member", "verified"]


def test_youtube_badges_none():
    assert youtube_badges(_item()) == []


# --- pytchat_item_to_event ---


def test_item_to_event_basic():
    event = pytchat_item_to_event(_item("GG everyone", name="Alice", channelId="UCalice"))
    assert event.username == "Alice"
    assert event.text == "GG everyone"
    assert event.badges == []
    assert event.color is None
    assert event.raw["author_channel_id"] == "UCalice"
    assert event.raw["type"] == "textMessage"


def test_item_to_event_member_color_and_badge_url():
    event = pytchat_item_to_event(
        _item(isChatSponsor=True, badgeUrl="https://yt3.ggpht.com/member.png")
    )
    assert event.badges == ["member"]
    assert event.color == "#2ba640"
    assert event.raw["badge_url"] == "https://yt3.ggpht.com/member.png"


def test_item_to_event_owner_color_wins():
    event = pytchat_item_to_event(_item(isChatOwner=True, isChatModerator=True))
    assert event.color == "#ffd600"


def test_item_to_event_missing_name_uses_channel_id():
    event = pytchat_item_to_event(_item(name="", channelId="UCanon"))
    assert event.username == "UCanon"


def test_item_to_event_superchat_without_text():
    event = pytchat_item_to_event(_item("", type="superChat", amountString="$5.00"))
    assert event.text == "$5.00"
    assert event.raw["amount"] == "$5.00"


def test_item_to_event_supersticker_placeholder():
    event = pytchat_item_to_event(_item("", type="superSticker"))
    assert event.text == "[SuperSticker]"


def test_item_to_event_empty_message_skipped():
    assert pytchat_item_to_event(_item("")) is None


def test_item_to_event_flat_item():
    item = SimpleNamespace(
        authorName="Bob", authorChannelId="UCbob", badgeUrl="", message="hi", type="textMessage"
    )
    event = pytchat_item_to_event(item)
    assert event.username == "Bob"
    assert event.raw["user_id"] == "UCbob"


# --- YouTubeChatAdapter ---


@pytest.fixture
def youtube_adapter():
    events, statuses = [], []
    adapter = YouTubeChatAdapter(
        YouTubeSettings(channel_id="UCchannel", retry_when_offline=False),
        on_event=lambda platform, event: events.append(event),
        on_status=lambda platform, status, detail: statuses.append((status, detail)),
    )
    return adapter, events, statuses


class _BrokenItem:
    @property
    def author(self):
        raise RuntimeError("truncated renderer")


def test_handle_item_drops_malformed_item(youtube_adapter):
    adapter, events, _ = youtube_adapter
    adapter._handle_item(_BrokenItem())
    adapter._handle_item(_item("still here"))
    assert [event.text for event in events] == ["still here"]


async def test_offline_without_retry_fails(youtube_adapter, monkeypatch):
    adapter, _, statuses = youtube_adapter

    async def not_live():
        return None

    monkeypatch.setitem(sys.modules, "pytchat", SimpleNamespace())
    monkeypatch.setattr(adapter, "_lookup_live_video", not_live)
    await adapter.start()
    await adapter._lifecycle._task
    assert statuses[0] == (ConnectionStatus.CONNECTING, "")
    assert statuses[-1] == (ConnectionStatus.FAILED, "channel is not live")
    await adapter.stop()
    assert adapter.status == ConnectionStatus.STOPPED
