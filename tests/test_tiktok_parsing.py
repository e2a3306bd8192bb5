"""Tests for TikTok comment conversion."""

import sys
from types import SimpleNamespace

from multichat.chat.connections.tiktok import TikTokChatAdapter, comment_to_event
from multichat.core.models import ConnectionStatus
from multichat.core.settings import TikTokSettings


def _comment(text="hello", **user_fields):
    user = {
        "unique_id": "viewer123",
        "nickname": "Viewer",
        "id": 987654321,
        "is_moderator": False,
        "is_subscriber": False,
        "is_top_gifter": False,
    }
    user.update(user_fields)
    return SimpleNamespace(comment=text, user=SimpleNamespace(**user))


def test_comment_to_event_basic():
    event = comment_to_event(_comment("wow"))
    assert event.username == "Viewer"
    assert event.text == "wow"
    assert event.badges == []
    assert event.raw == {"unique_id": "viewer123", "user_id": "987654321", "subscriber": False}


def test_comment_to_event_badges():
    event = comment_to_event(_comment(is_moderator=True, is_subscriber=True, is_top_gifter=True))
    assert event.badges == ["moderator", "subscriber", "top_gifter"]
    assert event.raw["subscriber"] is True


def test_comment_to_event_flag_methods():
    event = comment_to_event(_comment(is_subscriber=lambda: True))
    assert event.badges == ["subscriber"]


def test_comment_to_event_missing_nickname():
    assert comment_to_event(_comment(nickname="")).username == "viewer123"


def test_comment_to_event_empty_comment():
    assert comment_to_event(_comment("")) is None


def test_comment_to_event_without_user():
    event = comment_to_event(SimpleNamespace(comment="hi", user=None))
    assert event.username == ""
    assert event.badges == []


async def test_missing_library_reports_failed(monkeypatch):
    statuses = []
    adapter = TikTokChatAdapter(
        TikTokSettings(unique_id="@creator"),
        on_event=lambda platform, event: None,
        on_status=lambda platform, status, detail: statuses.append(status),
    )
    # None in sys.modules makes the import raise ImportError
    monkeypatch.setitem(sys.modules, "TikTokLive", None)
    await adapter.start()
    await adapter._lifecycle._task
    assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.FAILED]
    await adapter.stop()
    assert adapter.status == ConnectionStatus.STOPPED


async def test_on_comment_drops_malformed_event():
    events = []
    adapter = TikTokChatAdapter(
        TikTokSettings(unique_id="creator"),
        on_event=lambda platform, event: events.append(event),
    )

    class Broken:
        @property
        def comment(self):
            raise RuntimeError("bad proto")

    await adapter._on_comment(Broken())
    await adapter._on_comment(_comment("fine"))
    assert [event.text for event in events] == ["fine"]
