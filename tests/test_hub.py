"""Tests for BroadcastHub and the HTTP endpoints."""

import asyncio

import pytest
from aiohttp.test_utils import TestClient, TestServer

from multichat.chat.badges import BadgeCatalog
from multichat.chat.hub import BroadcastHub
from multichat.chat.models import CONNECTION_ACK_TEXT
from multichat.core.models import ConnectionStatus, Platform
from multichat.core.settings import Settings
from multichat.server import Catalogs, create_app

RECEIVE_TIMEOUT = 2.0


class _Viewer:
    """Stand-in for a WebSocketResponse."""

    def __init__(self, fail=False):
        self.closed = False
        self.fail = fail
        self.received = []

    async def send_str(self, data):
        if self.fail:
            raise ConnectionResetError("Cannot write to closing transport")
        self.received.append(data)


def _make_client(hub: BroadcastHub, badge_catalog: BadgeCatalog | None = None) -> TestClient:
    catalogs = Catalogs(badges=badge_catalog or BadgeCatalog(), loaded=True)
    return TestClient(TestServer(create_app(Settings(), hub=hub, catalogs=catalogs)))


@pytest.fixture
async def hub_client():
    hub = BroadcastHub()
    async with _make_client(hub) as client:
        yield hub, client


# --- fan-out ---


async def test_publish_without_viewers():
    assert await BroadcastHub().publish({"type": "connection"}) == 0


async def test_failing_viewer_is_dropped(make_message):
    hub = BroadcastHub()
    good, bad, other = _Viewer(), _Viewer(fail=True), _Viewer()
    for viewer in (good, bad, other):
        hub.add_viewer(viewer)

    assert await hub.publish_chat(make_message("first")) == 2
    assert hub.viewer_count == 2
    assert await hub.publish_chat(make_message("second")) == 2
    assert len(good.received) == 2
    assert len(other.received) == 2


async def test_closed_viewer_is_dropped(make_message):
    hub = BroadcastHub()
    viewer = _Viewer()
    viewer.closed = True
    hub.add_viewer(viewer)
    assert await hub.publish_chat(make_message()) == 0
    assert hub.viewer_count == 0


async def test_history_is_bounded(make_message):
    hub = BroadcastHub(history_size=3)
    messages = [make_message(f"m{i}") for i in range(5)]
    for message in messages:
        await hub.publish_chat(message)
    assert hub.recent() == messages[-3:]


async def test_publish_status_frame():
    hub = BroadcastHub()
    viewer = _Viewer()
    hub.add_viewer(viewer)
    await hub.publish_status(Platform.TWITCH, ConnectionStatus.CONNECTED, "#somechannel")
    assert '"type": "twitch-status"' in viewer.received[0]


# --- WebSocket viewers ---


async def test_ack_is_first_frame(hub_client):
    _, client = hub_client
    ws = await client.ws_connect("/ws")
    frame = await ws.receive_json(timeout=RECEIVE_TIMEOUT)
    assert frame == {"type": "connection", "message": CONNECTION_ACK_TEXT}
    await ws.close()


async def test_root_path_accepts_websocket(hub_client):
    _, client = hub_client
    ws = await client.ws_connect("/")
    assert (await ws.receive_json(timeout=RECEIVE_TIMEOUT))["type"] == "connection"
    await ws.close()


async def test_viewers_see_identical_order(hub_client, make_message):
    hub, client = hub_client
    viewers = [await client.ws_connect("/ws") for _ in range(2)]
    for ws in viewers:
        await ws.receive_json(timeout=RECEIVE_TIMEOUT)  # ack

    messages = [make_message(f"message {i}") for i in range(10)]
    await asyncio.gather(*(hub.publish_chat(message) for message in messages))

    orders = []
    for ws in viewers:
        frames = [await ws.receive_json(timeout=RECEIVE_TIMEOUT) for _ in messages]
        orders.append([frame["id"] for frame in frames])
        await ws.close()
    assert orders[0] == orders[1]
    assert sorted(orders[0]) == sorted(m.id for m in messages)


async def test_no_history_replay_by_default(hub_client, make_message):
    hub, client = hub_client
    await hub.publish_chat(make_message("before"))
    ws = await client.ws_connect("/ws")
    await ws.receive_json(timeout=RECEIVE_TIMEOUT)  # ack
    await hub.publish_chat(make_message("after"))
    frame = await ws.receive_json(timeout=RECEIVE_TIMEOUT)
    assert frame["message"] == "after"
    await ws.close()


async def test_history_replay_after_ack(make_message):
    hub = BroadcastHub(replay_history=True)
    await hub.publish_chat(make_message("earlier"))
    async with _make_client(hub) as client:
        ws = await client.ws_connect("/ws")
        assert (await ws.receive_json(timeout=RECEIVE_TIMEOUT))["type"] == "connection"
        assert (await ws.receive_json(timeout=RECEIVE_TIMEOUT))["message"] == "earlier"
        await ws.close()


async def test_viewer_removed_on_disconnect(hub_client):
    hub, client = hub_client
    ws = await client.ws_connect("/ws")
    await ws.receive_json(timeout=RECEIVE_TIMEOUT)
    assert hub.viewer_count == 1
    await ws.close()
    for _ in range(50):
        if hub.viewer_count == 0:
            break
        await asyncio.sleep(0.01)
    assert hub.viewer_count == 0


# --- HTTP endpoints ---


async def test_health(hub_client):
    _, client = hub_client
    resp = await client.get("/health")
    assert resp.status == 200
    assert await resp.json() == {"ok": True}


async def test_status_without_adapters(hub_client):
    _, client = hub_client
    resp = await client.get("/api/status")
    assert await resp.json() == {}


async def test_start_unconfigured_platform(hub_client):
    _, client = hub_client
    resp = await client.post("/api/twitch/start")
    assert resp.status == 404


async def test_start_unknown_platform(hub_client):
    _, client = hub_client
    resp = await client.post("/api/myspace/stop")
    assert resp.status == 404


async def test_index_without_upgrade(hub_client):
    _, client = hub_client
    resp = await client.get("/")
    assert "/ws" in await resp.text()


async def test_badges_endpoint(badge_catalog):
    async with _make_client(BroadcastHub(), badge_catalog) as client:
        resp = await client.get("/api/badges")
        data = await resp.json()
    assert BadgeCatalog.from_dict(data).to_dict() == badge_catalog.to_dict()


async def test_emotes_endpoint(hub_client):
    _, client = hub_client
    resp = await client.get("/api/emotes")
    assert await resp.json() == {"emotes": []}
