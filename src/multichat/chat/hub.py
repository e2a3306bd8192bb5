"""Fan-out of chat and status events to connected viewers."""

import asyncio
import json
import logging
from collections import deque

import aiohttp
from aiohttp import web

from ..core.models import ConnectionStatus, Platform
from .models import ChatMessage, StatusEvent

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 200
VIEWER_HEARTBEAT = 30.0  # seconds


class BroadcastHub:
    """Holds the open viewer connections and republishes every event to them.

    Publishes are serialized by a lock so every viewer sees events in the same
    order. A viewer whose send fails is dropped; the others are unaffected.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE, replay_history: bool = False):
        self._viewers: set[web.WebSocketResponse] = set()
        self._lock = asyncio.Lock()
        self._history: deque[ChatMessage] = deque(maxlen=max(history_size, 0))
        self._replay_history = replay_history

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    def recent(self) -> list[ChatMessage]:
        """Recent chat messages, oldest first."""
        return list(self._history)

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """aiohttp handler for one viewer connection."""
        ws = web.WebSocketResponse(heartbeat=VIEWER_HEARTBEAT)
        await ws.prepare(request)

        # Registered under the publish lock so the ack is always the first frame
        async with self._lock:
            try:
                await ws.send_str(_dumps(StatusEvent.connection_ack().to_frame()))
                if self._replay_history:
                    for message in self._history:
                        await ws.send_str(_dumps(message.to_frame()))
            except (ConnectionError, RuntimeError) as e:
                logger.warning(f"Viewer {request.remote} left during handshake: {e}")
                return ws
            self._viewers.add(ws)

        logger.info(f"Viewer connected from {request.remote} ({self.viewer_count} total)")
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning(f"Viewer connection error: {ws.exception()}")
                    break
                # Viewers are receive-only; anything they send is ignored
        finally:
            self._viewers.discard(ws)
            logger.info(f"Viewer disconnected ({self.viewer_count} remaining)")

        return ws

    def add_viewer(self, ws) -> None:
        """Register an already-prepared viewer connection."""
        self._viewers.add(ws)

    async def publish(self, frame: dict) -> int:
        """Send one frame to every open viewer. Returns the number reached."""
        data = _dumps(frame)
        async with self._lock:
            viewers = list(self._viewers)
            if not viewers:
                return 0
            results = await asyncio.gather(
                *(self._send(ws, data) for ws in viewers), return_exceptions=True
            )

        delivered = 0
        for ws, result in zip(viewers, results):
            if result is True:
                delivered += 1
            else:
                if isinstance(result, BaseException):
                    logger.warning(f"Dropping viewer after send failure: {result!r}")
                self._viewers.discard(ws)
        return delivered

    async def _send(self, ws, data: str) -> bool:
        if ws.closed:
            return False
        await ws.send_str(data)
        return True

    async def publish_chat(self, message: ChatMessage) -> int:
        """Record a chat message in the recent history and broadcast it."""
        self._history.append(message)
        return await self.publish(message.to_frame())

    async def publish_status(
        self, platform: Platform, status: ConnectionStatus, detail: str = ""
    ) -> int:
        return await self.publish(StatusEvent.for_platform(platform, status, detail).to_frame())

    async def close(self) -> None:
        """Close every viewer connection."""
        viewers, self._viewers = list(self._viewers), set()
        for ws in viewers:
            try:
                await ws.close(code=aiohttp.WSCloseCode.GOING_AWAY, message=b"Server shutdown")
            except Exception as e:
                logger.debug(f"Error closing viewer: {e}")


def _dumps(frame: dict) -> str:
    return json.dumps(frame, default=str)
