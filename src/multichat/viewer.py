"""Terminal viewer for the aggregated chat feed.

Connects to a multichat server, keeps the feed in a :class:`MessageStore`
and prints it with badges and emotes resolved against the server's catalogs.
"""

import asyncio
import json
import logging
import sys
from collections.abc import Iterable
from typing import TextIO
from urllib.parse import urlsplit, urlunsplit

import aiohttp

from .chat.badges import BadgeCatalog, resolve_message_badges
from .chat.connections.base import ReconnectBackoff
from .chat.emotes.catalog import EmoteCatalog, resolve_emotes
from .chat.models import ChatMessage, EmoteSegment, is_chat_frame
from .chat.store import MessageStore
from .core.models import Platform

logger = logging.getLogger(__name__)

_CLEAR_SCREEN = "\033[2J\033[H"
_DIM = "\033[2m"
_RESET = "\033[0m"


def http_base_url(ws_url: str) -> str:
    """``ws://host:port/ws`` -> ``http://host:port``"""
    parts = urlsplit(ws_url)
    scheme = {"ws": "http", "wss": "https"}.get(parts.scheme, parts.scheme)
    return urlunsplit((scheme, parts.netloc, "", "", ""))


async def fetch_catalogs(
    session: aiohttp.ClientSession, base_url: str
) -> tuple[BadgeCatalog, EmoteCatalog]:
    """Fetch the server's catalogs once. Failures give empty catalogs."""
    badges, emotes = BadgeCatalog(), EmoteCatalog()
    timeout = aiohttp.ClientTimeout(total=15)
    try:
        async with session.get(f"{base_url}/api/badges", timeout=timeout) as resp:
            if resp.status == 200:
                badges = BadgeCatalog.from_dict(await resp.json())
        async with session.get(f"{base_url}/api/emotes", timeout=timeout) as resp:
            if resp.status == 200:
                emotes = EmoteCatalog.from_dict(await resp.json())
    except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
        logger.warning(f"Could not load catalogs from {base_url}: {e}")
    logger.info(f"Loaded {len(badges)} badges and {len(emotes)} emotes")
    return badges, emotes


class ChatViewer:
    """Renders the feed from one server connection.

    In private mode, badges without an image are shown by their id; in public
    (overlay) mode they are left out.
    """

    def __init__(
        self,
        url: str,
        store: MessageStore,
        badges: BadgeCatalog | None = None,
        emotes: EmoteCatalog | None = None,
        private: bool = False,
        platforms: Iterable[Platform | str] | None = None,
        query: str = "",
        redraw: bool = False,
        out: TextIO = sys.stdout,
    ):
        self.url = url
        self.store = store
        self.badges = badges
        self.emotes = emotes
        self.private = private
        self.platforms = {Platform(p) for p in platforms} if platforms else None
        self.query = query
        self.redraw = redraw
        self._out = out
        self._backoff = ReconnectBackoff()

    # Rendering

    def render_badges(self, message: ChatMessage) -> str:
        labels = []
        for resolution in resolve_message_badges(self.badges, message):
            if resolution.resolved or self.private:
                labels.append(f"[{resolution.label}]")
        return "".join(labels)

    def render_text(self, message: ChatMessage) -> str:
        return "".join(
            f":{segment.emote.name}:" if isinstance(segment, EmoteSegment) else segment.text
            for segment in resolve_emotes(message.text, self.emotes)
        )

    def render(self, message: ChatMessage) -> str:
        """One display line for a message."""
        badges = self.render_badges(message)
        prefix = f"[{message.platform.value}] " + (f"{badges} " if badges else "")
        return f"{prefix}{message.username}: {self.render_text(message)}"

    def snapshot(self) -> list[str]:
        """Display lines for the visible messages; fading ones are dimmed."""
        lines = []
        for message in self.store.filtered(self.platforms, self.query):
            line = self.render(message)
            if self.store.is_fading(message.id):
                line = f"{_DIM}{line}{_RESET}"
            lines.append(line)
        return lines

    def _write(self, text: str) -> None:
        self._out.write(text + "\n")
        self._out.flush()

    def refresh(self) -> None:
        self._out.write(_CLEAR_SCREEN + "\n".join(self.snapshot()) + "\n")
        self._out.flush()

    # Feed handling

    def handle_frame(self, frame: dict) -> ChatMessage | None:
        """Apply one wire frame. Returns the chat message it carried, if any."""
        if not is_chat_frame(frame):
            self._handle_status(frame)
            return None

        try:
            message = ChatMessage.from_frame(frame)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Dropping malformed chat frame: {e}")
            return None

        self.store.add(message)
        if self.redraw:
            self.refresh()
        elif self._visible(message):
            self._write(self.render(message))
        return message

    def _visible(self, message: ChatMessage) -> bool:
        if self.platforms is not None and message.platform not in self.platforms:
            return False
        needle = self.query.strip().lower()
        return not needle or needle in message.username.lower() or needle in message.text.lower()

    def _handle_status(self, frame: dict) -> None:
        data = frame.get("data") or {}
        if frame.get("type") == "connection":
            logger.info(frame.get("message", "connected"))
        elif data:
            detail = f" ({data['message']})" if data.get("message") else ""
            logger.info(f"{data.get('platform', '?')}: {data.get('status', '?')}{detail}")

    def _on_expire(self, expired: list[ChatMessage]) -> None:
        if self.redraw:
            self.refresh()

    async def run(self, load_catalogs: bool = True) -> None:
        """Connect and display until cancelled, reconnecting with backoff."""
        ticker = None
        if self.redraw or self.store.auto_expire:
            ticker = asyncio.create_task(self.store.run(on_expire=self._on_expire))
        try:
            async with aiohttp.ClientSession() as session:
                if load_catalogs:
                    self.badges, self.emotes = await fetch_catalogs(
                        session, http_base_url(self.url)
                    )
                while True:
                    try:
                        await self._read(session)
                        reason = "server closed the connection"
                    except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                        reason = str(e) or e.__class__.__name__
                    logger.warning(f"Disconnected from {self.url}: {reason}")
                    await self._backoff.sleep("viewer")
        finally:
            if ticker is not None:
                ticker.cancel()

    async def _read(self, session: aiohttp.ClientSession) -> None:
        async with session.ws_connect(self.url, heartbeat=30) as ws:
            self._backoff.reset()
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        frame = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Dropping non-JSON frame")
                        continue
                    if isinstance(frame, dict):
                        self.handle_frame(frame)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
