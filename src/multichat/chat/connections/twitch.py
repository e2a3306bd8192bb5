"""Twitch IRC chat adapter over WebSocket."""

import asyncio
import logging
import time

import aiohttp

from ...core.models import ConnectionStatus, Platform
from ...core.settings import TwitchSettings
from ..models import AdapterEvent
from .base import AdapterLifecycle, EventCallback, ReconnectBackoff, StatusCallback

logger = logging.getLogger(__name__)

TWITCH_IRC_WS_URL = "wss://irc-ws.chat.twitch.tv:443"

# IRC capabilities to request
IRC_CAPS = [
    "twitch.tv/membership",
    "twitch.tv/tags",
    "twitch.tv/commands",
]


def parse_irc_tags(tag_string: str) -> dict[str, str]:
    """Parse IRC tags string into a dictionary.

    Tags format: @key1=value1;key2=value2;...
    """
    tags: dict[str, str] = {}
    if not tag_string:
        return tags

    # Remove leading '@' if present
    if tag_string.startswith("@"):
        tag_string = tag_string[1:]

    for pair in tag_string.split(";"):
        if "=" in pair:
            key, value = pair.split("=", 1)
            # Unescape IRC tag values
            value = (
                value.replace("\\:", ";")
                .replace("\\s", " ")
                .replace("\\\\", "\\")
                .replace("\\r", "\r")
                .replace("\\n", "\n")
            )
            tags[key] = value
        else:
            tags[pair] = ""

    return tags


def parse_irc_message(raw: str) -> dict:
    """Parse a raw IRC message into components.

    Returns dict with keys: tags, prefix, command, params, trailing
    """
    result: dict = {"tags": {}, "prefix": "", "command": "", "params": [], "trailing": ""}

    pos = 0

    # Parse tags
    if raw.startswith("@"):
        space_idx = raw.find(" ")
        if space_idx < 0:
            return result
        result["tags"] = parse_irc_tags(raw[:space_idx])
        pos = space_idx + 1

    if pos >= len(raw):
        return result

    # Parse prefix
    if raw[pos] == ":":
        space_idx = raw.find(" ", pos)
        if space_idx < 0:
            return result
        result["prefix"] = raw[pos + 1 : space_idx]
        pos = space_idx + 1

    # Parse command and params
    trailing_idx = raw.find(" :", pos)
    if trailing_idx >= 0:
        result["trailing"] = raw[trailing_idx + 2 :]
        remaining = raw[pos:trailing_idx]
    else:
        remaining = raw[pos:]

    parts = remaining.split(" ")
    result["command"] = parts[0]
    result["params"] = parts[1:] if len(parts) > 1 else []

    return result


def parse_badges(badges_tag: str) -> list[tuple[str, str]]:
    """Parse a Twitch ``badges`` or ``badge-info`` tag.

    Format: badge_name/version,badge_name/version
    Returns (name, version) pairs in source order.
    """
    badges: list[tuple[str, str]] = []
    if not badges_tag:
        return badges

    for badge_str in badges_tag.split(","):
        if "/" in badge_str:
            name, version = badge_str.split("/", 1)
            badges.append((name, version))
        elif badge_str:
            badges.append((badge_str, ""))

    return badges


def normalize_channel(channel: str) -> str:
    """IRC channel names are lowercase without the leading '#'."""
    return channel.strip().lstrip("#").lower()


def _to_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def privmsg_to_event(parsed: dict) -> AdapterEvent:
    """Convert a parsed PRIVMSG into an adapter event."""
    tags = parsed["tags"]
    text = parsed["trailing"]

    # Check for /me action
    is_action = False
    if text.startswith("\x01ACTION ") and text.endswith("\x01"):
        is_action = True
        text = text[8:-1]

    login = parsed["prefix"].split("!")[0] if "!" in parsed["prefix"] else parsed["prefix"]
    badges = parse_badges(tags.get("badges", ""))
    badge_versions = {name: version for name, version in badges}
    badge_info = dict(parse_badges(tags.get("badge-info", "")))

    # badge-info carries the exact month count, the badge version only the tier
    months = _to_int(badge_info.get("subscriber"))
    if months is None:
        months = _to_int(badge_versions.get("subscriber"))
    cheer_amount = _to_int(tags.get("bits"))
    if cheer_amount is None:
        cheer_amount = _to_int(badge_versions.get("bits"))

    channel = parsed["params"][0].lstrip("#") if parsed["params"] else ""

    return AdapterEvent(
        username=tags.get("display-name") or login,
        text=text,
        badges=[name for name, _ in badges],
        color=tags.get("color") or None,
        raw={
            "channel": channel,
            "tags": tags,
            "badge_versions": badge_versions,
            "subscriptionMonths": months,
            "cheerAmount": cheer_amount,
            "user_id": tags.get("user-id", ""),
            "login": login,
            "is_action": is_action,
        },
    )


class TwitchChatAdapter:
    """Twitch IRC chat adapter over WebSocket.

    Connects to Twitch's IRC WebSocket endpoint, anonymously or with an OAuth
    token, joins the configured channels and reports every PRIVMSG.
    """

    platform = Platform.TWITCH

    def __init__(
        self,
        settings: TwitchSettings,
        on_event: EventCallback,
        on_status: StatusCallback | None = None,
        debug: bool = False,
        max_reconnect_attempts: int = 10,
    ):
        self._settings = settings
        self._channels = [normalize_channel(c) for c in settings.channels if c.strip()]
        self._oauth_token = settings.oauth_token.removeprefix("oauth:")
        self._lifecycle = AdapterLifecycle(self.platform, on_event, on_status)
        self._backoff = ReconnectBackoff()
        self._debug = debug
        self._max_reconnect_attempts = max_reconnect_attempts
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._session: aiohttp.ClientSession | None = None
        self._nick = ""  # Set during auth (lowercase for IRC)
        self._authenticated = False
        self._auth_failed = False
        self._reconnect_requested = False

    @property
    def status(self) -> ConnectionStatus:
        return self._lifecycle.status

    @property
    def channels(self) -> list[str]:
        return list(self._channels)

    async def start(self) -> None:
        """Connect to the configured channels in the background."""
        if self._lifecycle.status in (ConnectionStatus.STOPPED, ConnectionStatus.FAILED):
            self._backoff.reset()
        self._lifecycle.start(self._run)

    async def stop(self) -> None:
        """Disconnect and stop reconnecting."""
        await self._lifecycle.stop(self._cleanup)

    async def _run(self) -> None:
        """Connect, read, and reconnect with backoff until stopped."""
        while not self._lifecycle.stopping:
            reason = "connection closed"
            try:
                await self._connect()
                await self._read_loop()
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                reason = str(e) or e.__class__.__name__
            finally:
                await self._cleanup()

            if self._lifecycle.stopping:
                break

            if self._auth_failed:
                # Fall back to an anonymous read-only login
                logger.warning("Twitch auth failed, reconnecting anonymously")
                self._oauth_token = ""
                self._auth_failed = False
                reason = "authentication failed"

            if self._backoff.exhausted(self._max_reconnect_attempts):
                self._lifecycle.set_status(
                    ConnectionStatus.FAILED,
                    f"gave up after {self._backoff.attempts} attempts: {reason}",
                )
                return

            self._lifecycle.set_status(ConnectionStatus.RECONNECTING, reason)
            await self._backoff.sleep("Twitch")

    async def _connect(self) -> None:
        """Open the IRC WebSocket, authenticate and join channels."""
        self._reconnect_requested = False
        self._session = aiohttp.ClientSession()
        self._ws = await self._session.ws_connect(TWITCH_IRC_WS_URL, heartbeat=60)

        # Request capabilities
        for cap in IRC_CAPS:
            await self._ws.send_str(f"CAP REQ :{cap}")

        if self._oauth_token and self._settings.username:
            await self._ws.send_str(f"PASS oauth:{self._oauth_token}")
            self._nick = self._settings.username.lower()
            self._authenticated = True
        else:
            self._nick = f"justinfan{int(time.time()) % 100000}"
            self._authenticated = False

        logger.info(f"Twitch IRC: connecting as {self._nick} to {self._channels}")
        await self._ws.send_str(f"NICK {self._nick}")

        for channel in self._channels:
            await self._ws.send_str(f"JOIN #{channel}")

    async def _read_loop(self) -> None:
        """Main read loop for incoming IRC messages."""
        async for msg in self._ws:
            if self._lifecycle.stopping:
                break

            if msg.type == aiohttp.WSMsgType.TEXT:
                for line in msg.data.split("\r\n"):
                    if line:
                        await self._handle_line(line)
                if self._reconnect_requested or self._auth_failed:
                    break

            elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                break

    async def _handle_line(self, raw: str) -> None:
        """Handle a single IRC line. Malformed lines are logged and dropped."""
        # Handle PING
        if raw.startswith("PING"):
            if self._ws and not self._ws.closed:
                await self._ws.send_str(f"PONG {raw[5:]}")
            return

        try:
            parsed = parse_irc_message(raw)
            command = parsed["command"]

            if command == "PRIVMSG":
                self._handle_privmsg(parsed)
            elif command == "001":
                # RPL_WELCOME: the server accepted our login
                self._backoff.reset()
                self._lifecycle.set_status(
                    ConnectionStatus.CONNECTED, ", ".join(f"#{c}" for c in self._channels)
                )
            elif command == "GLOBALUSERSTATE":
                display_name = parsed["tags"].get("display-name", "")
                if display_name:
                    self._nick = display_name.lower()
            elif command == "NOTICE":
                text = parsed.get("trailing", "")
                if "Login" in text and ("unsuccessful" in text or "failed" in text):
                    logger.warning(f"Twitch IRC: auth failed: {text}")
                    self._auth_failed = True
            elif command == "RECONNECT":
                logger.info("Twitch IRC: server requested reconnect")
                self._reconnect_requested = True
        except Exception as e:
            if self._debug:
                logger.exception(f"Twitch IRC: dropping malformed line: {raw[:200]}")
            else:
                logger.warning(f"Twitch IRC: dropping malformed line ({e})")

    def _handle_privmsg(self, parsed: dict) -> None:
        """Handle a PRIVMSG (chat message)."""
        event = privmsg_to_event(parsed)
        # Drop echoes of our own messages
        if self._authenticated and event.raw["login"].lower() == self._nick:
            return
        self._lifecycle.deliver(event)

    async def _cleanup(self) -> None:
        """Clean up WebSocket and session."""
        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
