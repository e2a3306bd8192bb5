"""YouTube live chat adapter using pytchat."""

import asyncio
import functools
import logging
import re

import aiohttp

from ...core.models import ConnectionStatus, Platform
from ...core.settings import YouTubeSettings
from ..models import AdapterEvent
from .base import AdapterLifecycle, EventCallback, ReconnectBackoff, StatusCallback

logger = logging.getLogger(__name__)

YOUTUBE_LIVE_URL = "https://www.youtube.com/channel/{channel_id}/live"
POLL_INTERVAL = 0.5  # pytchat handles its own fetch timing

_CANONICAL_WATCH_RE = re.compile(
    r'<link rel="canonical" href="https://www\.youtube\.com/watch\?v=([\w-]{11})"'
)
_LIVE_NOW_RE = re.compile(r'"isLiveNow"\s*:\s*true')

# Username colors matching YouTube web chat
_ROLE_COLORS = {
    "owner": "#ffd600",
    "moderator": "#5e84f1",
    "member": "#2ba640",
}


def extract_live_video_id(html: str) -> str | None:
    """Return the video id of a channel's ``/live`` page if it is live now."""
    match = _CANONICAL_WATCH_RE.search(html)
    if not match or not _LIVE_NOW_RE.search(html):
        return None
    return match.group(1)


def youtube_badges(item) -> list[str]:
    """Badge identifiers for a pytchat chat item, in display order."""
    author = getattr(item, "author", None)

    def flag(name: str) -> bool:
        if getattr(item, name, False):
            return True
        return bool(author is not None and getattr(author, name, False))

    badges: list[str] = []
    if flag("isChatOwner"):
        badges.append("owner")
    if flag("isChatModerator"):
        badges.append("moderator")
    if flag("isChatSponsor"):
        badges.append("member")
    if flag("isVerified"):
        badges.append("verified")
    return badges


def pytchat_item_to_event(item) -> AdapterEvent | None:
    """Convert a pytchat chat item into an adapter event.

    Returns None for items with nothing to display.
    """
    author = getattr(item, "author", None)
    if author is not None:
        name = getattr(author, "name", "") or ""
        channel_id = getattr(author, "channelId", "") or ""
        badge_url = getattr(author, "badgeUrl", "") or ""
    else:
        name = getattr(item, "authorName", "") or ""
        channel_id = getattr(item, "authorChannelId", "") or ""
        badge_url = getattr(item, "badgeUrl", "") or ""

    badges = youtube_badges(item)
    text = getattr(item, "message", "") or ""
    item_type = getattr(item, "type", "textMessage") or "textMessage"
    amount = getattr(item, "amountString", "") or ""

    # SuperChat/SuperSticker with no text gets a placeholder
    if not text and item_type in ("superChat", "superSticker"):
        text = amount or f"[{item_type[0].upper()}{item_type[1:]}]"
    if not text:
        return None

    color = None
    for role in ("owner", "moderator", "member"):
        if role in badges:
            color = _ROLE_COLORS[role]
            break

    return AdapterEvent(
        username=name or channel_id,
        text=text,
        badges=badges,
        color=color,
        raw={
            "author_channel_id": channel_id,
            "user_id": channel_id,
            "badge_url": badge_url,
            "type": item_type,
            "amount": amount or None,
        },
    )


class YouTubeChatAdapter:
    """YouTube live chat adapter.

    Looks up the channel's current live video (unless a video id is
    configured) and polls pytchat for new messages in an executor.
    """

    platform = Platform.YOUTUBE

    def __init__(
        self,
        settings: YouTubeSettings,
        on_event: EventCallback,
        on_status: StatusCallback | None = None,
        debug: bool = False,
        max_reconnect_attempts: int = 10,
    ):
        self._settings = settings
        self._lifecycle = AdapterLifecycle(self.platform, on_event, on_status)
        self._backoff = ReconnectBackoff()
        self._debug = debug
        self._max_reconnect_attempts = max_reconnect_attempts
        self._pytchat = None  # pytchat.LiveChat instance
        self._video_id = ""

    @property
    def status(self) -> ConnectionStatus:
        return self._lifecycle.status

    @property
    def video_id(self) -> str:
        return self._video_id

    async def start(self) -> None:
        """Start monitoring the channel's live chat in the background."""
        if self._lifecycle.status in (ConnectionStatus.STOPPED, ConnectionStatus.FAILED):
            self._backoff.reset()
        self._lifecycle.start(self._run)

    async def stop(self) -> None:
        """Stop polling and release the pytchat instance."""
        await self._lifecycle.stop(self._cleanup)

    async def _run(self) -> None:
        try:
            import pytchat
        except ImportError:
            self._lifecycle.set_status(
                ConnectionStatus.FAILED,
                "pytchat library not installed. Install with: pip install pytchat",
            )
            return

        while not self._lifecycle.stopping:
            offline = False
            try:
                video_id = self._settings.video_id or await self._lookup_live_video()
                if video_id:
                    reason = await self._poll(pytchat, video_id)
                    offline = True
                else:
                    reason = "channel is not live"
                    offline = True
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                reason = str(e) or e.__class__.__name__
            finally:
                self._cleanup_pytchat()

            if self._lifecycle.stopping:
                break

            if offline and not self._settings.retry_when_offline:
                self._lifecycle.set_status(ConnectionStatus.FAILED, reason)
                return

            if self._backoff.exhausted(self._max_reconnect_attempts):
                self._lifecycle.set_status(
                    ConnectionStatus.FAILED,
                    f"gave up after {self._backoff.attempts} attempts: {reason}",
                )
                return

            self._lifecycle.set_status(ConnectionStatus.RECONNECTING, reason)
            await self._backoff.sleep("YouTube")

    async def _lookup_live_video(self) -> str | None:
        """Find the video id of the channel's current live stream."""
        url = YOUTUBE_LIVE_URL.format(channel_id=self._settings.channel_id)
        headers = {
            "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:134.0) Gecko/20100101 Firefox/134.0",
            "Accept-Language": "en-US,en;q=0.5",
        }
        async with aiohttp.ClientSession() as session:
            async with session.get(
                url, headers=headers, timeout=aiohttp.ClientTimeout(total=15)
            ) as resp:
                if resp.status != 200:
                    logger.warning(f"YouTube live page returned {resp.status}")
                    return None
                html = await resp.text()

        video_id = extract_live_video_id(html)
        if video_id:
            logger.info(f"YouTube channel {self._settings.channel_id} is live: {video_id}")
        return video_id

    async def _poll(self, pytchat, video_id: str) -> str:
        """Poll pytchat until the chat ends. Returns the reason it ended."""
        loop = asyncio.get_running_loop()
        self._video_id = video_id
        self._pytchat = await loop.run_in_executor(
            None, functools.partial(pytchat.create, video_id=video_id, interruptable=False)
        )
        self._backoff.reset()
        self._lifecycle.set_status(ConnectionStatus.CONNECTED, video_id)

        while not self._lifecycle.stopping and self._pytchat and self._pytchat.is_alive():
            # Run blocking HTTP call in executor to not block the event loop
            chat_data = await loop.run_in_executor(None, self._pytchat.get)

            # get() returns [] when stream is no longer alive
            if not chat_data or not hasattr(chat_data, "items"):
                await asyncio.sleep(2.0)
                continue

            for item in chat_data.items:
                self._handle_item(item)

            await asyncio.sleep(POLL_INTERVAL)

        if self._pytchat is None:
            return "live chat closed"
        try:
            self._pytchat.raise_for_status()
        except Exception as e:
            return f"live chat ended ({e.__class__.__name__})"
        return "live chat ended"

    def _handle_item(self, item) -> None:
        """Deliver one chat item. Malformed items are logged and dropped."""
        try:
            event = pytchat_item_to_event(item)
            if event is not None:
                self._lifecycle.deliver(event)
        except Exception as e:
            if self._debug:
                logger.exception("YouTube: dropping malformed chat item")
            else:
                logger.warning(f"YouTube: dropping malformed chat item ({e})")

    def _cleanup_pytchat(self) -> None:
        """Clean up pytchat instance."""
        if self._pytchat:
            try:
                self._pytchat.terminate()
            except Exception as e:
                logger.debug(f"pytchat terminate failed: {e}")
            self._pytchat = None

    async def _cleanup(self) -> None:
        self._cleanup_pytchat()
