"""TikTok LIVE chat adapter using TikTokLive."""

import logging

from ...core.models import ConnectionStatus, Platform
from ...core.settings import TikTokSettings
from ..models import AdapterEvent
from .base import AdapterLifecycle, EventCallback, ReconnectBackoff, StatusCallback

logger = logging.getLogger(__name__)

# (badge id, ExtendedUser attribute) in display order
_BADGE_FLAGS = [
    ("moderator", "is_moderator"),
    ("subscriber", "is_subscriber"),
    ("top_gifter", "is_top_gifter"),
]


def _flag(obj, name: str) -> bool:
    """Read a boolean flag that may be exposed as an attribute or a method."""
    value = getattr(obj, name, False)
    if callable(value):
        try:
            value = value()
        except TypeError:
            return False
    return bool(value)


def comment_to_event(comment) -> AdapterEvent | None:
    """Convert a TikTokLive ``CommentEvent`` into an adapter event."""
    text = getattr(comment, "comment", "") or ""
    if not text:
        return None

    user = getattr(comment, "user", None)
    unique_id = (getattr(user, "unique_id", "") or "") if user else ""
    nickname = (getattr(user, "nickname", "") or "") if user else ""
    user_id = str(getattr(user, "id", "") or "") if user else ""
    badges = [badge for badge, attr in _BADGE_FLAGS if user is not None and _flag(user, attr)]

    return AdapterEvent(
        username=nickname or unique_id,
        text=text,
        badges=badges,
        raw={
            "unique_id": unique_id,
            "user_id": user_id,
            "subscriber": "subscriber" in badges,
        },
    )


class TikTokChatAdapter:
    """TikTok LIVE chat adapter.

    Runs a TikTokLive client for ``@unique_id`` and forwards its comment
    events. An offline creator is retried when ``retry_when_offline`` is set.
    """

    platform = Platform.TIKTOK

    def __init__(
        self,
        settings: TikTokSettings,
        on_event: EventCallback,
        on_status: StatusCallback | None = None,
        debug: bool = False,
        max_reconnect_attempts: int = 10,
    ):
        self._settings = settings
        self._unique_id = "@" + settings.unique_id.strip().lstrip("@")
        self._lifecycle = AdapterLifecycle(self.platform, on_event, on_status)
        self._backoff = ReconnectBackoff()
        self._debug = debug
        self._max_reconnect_attempts = max_reconnect_attempts
        self._client = None  # TikTokLiveClient instance

    @property
    def status(self) -> ConnectionStatus:
        return self._lifecycle.status

    async def start(self) -> None:
        """Connect to the creator's LIVE in the background."""
        if self._lifecycle.status in (ConnectionStatus.STOPPED, ConnectionStatus.FAILED):
            self._backoff.reset()
        self._lifecycle.start(self._run)

    async def stop(self) -> None:
        """Disconnect and stop reconnecting."""
        await self._lifecycle.stop(self._cleanup)

    async def _run(self) -> None:
        try:
            from TikTokLive import TikTokLiveClient
            from TikTokLive.client.errors import UserOfflineError
            from TikTokLive.events import CommentEvent, ConnectEvent
        except ImportError:
            self._lifecycle.set_status(
                ConnectionStatus.FAILED,
                "TikTokLive library not installed. Install with: pip install TikTokLive",
            )
            return

        while not self._lifecycle.stopping:
            offline = False
            self._client = TikTokLiveClient(unique_id=self._unique_id)
            self._client.add_listener(ConnectEvent, self._on_connect)
            self._client.add_listener(CommentEvent, self._on_comment)
            try:
                # Returns once the LIVE ends or the socket drops
                await self._client.connect()
                reason = "LIVE ended"
                offline = True
            except UserOfflineError:
                reason = f"{self._unique_id} is not live"
                offline = True
            except Exception as e:
                reason = str(e) or e.__class__.__name__
            finally:
                await self._cleanup()

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
            await self._backoff.sleep("TikTok")

    async def _on_connect(self, event) -> None:
        self._backoff.reset()
        self._lifecycle.set_status(ConnectionStatus.CONNECTED, self._unique_id)

    async def _on_comment(self, event) -> None:
        """Deliver one comment. Malformed events are logged and dropped."""
        try:
            chat_event = comment_to_event(event)
            if chat_event is not None:
                self._lifecycle.deliver(chat_event)
        except Exception as e:
            if self._debug:
                logger.exception("TikTok: dropping malformed comment")
            else:
                logger.warning(f"TikTok: dropping malformed comment ({e})")

    async def _cleanup(self) -> None:
        client, self._client = self._client, None
        if client is not None and getattr(client, "connected", False):
            await client.disconnect()
