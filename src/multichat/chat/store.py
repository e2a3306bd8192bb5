"""Bounded in-memory message list for one viewer, with optional auto-expiry."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

from ..core.models import Platform
from .models import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 200
DEFAULT_EXPIRE_AFTER = 30.0  # seconds
DEFAULT_FADE_DURATION = 0.3  # seconds
DEFAULT_TICK_INTERVAL = 0.1  # seconds


@dataclass
class _Entry:
    message: ChatMessage
    arrived_at: float


class MessageStore:
    """Ordered, bounded list of displayed messages.

    Oldest messages are evicted first once ``capacity`` is exceeded. With
    ``auto_expire`` on (public overlay mode), a message is removed
    ``expire_after`` seconds after it arrived and spends the last
    ``fade_duration`` seconds of that in the fading set.

    Times come from ``clock`` (``time.monotonic`` by default), measured at
    :meth:`add`, so expiry follows local arrival rather than server time.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        auto_expire: bool = False,
        expire_after: float = DEFAULT_EXPIRE_AFTER,
        fade_duration: float = DEFAULT_FADE_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.expire_after = expire_after
        self.fade_duration = min(fade_duration, expire_after)
        self._auto_expire = auto_expire
        self._clock = clock
        self._entries: deque[_Entry] = deque()
        self._fading: set[str] = set()

    @property
    def auto_expire(self) -> bool:
        return self._auto_expire

    @auto_expire.setter
    def auto_expire(self, enabled: bool) -> None:
        self._auto_expire = enabled
        if not enabled:
            self._fading.clear()

    def add(self, message: ChatMessage) -> list[ChatMessage]:
        """Append a message. Returns any messages evicted to stay within capacity."""
        self._entries.append(_Entry(message, self._clock()))
        evicted: list[ChatMessage] = []
        while len(self._entries) > self.capacity:
            entry = self._entries.popleft()
            self._fading.discard(entry.message.id)
            evicted.append(entry.message)
        return evicted

    def tick(self) -> list[ChatMessage]:
        """Apply expiry and fading for the current time. Returns expired messages."""
        if not self._auto_expire:
            return []

        now = self._clock()
        expired: list[ChatMessage] = []
        while self._entries and now >= self._entries[0].arrived_at + self.expire_after:
            entry = self._entries.popleft()
            self._fading.discard(entry.message.id)
            expired.append(entry.message)

        fade_start = self.expire_after - self.fade_duration
        for entry in self._entries:
            if now - entry.arrived_at < fade_start:
                break  # arrival order, so everything after is younger
            self._fading.add(entry.message.id)

        return expired

    @property
    def messages(self) -> list[ChatMessage]:
        """Current messages in arrival order."""
        return [entry.message for entry in self._entries]

    @property
    def fading_ids(self) -> frozenset[str]:
        return frozenset(self._fading)

    def is_fading(self, message_id: str) -> bool:
        return message_id in self._fading

    def clear(self) -> None:
        self._entries.clear()
        self._fading.clear()

    def filtered(
        self, platforms: Iterable[Platform | str] | None = None, query: str = ""
    ) -> list[ChatMessage]:
        """Messages from the given platforms whose username or text contains ``query``.

        ``platforms`` of None means every platform. The search is case-insensitive.
        """
        allowed = {Platform(p) for p in platforms} if platforms is not None else None
        needle = query.strip().lower()
        result = []
        for entry in self._entries:
            message = entry.message
            if allowed is not None and message.platform not in allowed:
                continue
            if needle and not (
                needle in message.username.lower() or needle in message.text.lower()
            ):
                continue
            result.append(message)
        return result

    async def run(
        self,
        interval: float = DEFAULT_TICK_INTERVAL,
        on_expire: Callable[[list[ChatMessage]], None] | None = None,
    ) -> None:
        """Call :meth:`tick` every ``interval`` seconds until cancelled."""
        while True:
            expired = self.tick()
            if expired and on_expire is not None:
                try:
                    on_expire(expired)
                except Exception:
                    logger.exception("Expiry callback failed")
            await asyncio.sleep(interval)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self.messages)
