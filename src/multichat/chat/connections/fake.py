"""Synthetic chat source for testing overlays without live streams."""

import asyncio
import logging
import random

from ...core.models import ConnectionStatus, Platform
from ..models import AdapterEvent
from .base import EventCallback

logger = logging.getLogger(__name__)

DEFAULT_FAKE_INTERVAL = 2.0  # seconds


class FakeMessageGenerator:
    """Emits a random chat message on a random platform every ``interval`` seconds."""

    name = "fake"

    def __init__(
        self,
        on_event: EventCallback,
        interval: float = DEFAULT_FAKE_INTERVAL,
        rng: random.Random | None = None,
    ):
        self._on_event = on_event
        self._interval = interval
        self._rng = rng or random.Random()
        self._task: asyncio.Task | None = None
        self._stopping = False
        self.status = ConnectionStatus.IDLE

    def make_event(self) -> tuple[Platform, AdapterEvent]:
        """Build one random message."""
        platform = self._rng.choice(list(Platform))
        event = AdapterEvent(
            username=f"User{self._rng.randrange(1000)}",
            text=f"Hello world {self._rng.randrange(100)}",
            badges=["test"] if self._rng.random() > 0.7 else [],
            raw={"fake": True},
        )
        return platform, event

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stopping = False
        self.status = ConnectionStatus.CONNECTED
        self._task = asyncio.create_task(self._run(), name="multichat-fake")

    async def stop(self) -> None:
        self._stopping = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.status = ConnectionStatus.STOPPED

    async def _run(self) -> None:
        while not self._stopping:
            await asyncio.sleep(self._interval)
            if self._stopping:
                break
            platform, event = self.make_event()
            logger.debug(f"sending fake message on {platform.value}")
            try:
                self._on_event(platform, event)
            except Exception:
                logger.exception("fake message delivery failed")
