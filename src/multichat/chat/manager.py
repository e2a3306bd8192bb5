"""Adapter supervision: builds adapters, wires them to the hub, stops them."""

import asyncio
import logging

from ..core.models import ConnectionStatus, Platform
from ..core.settings import Settings
from .connections.base import ChatAdapter
from .connections.fake import FakeMessageGenerator
from .connections.tiktok import TikTokChatAdapter
from .connections.twitch import TwitchChatAdapter
from .connections.youtube import YouTubeChatAdapter
from .hub import BroadcastHub
from .models import AdapterEvent, ChatMessage, StatusEvent
from .normalizer import normalize

logger = logging.getLogger(__name__)


class AdapterSupervisor:
    """Owns the platform adapters for one hub process.

    Adapter callbacks normalize and enqueue; a single pump task publishes the
    queue to the hub, so hub receipt order is the total order of the feed.
    """

    def __init__(self, settings: Settings, hub: BroadcastHub):
        self._settings = settings
        self._hub = hub
        self._queue: asyncio.Queue[ChatMessage | StatusEvent] = asyncio.Queue()
        self._pump_task: asyncio.Task | None = None
        self._adapters: dict[Platform, ChatAdapter] = {}
        self._fake: FakeMessageGenerator | None = None
        self._build_adapters()

    def _build_adapters(self) -> None:
        server = self._settings.server
        candidates = [
            (TwitchChatAdapter, self._settings.twitch, "TWITCH_CHANNELS"),
            (YouTubeChatAdapter, self._settings.youtube, "YT_CHANNEL_ID or YT_VIDEO_ID"),
            (TikTokChatAdapter, self._settings.tiktok, "TIKTOK_USERNAME"),
        ]
        for adapter_cls, platform_settings, required in candidates:
            if not platform_settings.is_configured:
                logger.info(f"{adapter_cls.platform.value}: skipped ({required} not set)")
                continue
            self._adapters[adapter_cls.platform] = adapter_cls(
                platform_settings,
                self.on_event,
                self.on_status,
                debug=server.debug,
                max_reconnect_attempts=server.max_reconnect_attempts,
            )

        if server.fake_messages:
            self._fake = FakeMessageGenerator(self.on_event, server.fake_message_interval)

    @property
    def adapters(self) -> dict[Platform, ChatAdapter]:
        return dict(self._adapters)

    def get(self, platform: Platform) -> ChatAdapter | None:
        return self._adapters.get(platform)

    def statuses(self) -> dict[str, str]:
        """Current status of every configured adapter."""
        return {
            platform.value: adapter.status.value for platform, adapter in self._adapters.items()
        }

    # Adapter callbacks

    def on_event(self, platform: Platform, event: AdapterEvent) -> None:
        self._queue.put_nowait(normalize(platform, event))

    def on_status(self, platform: Platform, status: ConnectionStatus, detail: str = "") -> None:
        self._queue.put_nowait(StatusEvent.for_platform(platform, status, detail))

    async def _pump(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if isinstance(item, ChatMessage):
                    await self._hub.publish_chat(item)
                else:
                    await self._hub.publish(item.to_frame())
            except Exception:
                logger.exception("Failed to publish event")
            finally:
                self._queue.task_done()

    # Lifecycle

    async def start_all(self) -> None:
        """Start the publish pump and every configured adapter."""
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.create_task(self._pump(), name="multichat-pump")

        for platform, adapter in self._adapters.items():
            try:
                await adapter.start()
            except Exception:
                logger.exception(f"{platform.value}: failed to start")

        if self._fake is not None:
            await self._fake.start()

        if not self._adapters and self._fake is None:
            logger.warning("No chat sources configured")

    async def restart(self, platform: Platform) -> bool:
        """Stop and start one adapter. Returns False if it is not configured."""
        adapter = self._adapters.get(platform)
        if adapter is None:
            return False
        await adapter.stop()
        await adapter.start()
        return True

    async def stop(self, platform: Platform) -> bool:
        """Stop one adapter. Returns False if it is not configured."""
        adapter = self._adapters.get(platform)
        if adapter is None:
            return False
        await adapter.stop()
        return True

    async def stop_all(self, timeout: float | None = None) -> None:
        """Stop every adapter, waiting at most ``timeout`` seconds.

        Errors are logged, never raised.
        """
        if timeout is None:
            timeout = self._settings.server.shutdown_timeout

        sources = list(self._adapters.values())
        if self._fake is not None:
            sources.append(self._fake)

        try:
            results = await asyncio.wait_for(
                asyncio.gather(*(source.stop() for source in sources), return_exceptions=True),
                timeout=timeout,
            )
            for source, result in zip(sources, results):
                if isinstance(result, BaseException):
                    logger.error(f"Error stopping {_source_name(source)}: {result!r}")
        except asyncio.TimeoutError:
            logger.error(f"Adapters did not stop within {timeout:.1f}s")

        await self._stop_pump(timeout)

    async def _stop_pump(self, timeout: float) -> None:
        task, self._pump_task = self._pump_task, None
        if task is None:
            return
        try:
            # Flush final status events
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Dropping undelivered events at shutdown")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def _source_name(source) -> str:
    platform = getattr(source, "platform", None)
    return platform.value if platform is not None else getattr(source, "name", "source")
