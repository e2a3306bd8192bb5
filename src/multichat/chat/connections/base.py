"""Shared adapter contract and reconnection helpers.

Adapters do not inherit from a common class. Each one composes an
``AdapterLifecycle`` for task/status bookkeeping and a ``ReconnectBackoff``
for its retry timing, and implements its own connection loop.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Protocol

from ...core.models import ConnectionStatus, Platform
from ..models import AdapterEvent

logger = logging.getLogger(__name__)

# Exponential backoff constants for reconnection
INITIAL_RECONNECT_DELAY = 1.0  # seconds
MAX_RECONNECT_DELAY = 60.0  # seconds
RECONNECT_BACKOFF_FACTOR = 2.0
RECONNECT_JITTER = 0.1  # 10% jitter to prevent thundering herd
MIN_RECONNECT_DELAY = 0.5  # floor after jitter, never busy-loop

EventCallback = Callable[[Platform, AdapterEvent], None]
StatusCallback = Callable[[Platform, ConnectionStatus, str], None]


class ChatAdapter(Protocol):
    """Capability interface every platform adapter satisfies."""

    platform: Platform

    @property
    def status(self) -> ConnectionStatus: ...

    async def start(self) -> None:
        """Begin connecting in the background. Reports ``connecting`` immediately."""

    async def stop(self) -> None:
        """Stop for good. Idempotent; no events are delivered once this returns."""


class ReconnectBackoff:
    """Exponential backoff with jitter and a minimum delay."""

    def __init__(
        self,
        initial: float = INITIAL_RECONNECT_DELAY,
        maximum: float = MAX_RECONNECT_DELAY,
        factor: float = RECONNECT_BACKOFF_FACTOR,
        jitter: float = RECONNECT_JITTER,
        minimum: float = MIN_RECONNECT_DELAY,
    ):
        self.initial = initial
        self.maximum = maximum
        self.factor = factor
        self.jitter = jitter
        self.minimum = minimum
        self.delay = initial
        self.attempts = 0

    def reset(self) -> None:
        """Reset after a successful connection."""
        self.delay = self.initial
        self.attempts = 0

    def next_delay(self) -> float:
        """Get the next backoff delay with jitter and update for next call."""
        delay = self.delay
        # Add jitter (±10%)
        jitter = delay * self.jitter * (2 * random.random() - 1)
        delay_with_jitter = max(delay + jitter, self.minimum)

        # Increase delay for next time with exponential backoff
        self.delay = min(self.delay * self.factor, self.maximum)
        self.attempts += 1

        return delay_with_jitter

    def exhausted(self, max_attempts: int) -> bool:
        """Whether ``max_attempts`` consecutive retries were used (0 = unlimited)."""
        return max_attempts > 0 and self.attempts >= max_attempts

    async def sleep(self, name: str = "adapter") -> None:
        """Sleep for the current backoff delay before reconnecting."""
        delay = self.next_delay()
        logger.info(f"{name}: reconnecting in {delay:.1f}s (next delay: {self.delay:.1f}s)")
        await asyncio.sleep(delay)


class AdapterLifecycle:
    """Connection task and status bookkeeping for one adapter."""

    def __init__(
        self,
        platform: Platform,
        on_event: EventCallback,
        on_status: StatusCallback | None = None,
    ):
        self.platform = platform
        self.status = ConnectionStatus.IDLE
        self._on_event = on_event
        self._on_status = on_status
        self._task: asyncio.Task | None = None
        self._stopping = False

    @property
    def stopping(self) -> bool:
        return self._stopping

    def set_status(self, status: ConnectionStatus, detail: str = "") -> None:
        """Record a state transition and report it to the owner."""
        if status == self.status and not detail:
            return
        self.status = status
        logger.info(f"{self.platform.value}: {status.value}" + (f" ({detail})" if detail else ""))
        if self._on_status is None:
            return
        try:
            self._on_status(self.platform, status, detail)
        except Exception:
            logger.exception(f"{self.platform.value}: status callback failed")

    def deliver(self, event: AdapterEvent) -> bool:
        """Hand an event to the owner unless the adapter is stopping."""
        if self._stopping:
            return False
        self._on_event(self.platform, event)
        return True

    def start(self, runner: Callable[[], Awaitable[None]]) -> None:
        """Report ``connecting`` and run ``runner`` as the connection task."""
        if self._task is not None and not self._task.done():
            logger.debug(f"{self.platform.value}: already running")
            return
        self._stopping = False
        self.set_status(ConnectionStatus.CONNECTING)
        self._task = asyncio.create_task(
            self._guard(runner), name=f"multichat-{self.platform.value}"
        )

    async def _guard(self, runner: Callable[[], Awaitable[None]]) -> None:
        try:
            await runner()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._stopping:
                logger.exception(f"{self.platform.value}: connection task crashed")
                self.set_status(ConnectionStatus.FAILED, str(e))

    async def stop(self, cleanup: Callable[[], Awaitable[None]] | None = None) -> None:
        """Cancel the connection task, run ``cleanup`` and report ``stopped``.

        Never raises. Safe before ``start`` and safe to call repeatedly.
        """
        self._stopping = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"{self.platform.value}: error while stopping: {e}")
        if cleanup is not None:
            try:
                await cleanup()
            except Exception as e:
                logger.warning(f"{self.platform.value}: cleanup failed: {e}")
        if self.status != ConnectionStatus.STOPPED:
            self.set_status(ConnectionStatus.STOPPED)
