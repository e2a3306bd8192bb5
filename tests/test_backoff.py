"""Tests for ReconnectBackoff."""

import pytest

from multichat.chat.connections.base import (
    INITIAL_RECONNECT_DELAY,
    MAX_RECONNECT_DELAY,
    MIN_RECONNECT_DELAY,
    RECONNECT_BACKOFF_FACTOR,
    RECONNECT_JITTER,
    ReconnectBackoff,
)


def test_initial_delay():
    backoff = ReconnectBackoff()
    assert backoff.delay == INITIAL_RECONNECT_DELAY
    assert backoff.attempts == 0


def test_next_delay_returns_near_initial():
    backoff = ReconnectBackoff()
    delay = backoff.next_delay()
    # Should be within jitter range of the initial delay
    max_jitter = INITIAL_RECONNECT_DELAY * RECONNECT_JITTER
    assert INITIAL_RECONNECT_DELAY - max_jitter <= delay <= INITIAL_RECONNECT_DELAY + max_jitter


def test_backoff_increases_exponentially():
    backoff = ReconnectBackoff()
    backoff.next_delay()  # consume initial
    assert backoff.delay == INITIAL_RECONNECT_DELAY * RECONNECT_BACKOFF_FACTOR


def test_backoff_caps_at_max():
    backoff = ReconnectBackoff()
    for _ in range(20):
        backoff.next_delay()
    assert backoff.delay == MAX_RECONNECT_DELAY


def test_backoff_jitter_range():
    backoff = ReconnectBackoff()
    delays = [backoff.next_delay() for _ in range(50)]
    assert len(set(delays)) > 1


def test_reset():
    backoff = ReconnectBackoff()
    for _ in range(5):
        backoff.next_delay()
    assert backoff.delay > INITIAL_RECONNECT_DELAY
    assert backoff.attempts == 5
    backoff.reset()
    assert backoff.delay == INITIAL_RECONNECT_DELAY
    assert backoff.attempts == 0


def test_backoff_sequence():
    backoff = ReconnectBackoff()
    expected = INITIAL_RECONNECT_DELAY
    for _ in range(8):
        backoff.next_delay()
        expected = min(expected * RECONNECT_BACKOFF_FACTOR, MAX_RECONNECT_DELAY)
        assert backoff.delay == expected


def test_max_delay_value_returned():
    backoff = ReconnectBackoff()
    backoff.delay = MAX_RECONNECT_DELAY
    delay = backoff.next_delay()
    max_jitter = MAX_RECONNECT_DELAY * RECONNECT_JITTER
    assert MAX_RECONNECT_DELAY - max_jitter <= delay <= MAX_RECONNECT_DELAY + max_jitter
    assert backoff.delay == MAX_RECONNECT_DELAY


def test_delay_never_below_floor():
    # A tiny initial delay must still not produce a busy loop
    backoff = ReconnectBackoff(initial=0.0, jitter=1.0)
    for _ in range(20):
        assert backoff.next_delay() >= MIN_RECONNECT_DELAY


@pytest.mark.parametrize(
    "max_attempts,attempts,expected",
    [(0, 100, False), (3, 2, False), (3, 3, True), (1, 5, True)],
)
def test_exhausted(max_attempts, attempts, expected):
    backoff = ReconnectBackoff()
    for _ in range(attempts):
        backoff.next_delay()
    assert backoff.exhausted(max_attempts) is expected


async def test_sleep_uses_next_delay(monkeypatch):
    slept = []

    async def fake_sleep(delay):
        slept.append(delay)

    monkeypatch.setattr("multichat.chat.connections.base.asyncio.sleep", fake_sleep)
    backoff = ReconnectBackoff(jitter=0.0)
    await backoff.sleep("test")
    await backoff.sleep("test")
    assert slept == [INITIAL_RECONNECT_DELAY, INITIAL_RECONNECT_DELAY * RECONNECT_BACKOFF_FACTOR]
    assert backoff.attempts == 2
