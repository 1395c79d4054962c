from __future__ import annotations

import asyncio

import pytest

from chorus.core.cooldowns import CooldownTracker


@pytest.mark.anyio
async def test_armed_pair_is_suppressed_until_expiry() -> None:
    tracker = CooldownTracker()
    token = tracker.acquire(1, "hello")
    assert token is not None

    tracker.arm(1, "hello", 0.05, token)
    assert tracker.is_suppressed(1, "hello")
    assert tracker.acquire(1, "hello") is None

    await asyncio.sleep(0.1)
    assert not tracker.is_suppressed(1, "hello")
    assert tracker.acquire(1, "hello") is not None


@pytest.mark.anyio
async def test_zero_duration_releases_reservation() -> None:
    tracker = CooldownTracker()
    token = tracker.acquire(1, "hello")

    tracker.arm(1, "hello", 0, token)

    assert not tracker.is_suppressed(1, "hello")
    assert len(tracker) == 0


@pytest.mark.anyio
async def test_pairs_are_independent() -> None:
    tracker = CooldownTracker()
    tracker.arm(1, "hello", 10)

    assert tracker.is_suppressed(1, "hello")
    assert not tracker.is_suppressed(2, "hello")
    assert not tracker.is_suppressed(1, "other")


@pytest.mark.anyio
async def test_concurrent_acquire_admits_one() -> None:
    tracker = CooldownTracker()
    tokens = [tracker.acquire(7, "ping") for _ in range(5)]

    assert sum(t is not None for t in tokens) == 1


@pytest.mark.anyio
async def test_stale_timer_does_not_evict_newer_cooldown() -> None:
    tracker = CooldownTracker()
    tracker.arm(1, "hello", 0.05)
    # a second invocation after the first expired re-arms for longer
    await asyncio.sleep(0.08)
    tracker.arm(1, "hello", 0.05)
    tracker.arm(1, "hello", 10)

    await asyncio.sleep(0.1)
    assert tracker.is_suppressed(1, "hello")


@pytest.mark.anyio
async def test_release_with_wrong_token_is_ignored() -> None:
    tracker = CooldownTracker()
    token = tracker.acquire(1, "hello")
    assert token is not None

    tracker.release(1, "hello", token + 100)
    assert tracker.is_suppressed(1, "hello")

    tracker.release(1, "hello", token)
    assert not tracker.is_suppressed(1, "hello")
