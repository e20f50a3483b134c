from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from engagement_jobs.application.services import DistributedLock
from engagement_jobs.infrastructure.stores import InMemoryStoreAdapter


class ManualClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def lock(clock: ManualClock) -> DistributedLock:
    return DistributedLock(
        InMemoryStoreAdapter(clock=clock),
        max_retries=2,
        retry_delay_seconds=0,
        host="worker-1",
        process_id=42,
    )


def test_concurrent_acquire_has_single_winner(lock: DistributedLock) -> None:
    async def scenario():
        return await asyncio.gather(
            lock.acquire("dispatcher", "token-a", ttl=60),
            lock.acquire("dispatcher", "token-b", ttl=60),
        )

    results = asyncio.run(scenario())

    assert sorted(results) == [False, True]


def test_expired_lock_can_be_taken_over(lock: DistributedLock, clock: ManualClock) -> None:
    async def scenario():
        first = await lock.acquire("dispatcher", "token-a", ttl=60)
        blocked = await lock.acquire("dispatcher", "token-b", ttl=60)
        clock.advance(61)
        takeover = await lock.acquire("dispatcher", "token-b", ttl=60)
        stale_release = await lock.release("dispatcher", "token-a")
        info = await lock.get_info("dispatcher")
        return first, blocked, takeover, stale_release, info

    first, blocked, takeover, stale_release, info = asyncio.run(scenario())

    assert first is True
    assert blocked is False
    assert takeover is True
    assert stale_release is False
    assert info is not None
    assert info.owner_token == "token-b"


def test_release_frees_lock_for_next_owner(lock: DistributedLock) -> None:
    async def scenario():
        await lock.acquire("dispatcher", "token-a", ttl=60)
        released = await lock.release("dispatcher", "token-a")
        locked = await lock.is_locked("dispatcher")
        reacquired = await lock.acquire("dispatcher", "token-b", ttl=60)
        return released, locked, reacquired

    assert asyncio.run(scenario()) == (True, False, True)


def test_extend_requires_live_ownership(lock: DistributedLock, clock: ManualClock) -> None:
    async def scenario():
        await lock.acquire("dispatcher", "token-a", ttl=60)
        foreign = await lock.extend("dispatcher", "token-b", 30)
        extended = await lock.extend("dispatcher", "token-a", 30)
        info = await lock.get_info("dispatcher")
        clock.advance(91)
        expired = await lock.extend("dispatcher", "token-a", 30)
        return foreign, extended, info, expired

    foreign, extended, info, expired = asyncio.run(scenario())

    assert foreign is False
    assert extended is True
    assert info is not None
    assert info.remaining_seconds == 90
    assert expired is False


def test_renew_resets_expiry_from_now(lock: DistributedLock, clock: ManualClock) -> None:
    async def scenario():
        await lock.acquire("dispatcher", "token-a", ttl=60)
        clock.advance(50)
        renewed = await lock.renew("dispatcher", "token-a", 60)
        info = await lock.get_info("dispatcher")
        clock.advance(50)
        still_held = await lock.is_locked("dispatcher")
        taken_over = await lock.acquire("dispatcher", "token-b", ttl=60)
        foreign = await lock.renew("dispatcher", "token-b", 60)
        clock.advance(11)
        lapsed = await lock.renew("dispatcher", "token-a", 60)
        return renewed, info, still_held, taken_over, foreign, lapsed

    renewed, info, still_held, taken_over, foreign, lapsed = asyncio.run(scenario())

    assert renewed is True
    assert info is not None
    assert info.remaining_seconds == 60
    assert still_held is True
    assert taken_over is False
    assert foreign is False
    assert lapsed is False


def test_get_info_reports_holder_and_expiry(lock: DistributedLock, clock: ManualClock) -> None:
    async def scenario():
        missing = await lock.get_info("dispatcher")
        await lock.acquire("dispatcher", "token-a", ttl=60)
        clock.advance(20)
        live = await lock.get_info("dispatcher")
        clock.advance(60)
        dead = await lock.get_info("dispatcher")
        return missing, live, dead

    missing, live, dead = asyncio.run(scenario())

    assert missing is None
    assert live is not None
    assert live.host == "worker-1"
    assert live.process_id == 42
    assert live.is_expired is False
    assert live.remaining_seconds == 40
    assert dead is not None
    assert dead.is_expired is True
    assert dead.remaining_seconds == 0


def test_cleanup_expired_removes_dead_rows(lock: DistributedLock, clock: ManualClock) -> None:
    async def scenario():
        await lock.acquire("short", "token-a", ttl=10)
        await lock.acquire("long", "token-b", ttl=600)
        clock.advance(11)
        removed = await lock.cleanup_expired()
        return removed, await lock.get_info("short"), await lock.is_locked("long")

    removed, short, long_locked = asyncio.run(scenario())

    assert removed == 1
    assert short is None
    assert long_locked is True


def test_new_token_is_unique() -> None:
    assert DistributedLock.new_token() != DistributedLock.new_token()
