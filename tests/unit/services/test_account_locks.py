"""Unit tests for AccountLockManager and TTLCache"""

import asyncio
import pytest
from credit_engine.app.services.account_locks import AccountLockManager
from credit_engine.app.services.ttl_cache import TTLCache
from credit_engine.domain.errors import LockTimeout


@pytest.mark.asyncio
class TestAccountLockManager:

    async def test_keys_acquired_sorted_and_released(self):
        locks = AccountLockManager(timeout_seconds=1)

        async with locks.acquire(["tenant_a:b", "tenant_a:a", "tenant_a:b"]) as held:
            assert held == ["tenant_a:a", "tenant_a:b"]
            assert locks.is_locked("tenant_a:a")
            assert locks.is_locked("tenant_a:b")

        assert not locks.is_locked("tenant_a:a")
        assert not locks.is_locked("tenant_a:b")

    async def test_timeout_raises_lock_timeout(self):
        """
        Given an account lock held by another operation
        When a second operation waits longer than its timeout
        Then LockTimeout is raised and nothing stays held by the waiter
        """
        locks = AccountLockManager(timeout_seconds=0.05)

        async with locks.acquire(["tenant_a:*"]):
            with pytest.raises(LockTimeout) as exc_info:
                async with locks.acquire(["tenant_a:other", "tenant_a:*"]):
                    pass

            assert exc_info.value.details["accounts"] == ["tenant_a:*", "tenant_a:other"]
            assert not locks.is_locked("tenant_a:other")

    async def test_operations_on_same_account_are_serialized(self):
        locks = AccountLockManager(timeout_seconds=1)
        events = []

        async def worker(name: str):
            async with locks.acquire(["tenant_a:*"]):
                events.append(f"{name}:start")
                await asyncio.sleep(0.01)
                events.append(f"{name}:end")

        await asyncio.gather(worker("one"), worker("two"))

        assert events in (
            ["one:start", "one:end", "two:start", "two:end"],
            ["two:start", "two:end", "one:start", "one:end"],
        )

    async def test_opposite_order_transfers_do_not_deadlock(self):
        locks = AccountLockManager(timeout_seconds=1)

        async def transfer(keys):
            async with locks.acquire(keys):
                await asyncio.sleep(0.01)
                return True

        results = await asyncio.gather(
            transfer(["tenant_a:x", "tenant_a:y"]),
            transfer(["tenant_a:y", "tenant_a:x"]),
        )

        assert results == [True, True]

    async def test_released_keys_are_dropped(self):
        """
        Given operations on many distinct accounts
        When every operation has finished
        Then the manager keeps no lock for any of them
        """
        # Arrange
        locks = AccountLockManager(timeout_seconds=1)

        # Act
        for index in range(50):
            async with locks.acquire([f"tenant_a:entity_{index}", "hierarchy:tenant_a"]):
                pass

        # Assert
        assert len(locks) == 0

    async def test_key_kept_while_a_waiter_remains(self):
        locks = AccountLockManager(timeout_seconds=1)
        first_done = asyncio.Event()

        async def waiter():
            async with locks.acquire(["tenant_a:*"]):
                return locks.is_locked("tenant_a:*")

        async with locks.acquire(["tenant_a:*"]):
            pending = asyncio.ensure_future(waiter())
            await asyncio.sleep(0.01)
            first_done.set()

        assert await pending is True
        assert len(locks) == 0

    async def test_timed_out_waiter_leaves_no_entry(self):
        locks = AccountLockManager(timeout_seconds=0.02)

        async with locks.acquire(["tenant_a:*"]):
            with pytest.raises(LockTimeout):
                async with locks.acquire(["tenant_a:*"]):
                    pass
            assert len(locks) == 1

        assert len(locks) == 0


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:

    def test_entries_expire(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.put("tenant_a", "snapshot")

        clock.now = 9.9
        assert cache.get("tenant_a") == "snapshot"

        clock.now = 10.0
        assert cache.get("tenant_a") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self):
        cache = TTLCache(ttl_seconds=10, max_size=2, clock=FakeClock())
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")

        cache.put("c", 3)

        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get("c") == 3

    def test_invalidate_bumps_generation(self):
        cache = TTLCache()
        cache.put("a", 1)

        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.generation == 2

        cache.clear()
        assert cache.generation == 3

    def test_empty_cache_is_falsy_but_usable(self):
        cache = TTLCache()

        assert not cache
        assert cache.get("missing") is None
