"""Per-account mutual exclusion

Serializes mutating ledger operations on the same account inside one
process. Database row locks (SELECT ... FOR UPDATE) provide the same
guarantee across processes; this layer adds a bounded wait so callers fail
fast with LockTimeout instead of queueing indefinitely.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple
from credit_engine.domain.errors import LockTimeout

logger = logging.getLogger(__name__)

MIN_WAIT_SECONDS = 0.001


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class AccountLockManager:
    """
    Keyed asyncio locks

    Multi-account operations acquire their keys in sorted order, so two
    transfers between the same pair of accounts can never deadlock. A key's
    lock is dropped once no operation holds or waits for it.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[str, _KeyLock] = {}

    def _checkout(self, key: str) -> _KeyLock:
        entry = self._locks.get(key)
        if entry is None:
            entry = _KeyLock()
            self._locks[key] = entry
        entry.users += 1
        return entry

    def _checkin(self, key: str, entry: _KeyLock) -> None:
        entry.users -= 1
        if entry.users == 0 and self._locks.get(key) is entry:
            del self._locks[key]

    def is_locked(self, key: str) -> bool:
        entry = self._locks.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def acquire(self, keys: Iterable[str], timeout: Optional[float] = None) -> AsyncIterator[List[str]]:
        """
        Hold the locks for every key until the block exits

        Raises:
            LockTimeout: If all locks could not be taken within the timeout
        """
        ordered = sorted(set(keys))
        budget = self.timeout_seconds if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget
        held: List[Tuple[str, _KeyLock]] = []

        try:
            for key in ordered:
                entry = self._checkout(key)
                remaining = max(deadline - loop.time(), MIN_WAIT_SECONDS)
                try:
                    await asyncio.wait_for(entry.lock.acquire(), timeout=remaining)
                except asyncio.TimeoutError:
                    self._checkin(key, entry)
                    logger.warning(f"Lock timeout after {budget}s on accounts {ordered} (waiting for {key})")
                    raise LockTimeout(ordered, budget)
                except asyncio.CancelledError:
                    self._checkin(key, entry)
                    raise
                held.append((key, entry))

            yield ordered
        finally:
            for key, entry in reversed(held):
                entry.lock.release()
                self._checkin(key, entry)
