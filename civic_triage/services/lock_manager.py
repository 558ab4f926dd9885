"""
Keyed exclusive locks serializing decide-then-mutate sections
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Tuple

from civic_triage.exceptions import ConcurrencyConflict
from civic_triage.logging_config import logger


class KeyedLockManager:
    """
    asyncio locks created on demand per key and dropped once nobody holds or
    waits for them.

    Multi-key acquisition always takes keys in sorted order so that callers
    locking overlapping key sets cannot deadlock.
    """

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        return lock

    def _checkin(self, key: str) -> None:
        lock, users = self._locks[key]
        if users <= 1:
            del self._locks[key]
        else:
            self._locks[key] = (lock, users - 1)

    async def _acquire_one(self, key: str, timeout: float) -> None:
        lock = self._checkout(key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            self._checkin(key)
            logger.warning(f"Timed out after {timeout}s waiting for lock {key}")
            raise ConcurrencyConflict(key)
        except BaseException:
            self._checkin(key)
            raise

    def _release_one(self, key: str) -> None:
        lock, _ = self._locks[key]
        lock.release()
        self._checkin(key)

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[List[str]]:
        """
        Hold every key for the duration of the block

        Args:
            keys: Lock keys; duplicates are ignored

        Raises:
            ConcurrencyConflict: If any key could not be acquired in time.
                                 Keys already taken are released first.
        """
        ordered = sorted(set(keys))
        acquired: List[str] = []
        try:
            for key in ordered:
                await self._acquire_one(key, self.timeout)
                acquired.append(key)
            yield ordered
        finally:
            for key in reversed(acquired):
                self._release_one(key)

    def is_locked(self, key: str) -> bool:
        entry = self._locks.get(key)
        return entry is not None and entry[0].locked()

    def __len__(self) -> int:
        return len(self._locks)
