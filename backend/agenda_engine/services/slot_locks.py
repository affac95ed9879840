"""In-process mutual exclusion per slot."""

from __future__ import annotations

import asyncio
import uuid
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class LockTimeout(Exception):
    """Raised when a slot lock could not be acquired in time."""


class SlotLockRegistry:
    """Hands out one ``asyncio.Lock`` per key.

    Locks are held weakly so that slots nobody is touching do not pin memory;
    a lock lives as long as at least one waiter references it.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: uuid.UUID, *, timeout: float) -> AsyncIterator[None]:
        lock = self.get(key)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise LockTimeout(f"Timed out waiting for slot {key}") from exc
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        return len(self._locks)
