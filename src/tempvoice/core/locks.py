"""Per-guild async ordering domain with LRU eviction."""

from __future__ import annotations

import asyncio
import contextvars
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

# Keys the current execution context already holds. Child tasks spawned by
# asyncio.gather() inherit the set, so they re-enter instead of deadlocking.
_held_keys: contextvars.ContextVar[frozenset[str]] = contextvars.ContextVar(
    "_guild_locks_held", default=frozenset()
)


class GuildLockManager(ABC):
    """Abstract base for the lifecycle ordering domain.

    Every registry and ledger mutation for a guild happens while holding
    that guild's lock, so a leave/join pair for the same room never
    interleaves with another. Implementations must be **reentrant** within
    one execution context: the controller holds a guild lock for a whole
    voice change and then runs its leave and join steps, which each acquire
    the same lock so they are also safe to call on their own.
    """

    @abstractmethod
    @asynccontextmanager
    async def locked(self, key: str) -> AsyncIterator[None]:
        """Acquire an exclusive lock for *key*."""
        yield  # pragma: no cover


class InMemoryLockManager(GuildLockManager):
    """In-process asyncio locks, one per guild, evicted least-recently-used.

    Suitable for the single-process deployment tempvoice targets.
    """

    def __init__(self, max_locks: int = 1024) -> None:
        self._locks: OrderedDict[str, asyncio.Lock] = OrderedDict()
        self._refcounts: dict[str, int] = {}
        self._max_locks = max_locks

    def _get_lock(self, key: str) -> asyncio.Lock:
        self._refcounts[key] = self._refcounts.get(key, 0) + 1
        lock = self._locks.get(key)
        if lock is not None:
            self._locks.move_to_end(key)
            return lock
        lock = self._locks[key] = asyncio.Lock()
        self._evict()
        return lock

    def _release_ref(self, key: str) -> None:
        count = self._refcounts.get(key, 0) - 1
        if count <= 0:
            self._refcounts.pop(key, None)
        else:
            self._refcounts[key] = count

    def _evict(self) -> None:
        excess = len(self._locks) - self._max_locks
        if excess <= 0:
            return
        # Oldest first; a lock in use or awaited stays.
        idle = [
            key
            for key, lock in self._locks.items()
            if not lock.locked() and self._refcounts.get(key, 0) <= 0
        ]
        for key in idle[:excess]:
            del self._locks[key]

    @asynccontextmanager
    async def locked(self, key: str) -> AsyncIterator[None]:
        held = _held_keys.get()
        if key in held:
            yield
            return

        lock = self._get_lock(key)
        try:
            async with lock:
                token = _held_keys.set(held | {key})
                try:
                    yield
                finally:
                    _held_keys.reset(token)
        finally:
            self._release_ref(key)

    @property
    def size(self) -> int:
        """Number of locks currently cached."""
        return len(self._locks)
