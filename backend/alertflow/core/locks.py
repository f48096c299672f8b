"""
按键互斥锁 (Keyed Locks)

每个键一把 asyncio.Lock，最后一个持有者或等待者离开后即从表中移除，
表的大小只随正在进行的操作增长。
One asyncio.Lock per key. The entry is dropped once its last holder or waiter
leaves, so the table only holds keys with work in flight.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """持有 key 对应的锁 (Hold the lock for key)."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._locks
