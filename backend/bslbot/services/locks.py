"""
User Locks - Per-user serialization of conversation read-modify-write

Shared by the dispatcher (text turns) and the image job so both paths that
rewrite the stored history of a user never interleave. Entries are dropped
once no task holds or waits for the user's lock.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


class UserLocks:
    """Registry of asyncio.Lock keyed by user id, with reference counting"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._locks

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        """
        Hold the lock of one user.

        Usage:
            async with user_locks.hold(user_id):
                conversation = await store.get_conversation(user_id)
                ...
                await store.save_conversation(...)
        """
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        self._holders[user_id] = self._holders.get(user_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if self._holders[user_id] == 0:
                del self._holders[user_id]
                del self._locks[user_id]


# Singleton instance
user_locks = UserLocks()
