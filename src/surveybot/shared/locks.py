"""
Per-key asyncio locks.

Serializes the handling of a single user's taps inside one process so a
rapid double tap cannot interleave reads and writes of the same state.
"""

import asyncio


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: object) -> asyncio.Lock:
        name = str(key)
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
