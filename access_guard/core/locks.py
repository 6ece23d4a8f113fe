"""Per-key asyncio locks.

Writes for one child are serialized; different children never share a lock.
"""

import asyncio
from collections import defaultdict


class KeyedLocks:
    def __init__(self) -> None:
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def __call__(self, key: str) -> asyncio.Lock:
        return self._locks[key]
