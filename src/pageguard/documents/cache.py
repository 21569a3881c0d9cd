"""In-memory cache of decrypted document bytes.

Keeps repeated page requests within a session from re-reading and
re-decrypting the same file.  Eviction only ever costs a reload.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable


@dataclass
class _CacheEntry:
    data: bytes
    last_accessed: float


class DocumentCache:
    """LRU cache bounded by entry count, with idle entries expiring after a TTL."""

    def __init__(
        self,
        max_entries: int = 20,
        ttl_seconds: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, _CacheEntry]" = OrderedDict()

    async def get_or_load(
        self, doc_id: str, loader: Callable[[], Awaitable[bytes]],
    ) -> bytes:
        now = self._clock()
        entry = self._entries.get(doc_id)
        if entry is not None:
            if now - entry.last_accessed <= self.ttl_seconds:
                entry.last_accessed = now
                self._entries.move_to_end(doc_id)
                return entry.data
            del self._entries[doc_id]

        data = await loader()

        self._entries[doc_id] = _CacheEntry(data=data, last_accessed=self._clock())
        self._entries.move_to_end(doc_id)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return data

    def invalidate(self, doc_id: str) -> None:
        self._entries.pop(doc_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, doc_id: str) -> bool:
        return doc_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
