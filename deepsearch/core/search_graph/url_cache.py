"""
URL-keyed cache of fetched page content.
"""

import asyncio
import hashlib
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, Optional, Tuple
from loguru import logger

from deepsearch.core.search_graph.models import CacheItem


class UrlCache:
    """
    Fetched content keyed by a hash of the requested URL.

    Entries are only served while younger than `ttl`; expired entries are
    dropped on read or by sweep(), and the oldest entry is evicted once
    `max_entries` is reached.

    Concurrent fetch() calls for the same URL share one download.
    """

    def __init__(self, ttl: float = 3600.0, max_entries: int = 512, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._items: "OrderedDict[str, CacheItem]" = OrderedDict()
        self._pending: Dict[str, "asyncio.Future[Optional[CacheItem]]"] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(url: str) -> str:
        return hashlib.sha256(url.encode("utf-8")).hexdigest()

    def get(self, url: str) -> Optional[CacheItem]:
        key = self.key(url)
        item = self._items.get(key)
        if item is None:
            self.misses += 1
            return None

        if self._clock() - item.timestamp >= self.ttl:
            del self._items[key]
            self.misses += 1
            return None

        self.hits += 1
        return item

    def set(self, url: str, content: str, final_url: Optional[str] = None) -> CacheItem:
        key = self.key(url)
        item = CacheItem(content=content, final_url=final_url or url, timestamp=self._clock())
        self._items.pop(key, None)
        self._items[key] = item
        while len(self._items) > self.max_entries:
            self._items.popitem(last=False)
        return item

    async def fetch(
        self,
        url: str,
        loader: Callable[[], Awaitable[Tuple[str, str]]],
    ) -> Optional[CacheItem]:
        """
        Cached item for `url`, downloading through `loader` on a miss.

        `loader` returns (content, final_url). Empty content is not cached
        and yields None. A caller arriving while the same URL is already
        being downloaded waits for that download instead of starting another.
        """
        item = self.get(url)
        if item is not None:
            return item

        key = self.key(url)
        pending = self._pending.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            content, final_url = await loader()
            item = self.set(url, content, final_url) if content else None
            future.set_result(item)
            return item
        finally:
            # Failed or cancelled download: waiters see a miss
            if not future.done():
                future.set_result(None)
            del self._pending[key]

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, item in self._items.items() if now - item.timestamp >= self.ttl]
        for k in expired:
            del self._items[k]
        if expired:
            logger.debug(f"[UrlCache] Swept {len(expired)} expired entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)
