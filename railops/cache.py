from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Hashable, Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)


class ReportCache:
    """TTL cache for computed report payloads.

    ``get`` returns ``None`` once an entry is older than ``refresh_interval``;
    callers recompute and ``set`` it again. Store writes call ``invalidate_all``.
    """

    def __init__(self, refresh_interval: int = 30, maxsize: int = 128) -> None:
        self.refresh_interval = refresh_interval
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=refresh_interval)
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            value = self._cache.get(key)
        if value is not None:
            logger.debug("Cache hit: %s", key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._cache[key] = value
        logger.debug("Cache set: %s", key)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = compute()
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._cache.clear()
        logger.debug("Cache cleared")

    def __len__(self) -> int:
        return len(self._cache)
