"""Thread-safe cache of upstream responses, evicting the least recently used."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

MAX_SIZE = 200 * (1 << 20)
MAX_ELEMENT_SIZE = 10 * (1 << 20)
ELEMENT_OVERHEAD = 40

CacheLogger = Callable[[str, str], None]


@dataclass
class CacheElement:
    """A cached response together with the request that produced it."""

    data: bytes
    url: str
    lru_time: float

    @property
    def size(self) -> int:
        """Bytes this element is charged against the cache capacity."""
        return len(self.data) + 1 + len(self.url) + ELEMENT_OVERHEAD


class Cache:
    """Response cache keyed by the raw request text.

    Elements are kept newest first. When room is needed, the element with the
    oldest access time is evicted; among equally old elements the most
    recently stored one goes first.
    """

    def __init__(
        self,
        max_size: int = MAX_SIZE,
        max_element_size: int = MAX_ELEMENT_SIZE,
        *,
        clock: Callable[[], float] = time.time,
        log: Optional[CacheLogger] = None,
    ) -> None:
        self.max_size = max_size
        self.max_element_size = max_element_size
        self._clock = clock
        self._log = log
        self._elements: list[CacheElement] = []
        self._size = 0
        self._lock = threading.RLock()

    def _emit(self, tag: str, message: str) -> None:
        if self._log is not None:
            self._log(tag, message)

    @property
    def size(self) -> int:
        """Total bytes currently charged to the cache."""
        with self._lock:
            return self._size

    def find(self, url: str) -> Optional[CacheElement]:
        """Return the element cached for ``url`` and mark it as used, or None."""
        with self._lock:
            for element in self._elements:
                if element.url == url:
                    self._emit("[CACHE HIT]", url)
                    element.lru_time = self._clock()
                    return element
            self._emit("[CACHE MISS]", url)
            return None

    def evict(self) -> Optional[CacheElement]:
        """Remove and return the least recently used element, if any."""
        with self._lock:
            if not self._elements:
                return None
            victim = min(self._elements, key=lambda element: element.lru_time)
            self._elements.remove(victim)
            self._size -= victim.size
            self._emit("[CACHE EVICT]", victim.url)
            return victim

    def add(self, data: bytes, url: str) -> bool:
        """Store ``data`` for ``url``; return False if it is too large to cache."""
        element = CacheElement(data=bytes(data), url=url, lru_time=0.0)
        with self._lock:
            if element.size > self.max_element_size:
                return False
            while self._size + element.size > self.max_size and self._elements:
                self.evict()
            element.lru_time = self._clock()
            self._elements.insert(0, element)
            self._size += element.size
            self._emit("[CACHE STORE]", url)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._elements)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return any(element.url == url for element in self._elements)