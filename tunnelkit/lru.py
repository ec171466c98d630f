"""Thread-safe LRU cache limited by length or by idle time."""

from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable, List, Tuple

from tunnelkit.linklist import Linklist, Node


class LimitStrategy(enum.IntEnum):
    FIXED_LENGTH = 0
    FIXED_TIMEOUT = 1


@dataclass
class EncapsulatedValue:
    value: Any
    last_use_time: float


class LRU:
    """LRU cache.

    With ``FIXED_LENGTH`` the limit is the number of entries kept; with
    ``FIXED_TIMEOUT`` it is the idle time in seconds, measured by ``clock``,
    after which an entry is dropped on the next insertion.
    """

    def __init__(
        self,
        strategy: LimitStrategy,
        limit: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._list = Linklist()
        self._index: dict = {}
        self._reverse: dict = {}
        self._lock = threading.Lock()
        self._strategy = LimitStrategy(strategy)
        self._limit = limit
        self._clock = clock

    def get_or_insert(
        self, key: Hashable, val_func: Callable[[], Any]
    ) -> Tuple[Any, List[EncapsulatedValue]]:
        """Return the cached value, or store the result of ``val_func``."""
        with self._lock:
            val = self._get(key)
            if val is None:
                val = val_func()
                return val, self._insert(key, val)
            return val, []

    def get(self, key: Hashable) -> Any:
        with self._lock:
            return self._get(key)

    def insert(self, key: Hashable, val: Any) -> List[EncapsulatedValue]:
        """Store ``val`` and return the entries that were evicted."""
        with self._lock:
            return self._insert(key, val)

    def _get(self, key: Hashable) -> Any:
        node = self._index.get(key)
        if node is None:
            return None
        self._list.promote(node)
        node.val.last_use_time = self._clock()
        return node.val.value

    def _drop(self, node: Node) -> None:
        key = self._reverse.pop(node)
        self._list.remove(node)
        del self._index[key]

    def _insert(self, key: Hashable, val: Any) -> List[EncapsulatedValue]:
        old = self._index.get(key)
        if old is not None:
            self._drop(old)
        ev = EncapsulatedValue(value=val, last_use_time=self._clock())
        node = self._list.push_front(ev)
        self._index[key] = node
        self._reverse[node] = key

        removed: List[EncapsulatedValue] = []
        if self._strategy is LimitStrategy.FIXED_LENGTH:
            if len(self._index) > self._limit:
                back = self._list.back()
                removed.append(back.val)
                self._drop(back)
        else:
            now = self._clock()
            while (back := self._list.back()) is not None:
                if now - back.val.last_use_time < self._limit:
                    break
                removed.append(back.val)
                self._drop(back)
        return removed