"""
LRU-ordered tier storage.

:class:`LRUStore` keeps a hash index from key to node and threads the
nodes through a circular doubly-linked recency list around a sentinel,
so lookup, move-to-most-recent and remove-least-recent are all O(1).
:class:`LRUTier` wraps a store with the tier contract and simulated
service times.
"""

import logging
import time
from typing import Callable, Dict, Iterator, List, Optional

from tiercache.exceptions import ConfigurationError, TierOperationError
from tiercache.tiers.base import Entry, Tier

logger = logging.getLogger(__name__)

# Receives the delay in seconds; ``time.sleep`` in production.
DelayFn = Callable[[float], None]


class _Node:
    __slots__ = ("key", "value", "prev", "next")

    def __init__(self, key: str, value: str) -> None:
        self.key = key
        self.value = value
        self.prev: "_Node" = self
        self.next: "_Node" = self


class LRUStore:
    """Access-ordered key/value store.

    ``_head.next`` is the least recently used node, ``_head.prev`` the
    most recently used.  The store is unbounded; capacity is the
    owning tier's concern.
    """

    def __init__(self) -> None:
        self._index: Dict[str, _Node] = {}
        self._head = _Node("", "")

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[str]:
        node = self._head.next
        while node is not self._head:
            yield node.key
            node = node.next

    def get(self, key: str) -> Optional[str]:
        """Return the value for *key* and make it most recent."""
        node = self._index.get(key)
        if node is None:
            return None
        self._unlink(node)
        self._append(node)
        return node.value

    def peek(self, key: str) -> Optional[str]:
        node = self._index.get(key)
        return node.value if node is not None else None

    def put(self, key: str, value: str) -> None:
        """Insert or update *key* as the most recent entry."""
        node = self._index.get(key)
        if node is None:
            node = _Node(key, value)
            self._index[key] = node
        else:
            node.value = value
            self._unlink(node)
        self._append(node)

    def pop_oldest(self) -> Optional[Entry]:
        """Remove and return the least recently used entry."""
        node = self._head.next
        if node is self._head:
            return None
        self._unlink(node)
        del self._index[node.key]
        return Entry(node.key, node.value)

    def _append(self, node: _Node) -> None:
        tail = self._head.prev
        node.prev = tail
        node.next = self._head
        tail.next = node
        self._head.prev = node

    @staticmethod
    def _unlink(node: _Node) -> None:
        node.prev.next = node.next
        node.next.prev = node.prev
        node.prev = node.next = node


class LRUTier(Tier):
    """In-memory tier with least-recently-used eviction.

    Args:
        capacity: Maximum number of entries (must be > 0).
        read_latency_ms: Simulated read time (must be >= 0).
        write_latency_ms: Simulated write time (must be >= 0).
        delay: Callable used to wait out simulated latencies.  Tests
            pass a no-op; anything it raises surfaces as
            :class:`TierOperationError`.

    Raises:
        ConfigurationError: If any parameter is out of range.
    """

    def __init__(
        self,
        capacity: int,
        read_latency_ms: int = 0,
        write_latency_ms: int = 0,
        delay: Optional[DelayFn] = None,
    ) -> None:
        if capacity <= 0:
            raise ConfigurationError(f"Tier capacity must be positive, got {capacity}")
        if read_latency_ms < 0 or write_latency_ms < 0:
            raise ConfigurationError(
                f"Tier latencies must be non-negative, got "
                f"read={read_latency_ms} write={write_latency_ms}"
            )
        super().__init__(capacity, read_latency_ms, write_latency_ms)
        self._store = LRUStore()
        self._delay: DelayFn = delay or time.sleep

    def get(self, key: str) -> Optional[str]:
        self._simulate(self._read_latency_ms, "read")
        return self._store.get(key)

    def put(self, key: str, value: str) -> bool:
        self._simulate(self._write_latency_ms, "write")
        self._store.put(key, value)
        return len(self._store) <= self._capacity

    def evict_least_recently_used(self) -> Optional[Entry]:
        if len(self._store) <= self._capacity:
            return None
        evicted = self._store.pop_oldest()
        logger.debug(
            "Tier evicted LRU entry",
            extra={"key": evicted.key if evicted else None, "capacity": self._capacity},
        )
        return evicted

    def peek(self, key: str) -> Optional[str]:
        return self._store.peek(key)

    def contains_key(self, key: str) -> bool:
        return key in self._store

    def size(self) -> int:
        return len(self._store)

    def keys(self) -> List[str]:
        return list(self._store)

    def _simulate(self, latency_ms: int, operation: str) -> None:
        if latency_ms <= 0:
            return
        try:
            self._delay(latency_ms / 1000.0)
        except Exception as exc:
            raise TierOperationError(
                f"{operation.capitalize()} operation interrupted"
            ) from exc

    def __repr__(self) -> str:
        return (
            f"LRUTier(capacity={self._capacity}, size={len(self._store)}, "
            f"read_latency_ms={self._read_latency_ms}, "
            f"write_latency_ms={self._write_latency_ms})"
        )
