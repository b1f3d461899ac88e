"""
Tier capability contract.

A tier is one level of the cache hierarchy: bounded, recency-ordered
storage with a capacity and simulated read/write service times.
Concrete tiers do not lock internally; callers hold :attr:`Tier.lock`
around every ``get`` and every ``put`` + eviction sequence.
"""

import threading
from abc import ABC, abstractmethod
from typing import List, NamedTuple, Optional


class Entry(NamedTuple):
    """A key/value pair stored in a tier."""

    key: str
    value: str


class Tier(ABC):
    """Abstract cache tier.

    Args:
        capacity: Maximum number of entries held in a stable state.
        read_latency_ms: Simulated delay of every ``get``.
        write_latency_ms: Simulated delay of every ``put``.
    """

    def __init__(self, capacity: int, read_latency_ms: int, write_latency_ms: int) -> None:
        self._capacity = capacity
        self._read_latency_ms = read_latency_ms
        self._write_latency_ms = write_latency_ms
        self.lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def read_latency_ms(self) -> int:
        return self._read_latency_ms

    @property
    def write_latency_ms(self) -> int:
        return self._write_latency_ms

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for *key*, marking it most-recently-used.

        Waits ``read_latency_ms`` first, hit or miss.

        Raises:
            TierOperationError: If the simulated delay is interrupted.
        """

    @abstractmethod
    def put(self, key: str, value: str) -> bool:
        """Insert or update *key*, marking it most-recently-used.

        Waits ``write_latency_ms`` first.  Never evicts.

        Returns:
            ``True`` if the tier is within capacity afterwards, ``False``
            if it now holds ``capacity + 1`` entries.

        Raises:
            TierOperationError: If the simulated delay is interrupted.
        """

    @abstractmethod
    def evict_least_recently_used(self) -> Optional[Entry]:
        """Remove and return the least-recently-used entry.

        Returns ``None`` without touching anything unless the tier is
        over capacity.
        """

    @abstractmethod
    def peek(self, key: str) -> Optional[str]:
        """Return the value for *key* without delay or recency change."""

    @abstractmethod
    def contains_key(self, key: str) -> bool:
        ...

    @abstractmethod
    def size(self) -> int:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        """Keys ordered from least to most recently used."""

    def is_over_capacity(self) -> bool:
        return self.size() > self._capacity
