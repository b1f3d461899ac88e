"""
User-facing facade over :class:`CacheCoordinator`.

Builds the hierarchy from per-tier parameter arrays, times reads and
prints human-readable results.  Errors are logged, never raised, so an
interactive session survives a failed command.
"""

import logging
import time
from typing import Optional, Sequence

from tiercache.config import Settings
from tiercache.coordinator import CacheCoordinator
from tiercache.exceptions import ConfigurationError, TierCacheException
from tiercache.metrics import DEFAULT_WINDOW_SIZE
from tiercache.tiers.lru import DelayFn
from tiercache.workers import DEFAULT_POOL_SIZE

logger = logging.getLogger(__name__)


class CacheLibrary:
    """Interactive cache front end.

    Args:
        capacities: Capacity of each tier, fastest first.
        read_times: Read latency (ms) of each tier.
        write_times: Write latency (ms) of each tier.
        delay: Optional delay callable handed to every tier.
        pool_size: Number of background worker threads.
        window_size: Number of latency samples averaged by ``STAT``.
        settle_timeout: Seconds ``display_stats`` waits for pending
            background writes before printing.

    Raises:
        ConfigurationError: If the arrays differ in length or hold
            out-of-range values.
    """

    def __init__(
        self,
        capacities: Sequence[int],
        read_times: Sequence[int],
        write_times: Sequence[int],
        *,
        delay: Optional[DelayFn] = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        window_size: int = DEFAULT_WINDOW_SIZE,
        settle_timeout: float = 5.0,
    ) -> None:
        if not (len(capacities) == len(read_times) == len(write_times)):
            raise ConfigurationError(
                "capacities, read_times and write_times must have the same length"
            )
        specs = list(zip(capacities, read_times, write_times))
        self._coordinator = CacheCoordinator.from_specs(
            specs, delay=delay, pool_size=pool_size, window_size=window_size
        )
        self._settle_timeout = settle_timeout
        self._window_size = window_size

    @classmethod
    def from_settings(cls, settings: Settings, delay: Optional[DelayFn] = None) -> "CacheLibrary":
        """Build a library from the ``hierarchy`` section of *settings*."""
        specs = settings.hierarchy.tier_specs()
        return cls(
            [s.capacity for s in specs],
            [s.read_latency_ms for s in specs],
            [s.write_latency_ms for s in specs],
            delay=delay,
            pool_size=settings.hierarchy.worker_pool_size,
            window_size=settings.hierarchy.latency_window_size,
        )

    @property
    def coordinator(self) -> CacheCoordinator:
        return self._coordinator

    def put(self, key: str, value: str) -> None:
        """Write asynchronously; the call returns before the write lands."""
        try:
            self._coordinator.write(key, value)
        except TierCacheException as exc:
            logger.error("Error during write operation: %s", exc, extra={"key": key})

    def get(self, key: str) -> Optional[str]:
        """Read *key*, printing where it was found and how long it took."""
        start = time.perf_counter()
        try:
            result = self._coordinator.read(key)
        except TierCacheException as exc:
            logger.error("Error during read operation: %s", exc, extra={"key": key})
            return None
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        if not result.found:
            print("Key Not Present")
            return None
        print(
            f"{result.value} [Found in L{result.level + 1} Cache] "
            f"[Read Time: {elapsed_ms} ms]"
        )
        return result.value

    def display_stats(self) -> None:
        """Print tier usage and recent average latencies."""
        if not self._coordinator.wait_idle(timeout=self._settle_timeout):
            logger.warning("Background writes still pending; statistics may lag")
        stats = self._coordinator.stat()
        print("Current Usage:")
        for usage in stats.tiers:
            print(f"L{usage.level + 1}: {usage.occupancy}/{usage.capacity}")
        print(f"Average READ Time (last {self._window_size} operations): {stats.avg_read_ms} ms")
        print(f"Average WRITE Time (last {self._window_size} operations): {stats.avg_write_ms} ms")

    def shutdown(self, wait: bool = False) -> None:
        self._coordinator.shutdown(wait=wait)
        print("Cache system shut down successfully.")
