"""
Cache coordinator for the tiered cache hierarchy.

Owns an ordered list of tiers (index 0 is the fastest), a bounded worker
pool and two rolling latency windows.  Reads scan the tiers synchronously
on the caller's thread; writes and hit promotions run as background
cascades on the pool.

A cascade puts an entry into a tier and, when that overflows the tier,
carries the evicted least-recently-used entry on to the next tier.  A
write runs one cascade from tier 0; a promotion runs one per faster tier,
each confined to the tiers above the one that served the hit.  Each
step holds exactly one tier lock; eviction from tier *i* and insertion
into tier *i + 1* are separate critical sections, so an entry can be
briefly absent from both.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from tiercache.exceptions import (
    ConfigurationError,
    CoordinatorStoppedError,
    TierCacheException,
    TierOperationError,
)
from tiercache.metrics import DEFAULT_WINDOW_SIZE, LatencyWindow
from tiercache.models import CacheStats, ReadResult, TierUsage, coerce_specs
from tiercache.tiers.base import Entry, Tier
from tiercache.tiers.lru import DelayFn, LRUTier
from tiercache.workers import DEFAULT_POOL_SIZE, WorkerPool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeState:
    """Progress of one write or promotion cascade.

    Attributes:
        key: Key being placed at ``level``.
        value: Value being placed at ``level``.
        level: Tier the next step operates on.
        stop: Exclusive upper bound of the tiers this cascade may touch.
        latency_ms: Write latency accumulated so far.
        done: Whether the cascade has terminated.
        dropped: Entry evicted past ``stop`` and discarded, if any.
    """

    key: str
    value: str
    level: int
    stop: int
    latency_ms: int = 0
    done: bool = False
    dropped: Optional[Entry] = None


class CacheCoordinator:
    """Coordinates reads, writes, promotions and eviction cascades.

    Args:
        tiers: Tiers ordered fastest first.  The coordinator takes
            ownership of them.
        pool_size: Number of background worker threads.
        window_size: Number of latency samples kept per window.

    Raises:
        ConfigurationError: If *tiers* is empty.
    """

    def __init__(
        self,
        tiers: Sequence[Tier],
        pool_size: int = DEFAULT_POOL_SIZE,
        window_size: int = DEFAULT_WINDOW_SIZE,
    ) -> None:
        if not tiers:
            raise ConfigurationError("CacheCoordinator needs at least one tier")
        self._tiers: List[Tier] = list(tiers)
        self._read_window = LatencyWindow("read", window_size)
        self._write_window = LatencyWindow("write", window_size)
        self._pool = WorkerPool(size=pool_size)
        self._pool.start()

        logger.info(
            "CacheCoordinator initialised",
            extra={
                "tier_count": len(self._tiers),
                "capacities": [t.capacity for t in self._tiers],
                "pool_size": pool_size,
            },
        )

    @classmethod
    def from_specs(
        cls,
        specs: Iterable[Any],
        *,
        delay: Optional[DelayFn] = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        window_size: int = DEFAULT_WINDOW_SIZE,
    ) -> "CacheCoordinator":
        """Build a coordinator of :class:`LRUTier` levels.

        Args:
            specs: ``TierSpec`` models, ``(capacity, read_ms, write_ms)``
                triples or dicts, fastest tier first.
            delay: Optional delay callable handed to every tier.
            pool_size: Number of background worker threads.
            window_size: Number of latency samples kept per window.

        Raises:
            ConfigurationError: If any spec is invalid.
        """
        tiers = [
            LRUTier(
                capacity=spec.capacity,
                read_latency_ms=spec.read_latency_ms,
                write_latency_ms=spec.write_latency_ms,
                delay=delay,
            )
            for spec in coerce_specs(specs)
        ]
        return cls(tiers, pool_size=pool_size, window_size=window_size)

    @property
    def tiers(self) -> Tuple[Tier, ...]:
        return tuple(self._tiers)

    @property
    def is_running(self) -> bool:
        return self._pool.is_running

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def read(self, key: str) -> ReadResult:
        """Look *key* up, fastest tier first.

        Every tier probed adds its read latency, hit or miss.  A hit below
        tier 0 schedules a background promotion into the faster tiers.

        Raises:
            TierOperationError: If a tier's simulated read is interrupted or
                the tier fails; ``level`` names the tier.
                Nothing is recorded for the abandoned read.
        """
        total_ms = 0
        for level, tier in enumerate(self._tiers):
            total_ms += tier.read_latency_ms
            try:
                with tier.lock:
                    value = tier.get(key)
            except TierOperationError as exc:
                exc.level = level
                raise
            except Exception as exc:
                raise TierOperationError(
                    f"Read from tier {level} failed: {exc}", level=level
                ) from exc
            if value is not None:
                logger.debug(
                    "Cache hit",
                    extra={"key": key, "level": level, "latency_ms": total_ms},
                )
                if level > 0:
                    self._schedule_promotion(key, value, level)
                self._read_window.record(total_ms)
                return ReadResult(
                    key=key, found=True, value=value, latency_ms=total_ms, level=level
                )

        logger.debug("Cache miss", extra={"key": key, "latency_ms": total_ms})
        self._read_window.record(total_ms)
        return ReadResult(key=key, found=False, latency_ms=total_ms)

    def write(self, key: str, value: str) -> None:
        """Schedule a write cascade starting at tier 0 and return at once.

        Raises:
            CoordinatorStoppedError: If the coordinator has been shut down.
        """
        self._pool.submit(self._run_task, "write", key, value, 1, len(self._tiers))
        logger.debug("Write scheduled", extra={"key": key})

    def promote(self, key: str, value: str, up_to_level_exclusive: int) -> None:
        """Schedule placing *key* into every tier of ``[0, up_to_level_exclusive)``.

        Each placement cascades like a write, but entries evicted from the
        last tier of the range are dropped rather than pushed into the tier
        the key was found in.

        Raises:
            CoordinatorStoppedError: If the coordinator has been shut down.
        """
        stop = min(up_to_level_exclusive, len(self._tiers))
        if stop <= 0:
            return
        self._pool.submit(self._run_task, "promotion", key, value, stop, stop)
        logger.debug("Promotion scheduled", extra={"key": key, "stop": stop})

    def stat(self) -> CacheStats:
        """Snapshot of per-tier occupancy and recent average latencies."""
        return CacheStats(
            tiers=[
                TierUsage(level=level, occupancy=tier.size(), capacity=tier.capacity)
                for level, tier in enumerate(self._tiers)
            ],
            avg_read_ms=self._read_window.average(),
            avg_write_ms=self._write_window.average(),
        )

    def get_level_of_key(self, key: str) -> Optional[int]:
        """Index of the fastest tier holding *key*, or ``None``."""
        for level, tier in enumerate(self._tiers):
            if tier.contains_key(key):
                return level
        return None

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until all background cascades submitted so far have finished.

        Returns:
            ``True`` if the pool went idle, ``False`` on timeout.
        """
        return self._pool.wait_idle(timeout=timeout)

    def shutdown(self, wait: bool = False) -> None:
        """Stop accepting background work.

        Cascades already running or queued may or may not complete.

        Args:
            wait: Block until the pool has finished what it still runs.
        """
        self._pool.stop(wait=wait)
        logger.info("CacheCoordinator shut down")

    # ------------------------------------------------------------------
    # Cascade internals
    # ------------------------------------------------------------------

    def _schedule_promotion(self, key: str, value: str, found_level: int) -> None:
        try:
            self.promote(key, value, found_level)
        except CoordinatorStoppedError:
            logger.warning(
                "Promotion skipped: coordinator stopped",
                extra={"key": key, "level": found_level},
            )

    def _run_task(self, kind: str, key: str, value: str, targets: int, stop: int) -> Optional[int]:
        """Place *key* into each of tiers ``[0, targets)`` on a worker thread.

        Each target starts its own cascade bounded by *stop*; targets run
        fastest first so later cascades never push the key back out of a
        faster tier.  A failing step abandons the rest of the task; tiers
        already written keep their entries and no latency sample is
        recorded.

        Returns:
            Total write latency, or ``None`` if the task was abandoned.
        """
        latency_ms = 0
        state = CascadeState(key=key, value=value, level=0, stop=stop, done=True)
        try:
            for target in range(targets):
                state = CascadeState(
                    key=key, value=value, level=target, stop=stop, latency_ms=latency_ms
                )
                while not state.done:
                    state = self._cascade_step(state)
                latency_ms = state.latency_ms
                if state.dropped is not None:
                    logger.debug(
                        "Evicted entry dropped at end of cascade",
                        extra={"kind": kind, "key": state.dropped.key, "level": state.level},
                    )
        except TierCacheException as exc:
            logger.error(
                "Cascade abandoned",
                extra={"kind": kind, "key": state.key, "level": state.level, "error": str(exc)},
                exc_info=True,
            )
            return None

        self._write_window.record(latency_ms)
        logger.debug(
            "Cascade completed",
            extra={"kind": kind, "key": key, "latency_ms": latency_ms},
        )
        return latency_ms

    def _cascade_step(self, state: CascadeState) -> CascadeState:
        """Place ``state.key`` at ``state.level`` and return the follow-up state."""
        tier = self._tiers[state.level]
        try:
            with tier.lock:
                if tier.peek(state.key) == state.value:
                    return replace(state, done=True)
                fits = tier.put(state.key, state.value)
                evicted = None if fits else tier.evict_least_recently_used()
        except TierOperationError as exc:
            exc.level = state.level
            raise
        except Exception as exc:
            raise TierOperationError(
                f"Write to tier {state.level} failed: {exc}", level=state.level
            ) from exc

        latency_ms = state.latency_ms + tier.write_latency_ms
        if evicted is None:
            return replace(state, latency_ms=latency_ms, done=True)

        next_level = state.level + 1
        if next_level >= state.stop:
            return replace(state, latency_ms=latency_ms, done=True, dropped=evicted)

        return CascadeState(
            key=evicted.key,
            value=evicted.value,
            level=next_level,
            stop=state.stop,
            latency_ms=latency_ms,
        )
