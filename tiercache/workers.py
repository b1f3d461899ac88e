"""
Bounded worker pool for background cache work.

Wraps a :class:`concurrent.futures.ThreadPoolExecutor` with an explicit
``running -> stopped`` lifecycle owned by the coordinator, and tracks
outstanding futures so callers can wait for the pool to go idle.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, Set

from tiercache.exceptions import ConfigurationError, CoordinatorStoppedError, WorkerPoolError

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 4


class WorkerPool:
    """Fixed-width thread pool with a one-way lifecycle.

    Thread safety:
        Lifecycle transitions and the pending-future set are guarded by
        an internal ``threading.Lock``.

    Args:
        size: Number of worker threads.
        name: Thread name prefix.
    """

    def __init__(self, size: int = DEFAULT_POOL_SIZE, name: str = "tiercache-worker") -> None:
        if size <= 0:
            raise ConfigurationError(f"Worker pool size must be positive, got {size}")
        self._size = size
        self._name = name
        self._executor: Optional[ThreadPoolExecutor] = None
        self._running = threading.Event()
        self._stopped = False
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()

        logger.info("WorkerPool initialised", extra={"pool_size": size})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker threads.

        Raises:
            WorkerPoolError: If the pool is already running or has been
                stopped (pools are not restartable).
        """
        with self._lock:
            if self._running.is_set():
                raise WorkerPoolError("WorkerPool is already running")
            if self._stopped:
                raise WorkerPoolError("WorkerPool has been stopped and cannot be restarted")
            self._executor = ThreadPoolExecutor(
                max_workers=self._size,
                thread_name_prefix=self._name,
            )
            self._running.set()
        logger.info("WorkerPool started", extra={"pool_size": self._size})

    def stop(self, wait: bool = False) -> None:
        """Stop accepting work.

        Tasks already running or queued are left to finish on their own.

        Args:
            wait: Block until the executor has finished its remaining work.
        """
        with self._lock:
            if not self._running.is_set():
                return
            self._running.clear()
            self._stopped = True
            executor = self._executor

        if executor is not None:
            executor.shutdown(wait=wait)
        logger.info("WorkerPool stopped", extra={"waited": wait})

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    @property
    def size(self) -> int:
        return self._size

    # ------------------------------------------------------------------
    # Work submission
    # ------------------------------------------------------------------

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Schedule ``fn(*args)`` on a worker thread.

        Raises:
            CoordinatorStoppedError: If the pool is not running.
        """
        with self._lock:
            if not self._running.is_set() or self._executor is None:
                raise CoordinatorStoppedError("Worker pool is not accepting new tasks")
            try:
                future = self._executor.submit(fn, *args)
            except RuntimeError as exc:
                raise CoordinatorStoppedError("Worker pool is shutting down") from exc
            self._pending.add(future)
        # Outside the lock: an already finished future runs the callback inline.
        future.add_done_callback(self._discard)
        return future

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted task has finished.

        Args:
            timeout: Maximum seconds to wait; ``None`` waits indefinitely.

        Returns:
            ``True`` if the pool went idle, ``False`` on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                # Finished futures linger until their done-callback runs.
                snapshot = {f for f in self._pending if not f.done()}
            if not snapshot:
                return True
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
            _, not_done = wait(snapshot, timeout=remaining)
            if not_done and deadline is not None and time.monotonic() >= deadline:
                return False

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
