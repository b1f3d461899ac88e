"""
Rolling latency windows for the cache coordinator.

Each window keeps the most recent N latency samples (FIFO) and reports
their integer mean.  Workers completing in parallel append concurrently,
so every access goes through a lock.
"""

import logging
import threading
from collections import deque
from typing import Deque, List

from tiercache.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 5


class LatencyWindow:
    """Bounded FIFO of latency samples in milliseconds.

    Args:
        name: Label used in log records (``"read"`` / ``"write"``).
        size: Maximum number of samples retained.
    """

    def __init__(self, name: str, size: int = DEFAULT_WINDOW_SIZE) -> None:
        if size <= 0:
            raise ConfigurationError(f"Latency window size must be positive, got {size}")
        self.name = name
        self.size = size
        self._samples: Deque[int] = deque(maxlen=size)
        self._lock = threading.Lock()

    def record(self, latency_ms: int) -> None:
        """Append a sample, dropping the oldest beyond ``size``."""
        with self._lock:
            self._samples.append(int(latency_ms))
        logger.debug(
            "Latency sample recorded",
            extra={"window": self.name, "latency_ms": latency_ms},
        )

    def average(self) -> int:
        """Integer mean of the retained samples; 0 when empty."""
        with self._lock:
            count = len(self._samples)
            if count == 0:
                return 0
            return sum(self._samples) // count

    def samples(self) -> List[int]:
        with self._lock:
            return list(self._samples)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
