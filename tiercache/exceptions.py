"""
tiercache exception hierarchy.

All custom exceptions inherit from TierCacheException so callers can
catch a single base type when they want a broad safety net.
"""

from typing import Optional


class TierCacheException(Exception):
    """Base exception for all tiercache errors."""


class ConfigurationError(TierCacheException, ValueError):
    """Raised when tier parameters or settings are invalid."""


class TierOperationError(TierCacheException):
    """Raised when a tier's simulated read or write delay is interrupted.

    Attributes:
        level: Index of the tier in its hierarchy, if known.
    """

    def __init__(self, message: str, level: Optional[int] = None) -> None:
        super().__init__(message)
        self.level = level


class WorkerPoolError(TierCacheException):
    """Raised when the worker pool lifecycle is misused."""


class CoordinatorStoppedError(WorkerPoolError, RuntimeError):
    """Raised when work is submitted after the coordinator was shut down."""
