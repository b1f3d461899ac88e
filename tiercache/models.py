"""
Value objects exchanged between the coordinator and its callers.
"""

from typing import Any, Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, Field, ValidationError

from tiercache.exceptions import ConfigurationError


class TierSpec(BaseModel):
    """Construction parameters of a single tier.

    Attributes:
        capacity: Maximum number of entries (> 0).
        read_latency_ms: Simulated read time in milliseconds (>= 0).
        write_latency_ms: Simulated write time in milliseconds (>= 0).
    """

    capacity: int = Field(gt=0)
    read_latency_ms: int = Field(default=0, ge=0)
    write_latency_ms: int = Field(default=0, ge=0)

    @classmethod
    def coerce(cls, raw: Union["TierSpec", Sequence[int], dict]) -> "TierSpec":
        """Build a spec from a model, a ``(capacity, read, write)`` triple or a dict.

        Raises:
            ConfigurationError: If the values are missing or out of range.
        """
        if isinstance(raw, TierSpec):
            return raw
        try:
            if isinstance(raw, dict):
                return cls(**raw)
            capacity, read_ms, write_ms = raw
            return cls(
                capacity=capacity,
                read_latency_ms=read_ms,
                write_latency_ms=write_ms,
            )
        except (ValidationError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid tier specification {raw!r}: {exc}") from exc


def coerce_specs(raw_specs: Iterable[Any]) -> List[TierSpec]:
    """Validate a list of tier specifications, fastest tier first.

    Raises:
        ConfigurationError: If the list is empty or any entry is invalid.
    """
    specs = [TierSpec.coerce(raw) for raw in raw_specs]
    if not specs:
        raise ConfigurationError("At least one tier is required")
    return specs


class ReadResult(BaseModel):
    """Outcome of a synchronous read.

    Attributes:
        key: The key that was looked up.
        found: Whether any tier held the key.
        value: The value on a hit, ``None`` on a miss.
        latency_ms: Sum of the read latencies of every tier probed.
        level: Index of the tier that served the hit (``None`` on a miss).
    """

    key: str
    found: bool = False
    value: Optional[str] = None
    latency_ms: int = 0
    level: Optional[int] = None


class TierUsage(BaseModel):
    """Occupancy snapshot of one tier."""

    level: int
    occupancy: int
    capacity: int


class CacheStats(BaseModel):
    """Hierarchy-wide statistics.

    Attributes:
        tiers: Per-tier occupancy, fastest tier first.
        avg_read_ms: Mean of the recent read latencies (0 if none).
        avg_write_ms: Mean of the recent write latencies (0 if none).
    """

    tiers: List[TierUsage] = Field(default_factory=list)
    avg_read_ms: int = 0
    avg_write_ms: int = 0
