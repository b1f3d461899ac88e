"""Tests for CacheCoordinator -- reads, write cascades, promotion, stats."""

import logging
import threading
from typing import Iterator, List
from unittest.mock import MagicMock

import pytest

from tiercache.coordinator import CacheCoordinator, CascadeState
from tiercache.exceptions import ConfigurationError, CoordinatorStoppedError, TierOperationError
from tiercache.models import CacheStats, ReadResult, TierSpec
from tiercache.tiers.base import Entry
from tiercache.tiers.lru import LRUTier


def _no_delay(seconds: float) -> None:
    """Delay stub so tests never sleep."""


def _interrupted(seconds: float) -> None:
    raise InterruptedError("woken up")


def _make(specs, **kwargs) -> CacheCoordinator:
    return CacheCoordinator.from_specs(specs, delay=_no_delay, **kwargs)


@pytest.fixture
def coordinators() -> Iterator[List[CacheCoordinator]]:
    """Collects coordinators built by a test and shuts them down afterwards."""
    created: List[CacheCoordinator] = []
    yield created
    for coordinator in created:
        coordinator.shutdown(wait=True)


@pytest.fixture
def two_tier(coordinators: List[CacheCoordinator]) -> CacheCoordinator:
    """Capacities [1, 2], read times [10, 20], write times [5, 15]."""
    coordinator = _make([(1, 10, 5), (2, 20, 15)])
    coordinators.append(coordinator)
    return coordinator


@pytest.fixture
def three_tier(coordinators: List[CacheCoordinator]) -> CacheCoordinator:
    coordinator = _make([(1, 1, 2), (1, 10, 20), (1, 100, 200)])
    coordinators.append(coordinator)
    return coordinator


def _write_and_settle(coordinator: CacheCoordinator, key: str, value: str) -> None:
    coordinator.write(key, value)
    assert coordinator.wait_idle(timeout=5)


class TestConstruction:
    """Tests for building a coordinator."""

    def test_from_specs_accepts_models_and_triples(self, coordinators) -> None:
        coordinator = _make([TierSpec(capacity=2, read_latency_ms=1, write_latency_ms=1), (3, 5, 5)])
        coordinators.append(coordinator)
        assert [t.capacity for t in coordinator.tiers] == [2, 3]
        assert coordinator.is_running is True

    def test_empty_tier_list_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            CacheCoordinator([])

    def test_invalid_spec_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            _make([(0, 10, 10)])

    def test_negative_latency_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            _make([(1, -1, 10)])


class TestRead:
    """Tests for the synchronous read path."""

    def test_full_miss_reports_absent_with_latency(self, two_tier: CacheCoordinator) -> None:
        result = two_tier.read("nope")
        assert isinstance(result, ReadResult)
        assert result.found is False
        assert result.value is None
        assert result.level is None
        assert result.latency_ms == 30
        assert two_tier.stat().avg_read_ms == 30

    def test_hit_at_fastest_tier(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        result = two_tier.read("a")
        assert result.found is True
        assert result.value == "1"
        assert result.level == 0
        assert result.latency_ms == 10

    def test_hit_at_fastest_tier_schedules_nothing(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        write_samples = two_tier.stat().avg_write_ms
        two_tier.read("a")
        assert two_tier.wait_idle(timeout=5)
        assert two_tier.stat().avg_write_ms == write_samples

    def test_read_refreshes_recency(self, coordinators) -> None:
        coordinator = _make([(2, 0, 0), (2, 0, 0)])
        coordinators.append(coordinator)
        _write_and_settle(coordinator, "a", "1")
        _write_and_settle(coordinator, "b", "2")
        coordinator.read("a")
        _write_and_settle(coordinator, "c", "3")
        tier0, tier1 = coordinator.tiers
        assert sorted(tier0.keys()) == ["a", "c"]
        assert tier1.keys() == ["b"]

    def test_interrupted_read_propagates(self, coordinators) -> None:
        fast = LRUTier(1, read_latency_ms=0, delay=_no_delay)
        slow = LRUTier(1, read_latency_ms=5, delay=_interrupted)
        coordinator = CacheCoordinator([fast, slow])
        coordinators.append(coordinator)

        with pytest.raises(TierOperationError) as exc_info:
            coordinator.read("k")
        assert exc_info.value.level == 1
        assert coordinator.stat().avg_read_ms == 0

    def test_coordinator_usable_after_failed_read(self, coordinators) -> None:
        fast = LRUTier(1, read_latency_ms=3, delay=_no_delay)
        slow = LRUTier(1, read_latency_ms=5, delay=_interrupted)
        coordinator = CacheCoordinator([fast, slow])
        coordinators.append(coordinator)
        _write_and_settle(coordinator, "k", "v")

        with pytest.raises(TierOperationError):
            coordinator.read("other")
        result = coordinator.read("k")
        assert result.value == "v"
        assert result.latency_ms == 3


class TestWriteCascade:
    """Tests for write propagation and eviction cascades."""

    def test_write_lands_in_fastest_tier(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        tier0, tier1 = two_tier.tiers
        assert tier0.keys() == ["a"]
        assert tier1.size() == 0
        assert two_tier.stat().avg_write_ms == 5

    def test_write_returns_before_completion(self, coordinators) -> None:
        gate = threading.Event()
        tier = LRUTier(1, write_latency_ms=1, delay=lambda s: gate.wait(5))
        coordinator = CacheCoordinator([tier])
        coordinators.append(coordinator)

        coordinator.write("a", "1")
        assert tier.size() == 0
        gate.set()
        assert coordinator.wait_idle(timeout=5)
        assert tier.contains_key("a")

    def test_overflow_cascades_lru_to_next_tier(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        _write_and_settle(two_tier, "b", "2")
        tier0, tier1 = two_tier.tiers
        assert tier0.keys() == ["b"]
        assert tier1.keys() == ["a"]
        # (5) for "a", then (5 + 15) for "b" plus the cascaded "a".
        assert two_tier.stat().avg_write_ms == (5 + 20) // 2

    def test_cascade_example(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        _write_and_settle(two_tier, "b", "2")

        result = two_tier.read("a")
        assert result.value == "1"
        assert result.latency_ms == 30
        assert result.level == 1

        assert two_tier.wait_idle(timeout=5)
        tier0, tier1 = two_tier.tiers
        assert tier0.keys() == ["a"]
        assert tier1.keys() == ["a"]
        assert two_tier.get_level_of_key("b") is None

    def test_terminal_drop_on_single_tier(self, coordinators) -> None:
        coordinator = _make([(1, 10, 10)])
        coordinators.append(coordinator)
        _write_and_settle(coordinator, "x", "1")
        _write_and_settle(coordinator, "y", "2")

        assert coordinator.get_level_of_key("x") is None
        assert coordinator.read("x").found is False
        assert coordinator.tiers[0].keys() == ["y"]

    def test_multi_level_cascade(self, three_tier: CacheCoordinator) -> None:
        for key in ("a", "b", "c"):
            _write_and_settle(three_tier, key, key.upper())
        assert [t.keys() for t in three_tier.tiers] == [["c"], ["b"], ["a"]]

        _write_and_settle(three_tier, "d", "D")
        assert [t.keys() for t in three_tier.tiers] == [["d"], ["c"], ["b"]]
        assert three_tier.get_level_of_key("a") is None

    def test_update_value_overwrites_without_overflow(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        _write_and_settle(two_tier, "a", "2")
        assert two_tier.read("a").value == "2"
        assert two_tier.tiers[1].size() == 0

    def test_identical_write_short_circuits(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        _write_and_settle(two_tier, "a", "1")
        # The repeated write touched nothing, so its sample is 0.
        assert two_tier.stat().avg_write_ms == (5 + 0) // 2
        assert two_tier.tiers[0].keys() == ["a"]

    def test_identical_value_at_deeper_tier_stops_cascade(self, coordinators) -> None:
        writes: List[float] = []
        tier0 = LRUTier(1, write_latency_ms=5, delay=_no_delay)
        tier1 = LRUTier(2, write_latency_ms=15, delay=writes.append)
        tier1.put("b", "2")
        tier1.put("z", "9")
        writes.clear()
        coordinator = CacheCoordinator([tier0, tier1])
        coordinators.append(coordinator)

        _write_and_settle(coordinator, "b", "2")
        _write_and_settle(coordinator, "a", "1")

        assert tier0.keys() == ["a"]
        # "b" reached tier 1 already bound to "2": no put, recency untouched.
        assert tier1.keys() == ["b", "z"]
        assert writes == []
        assert coordinator.stat().avg_write_ms == 5

    def test_stale_value_at_deeper_tier_is_overwritten(self, coordinators) -> None:
        tier0 = LRUTier(1, delay=_no_delay)
        tier1 = LRUTier(2, delay=_no_delay)
        tier1.put("b", "old")
        coordinator = CacheCoordinator([tier0, tier1])
        coordinators.append(coordinator)

        _write_and_settle(coordinator, "b", "new")
        _write_and_settle(coordinator, "a", "1")
        assert tier1.peek("b") == "new"

    def test_failed_cascade_step_keeps_earlier_tiers(self, coordinators) -> None:
        tier0 = LRUTier(1, write_latency_ms=5, delay=_no_delay)
        tier1 = LRUTier(1, write_latency_ms=5, delay=_interrupted)
        coordinator = CacheCoordinator([tier0, tier1])
        coordinators.append(coordinator)

        _write_and_settle(coordinator, "a", "1")
        _write_and_settle(coordinator, "b", "2")

        assert tier0.keys() == ["b"]
        assert tier1.size() == 0
        # Only the first write completed and recorded a sample.
        assert coordinator.stat().avg_write_ms == 5

        _write_and_settle(coordinator, "b", "3")
        assert tier0.peek("b") == "3"

    def test_write_after_shutdown_rejected(self, two_tier: CacheCoordinator) -> None:
        two_tier.shutdown()
        assert two_tier.is_running is False
        with pytest.raises(CoordinatorStoppedError):
            two_tier.write("a", "1")


class TestWriteWithMockTiers:
    """Tests for cascade sequencing against tier doubles."""

    @staticmethod
    def _mock_tier() -> MagicMock:
        tier = MagicMock()
        tier.read_latency_ms = 1
        tier.write_latency_ms = 2
        tier.capacity = 1
        tier.peek.return_value = None
        return tier

    def test_eviction_propagates_to_next_tier(self, coordinators) -> None:
        level1 = self._mock_tier()
        level2 = self._mock_tier()
        level1.put.return_value = False
        level1.evict_least_recently_used.return_value = Entry("2", "value2")
        level2.put.return_value = True
        coordinator = CacheCoordinator([level1, level2])
        coordinators.append(coordinator)

        _write_and_settle(coordinator, "1", "value1")

        level1.put.assert_called_once_with("1", "value1")
        level1.evict_least_recently_used.assert_called_once_with()
        level2.put.assert_called_once_with("2", "value2")
        level2.evict_least_recently_used.assert_not_called()
        assert coordinator.stat().avg_write_ms == 4

    def test_read_probes_in_order(self, coordinators) -> None:
        level1 = self._mock_tier()
        level2 = self._mock_tier()
        level1.get.return_value = None
        level2.get.return_value = "value7"
        coordinator = CacheCoordinator([level1, level2])
        coordinators.append(coordinator)

        result = coordinator.read("7")

        level1.get.assert_called_once_with("7")
        level2.get.assert_called_once_with("7")
        assert result.value == "value7"
        assert result.latency_ms == 2


class TestPromotion:
    """Tests for asynchronous promotion into faster tiers."""

    def test_hit_at_slowest_tier_fills_faster_tiers(self, three_tier: CacheCoordinator) -> None:
        tier0, tier1, tier2 = three_tier.tiers
        tier2.put("k", "v")

        result = three_tier.read("k")
        assert result.level == 2
        assert result.latency_ms == 111

        assert three_tier.wait_idle(timeout=5)
        assert tier0.contains_key("k")
        assert tier1.contains_key("k")
        assert tier2.contains_key("k")
        assert tier2.keys() == ["k"]
        # One put into each of tiers 0 and 1, neither overflowed.
        assert three_tier.stat().avg_write_ms == 2 + 20

    def test_promotion_does_not_write_found_tier(self, coordinators) -> None:
        writes: List[float] = []
        tier0 = LRUTier(1, write_latency_ms=1, delay=_no_delay)
        tier1 = LRUTier(1, write_latency_ms=1, delay=_no_delay)
        tier2 = LRUTier(2, write_latency_ms=1, delay=writes.append)
        tier2.put("k", "v")
        writes.clear()
        coordinator = CacheCoordinator([tier0, tier1, tier2])
        coordinators.append(coordinator)

        coordinator.read("k")
        assert coordinator.wait_idle(timeout=5)
        assert writes == []

    def test_eviction_inside_range_moves_down(self, coordinators) -> None:
        coordinator = _make([(1, 0, 0), (2, 0, 0), (1, 0, 0)])
        coordinators.append(coordinator)
        tier0, tier1, tier2 = coordinator.tiers
        tier0.put("x", "X")
        tier2.put("k", "v")

        coordinator.read("k")
        assert coordinator.wait_idle(timeout=5)

        assert tier0.keys() == ["k"]
        assert tier1.keys() == ["x", "k"]
        assert tier2.keys() == ["k"]

    def test_eviction_at_range_boundary_is_dropped(self, three_tier: CacheCoordinator) -> None:
        tier0, tier1, tier2 = three_tier.tiers
        tier0.put("x", "X")
        tier1.put("y", "Y")
        tier2.put("k", "v")

        three_tier.read("k")
        assert three_tier.wait_idle(timeout=5)

        assert tier0.keys() == ["k"]
        assert tier1.keys() == ["k"]
        assert tier2.keys() == ["k"]
        assert three_tier.get_level_of_key("x") is None
        assert three_tier.get_level_of_key("y") is None

    def test_promote_explicit_range(self, three_tier: CacheCoordinator) -> None:
        three_tier.promote("p", "P", 2)
        assert three_tier.wait_idle(timeout=5)
        assert three_tier.get_level_of_key("p") == 0
        assert three_tier.tiers[1].contains_key("p")
        assert three_tier.tiers[2].size() == 0

    def test_promote_empty_range_is_noop(self, three_tier: CacheCoordinator) -> None:
        three_tier.promote("p", "P", 0)
        assert three_tier.wait_idle(timeout=5)
        assert three_tier.get_level_of_key("p") is None

    def test_read_after_shutdown_skips_promotion(self, two_tier: CacheCoordinator) -> None:
        two_tier.tiers[1].put("a", "1")
        two_tier.shutdown(wait=True)

        result = two_tier.read("a")
        assert result.value == "1"
        assert two_tier.tiers[0].size() == 0


class TestStat:
    """Tests for statistics snapshots."""

    def test_initial_stats(self, two_tier: CacheCoordinator) -> None:
        stats = two_tier.stat()
        assert isinstance(stats, CacheStats)
        assert [(u.occupancy, u.capacity) for u in stats.tiers] == [(0, 1), (0, 2)]
        assert stats.avg_read_ms == 0
        assert stats.avg_write_ms == 0

    def test_average_uses_actual_sample_count(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        two_tier.read("a")        # 10
        two_tier.read("missing")  # 30
        assert two_tier.stat().avg_read_ms == 20

    def test_read_window_keeps_last_five(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        two_tier.read("m1")
        two_tier.read("m2")
        for _ in range(5):
            two_tier.read("a")
        # All seven would average (30 + 30 + 5 * 10) // 7 == 15.
        assert two_tier.stat().avg_read_ms == 10

    def test_occupancy_after_cascade(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        _write_and_settle(two_tier, "b", "2")
        stats = two_tier.stat()
        assert [(u.level, u.occupancy) for u in stats.tiers] == [(0, 1), (1, 1)]

    def test_get_level_of_key(self, two_tier: CacheCoordinator) -> None:
        _write_and_settle(two_tier, "a", "1")
        _write_and_settle(two_tier, "b", "2")
        assert two_tier.get_level_of_key("b") == 0
        assert two_tier.get_level_of_key("a") == 1
        assert two_tier.get_level_of_key("zzz") is None


class TestConcurrency:
    """Tests for invariants under concurrent access."""

    def test_capacity_holds_after_concurrent_writes(self, coordinators) -> None:
        coordinator = _make([(3, 0, 0), (5, 0, 0), (8, 0, 0)], pool_size=4)
        coordinators.append(coordinator)

        for i in range(200):
            coordinator.write(f"k{i % 40}", f"v{i}")
        assert coordinator.wait_idle(timeout=10)

        for tier in coordinator.tiers:
            assert tier.size() <= tier.capacity

    def test_concurrent_reads_and_writes(self, coordinators) -> None:
        coordinator = _make([(2, 0, 0), (4, 0, 0)], pool_size=4)
        coordinators.append(coordinator)
        errors: List[BaseException] = []

        def reader() -> None:
            try:
                for i in range(100):
                    coordinator.read(f"k{i % 10}")
            except BaseException as exc:  # pragma: no cover - reported below
                errors.append(exc)

        for i in range(10):
            coordinator.write(f"k{i}", str(i))
        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for i in range(50):
            coordinator.write(f"k{i % 10}", str(i))
        for t in threads:
            t.join()

        assert coordinator.wait_idle(timeout=10)
        assert errors == []
        for tier in coordinator.tiers:
            assert tier.size() <= tier.capacity
        assert len(coordinator.stat().tiers) == 2


class TestCascadeState:
    """Tests for the per-task cascade value."""

    def test_defaults(self) -> None:
        state = CascadeState(key="a", value="1", level=0, stop=2)
        assert state.latency_ms == 0
        assert state.done is False
        assert state.dropped is None


class _FailingTier(LRUTier):
    """LRU tier whose storage calls fail like a lost backing device."""

    def __init__(self, capacity: int, *, fail_get: bool = False, fail_put: bool = False) -> None:
        super().__init__(capacity, delay=_no_delay)
        self._fail_get = fail_get
        self._fail_put = fail_put

    def get(self, key: str):
        if self._fail_get:
            raise OSError("disk gone")
        return super().get(key)

    def put(self, key: str, value: str) -> bool:
        if self._fail_put:
            raise OSError("disk gone")
        return super().put(key, value)


class TestTierFailures:
    """Tests for tiers that raise errors other than TierOperationError."""

    def test_failing_put_abandons_cascade_and_logs(self, coordinators, caplog) -> None:
        coordinator = CacheCoordinator([_FailingTier(1, fail_put=True)])
        coordinators.append(coordinator)

        with caplog.at_level(logging.ERROR, logger="tiercache.coordinator"):
            _write_and_settle(coordinator, "a", "1")

        records = [r for r in caplog.records if r.getMessage() == "Cascade abandoned"]
        assert len(records) == 1
        assert records[0].exc_info is not None
        assert isinstance(records[0].exc_info[1], TierOperationError)
        assert isinstance(records[0].exc_info[1].__cause__, OSError)
        assert coordinator.stat().avg_write_ms == 0

    def test_failing_put_deeper_keeps_earlier_tiers(self, coordinators, caplog) -> None:
        tier0 = LRUTier(1, delay=_no_delay)
        coordinator = CacheCoordinator([tier0, _FailingTier(1, fail_put=True)])
        coordinators.append(coordinator)
        _write_and_settle(coordinator, "a", "1")

        with caplog.at_level(logging.ERROR, logger="tiercache.coordinator"):
            _write_and_settle(coordinator, "b", "2")

        assert tier0.keys() == ["b"]
        assert "Cascade abandoned" in caplog.text
        _write_and_settle(coordinator, "b", "3")
        assert tier0.peek("b") == "3"

    def test_failing_get_raises_tier_operation_error(self, coordinators) -> None:
        fast = LRUTier(1, delay=_no_delay)
        coordinator = CacheCoordinator([fast, _FailingTier(1, fail_get=True)])
        coordinators.append(coordinator)

        with pytest.raises(TierOperationError) as exc_info:
            coordinator.read("k")
        assert exc_info.value.level == 1
        assert isinstance(exc_info.value.__cause__, OSError)
        assert coordinator.stat().avg_read_ms == 0
