# /test/test_gas_tracker.py
# Tracker state, history window, trend, pricing and statistics, driven by the scripted source.

import asyncio
import math
import pytest
from pydantic import ValidationError

from fusion_pricing.adapters.mock import MockGasSampleSource, make_congestion, make_fee_tiers
from fusion_pricing.core.gas_tracker import GasPriceTracker, scale_price
from fusion_pricing.core.types import (
    CongestionLevel, CongestionSnapshot, FeeTier, FeeTierSnapshot, GasTrend, DEFAULT_FEE_TIERS,
)

# --- Pytest Fixtures ---

@pytest.fixture
def source():
    return MockGasSampleSource()

@pytest.fixture
def tracker(source):
    return GasPriceTracker(source, history_size=100, clock=lambda: 1_700_000_000)

async def feed(tracker: GasPriceTracker, source: MockGasSampleSource, *prices: int):
    source.queue_standard_prices(*prices)
    for _ in prices:
        assert await tracker.poll() is True

# --- Defaults ---

def test_defaults_before_first_poll(tracker):
    current = tracker.get_current_gas_price()
    assert (current.slow, current.standard, current.fast, current.instant) == (15, 20, 25, 30)
    assert (current.base_fee, current.priority_fee) == (16, 4)
    assert tracker.get_network_congestion().level == CongestionLevel.MEDIUM
    assert tracker.get_gas_price_history() == []
    assert tracker.get_gas_price_history(10) == []

def test_optimal_price_at_default_medium_congestion(tracker):
    assert tracker.get_optimal_gas_price("standard") == 20
    assert tracker.get_optimal_gas_price(FeeTier.FAST) == 25
    assert tracker.get_optimal_gas_price(FeeTier.SLOW) == 15

@pytest.mark.asyncio
async def test_optimal_price_under_extreme_congestion(tracker, source):
    source.queue_congestion(make_congestion(0.95))
    assert await tracker.poll()
    assert tracker.get_network_congestion().level == CongestionLevel.EXTREME
    assert tracker.get_optimal_gas_price("standard") == 30

@pytest.mark.asyncio
async def test_optimal_price_under_low_and_high_congestion(tracker, source):
    source.queue_congestion(make_congestion(0.1), make_congestion(0.7))
    await tracker.poll()
    assert tracker.get_optimal_gas_price("standard") == 18
    await tracker.poll()
    assert tracker.get_optimal_gas_price("standard") == 24

def test_optimal_price_rejects_other_tiers(tracker):
    with pytest.raises(ValueError):
        tracker.get_optimal_gas_price("instant")
    with pytest.raises(ValueError):
        tracker.get_optimal_gas_price("ludicrous")

@pytest.mark.asyncio
async def test_optimal_price_scales_with_base_prices():
    results = []
    for standard in (40, 80):
        source = MockGasSampleSource(fee_tiers=[make_fee_tiers(standard)], congestion=[make_congestion(0.1)])
        tracker = GasPriceTracker(source)
        await tracker.poll()
        results.append({tier: tracker.get_optimal_gas_price(tier) for tier in ("slow", "standard", "fast")})
    single, double = results
    assert {tier: 2 * price for tier, price in single.items()} == double

@pytest.mark.asyncio
async def test_large_fee_values_keep_every_digit(tracker, source):
    huge = 2**70 + 1
    source.queue_fee_tiers(make_fee_tiers(huge))
    source.queue_congestion(make_congestion(0.7))
    await tracker.poll()
    assert tracker.get_optimal_gas_price("standard") == huge * 1200 // 1000
    assert scale_price(huge, "1.0") == huge

# --- History window ---

@pytest.mark.asyncio
async def test_history_never_exceeds_capacity_and_keeps_newest(tracker, source):
    await feed(tracker, source, *range(1, 131))
    history = tracker.get_gas_price_history()
    assert len(history) == 100
    assert [entry.price for entry in history] == list(range(31, 131))

@pytest.mark.asyncio
async def test_history_limit_returns_trailing_entries(tracker, source):
    await feed(tracker, source, 11, 12, 13, 14)
    assert [e.price for e in tracker.get_gas_price_history(2)] == [13, 14]
    assert [e.price for e in tracker.get_gas_price_history(50)] == [11, 12, 13, 14]
    assert tracker.get_gas_price_history(0) == []

@pytest.mark.asyncio
async def test_history_entry_mirrors_snapshot(tracker, source):
    source.queue_fee_tiers(make_fee_tiers(50, block_number=17_123_456))
    await tracker.poll()
    (entry,) = tracker.get_gas_price_history()
    assert entry.timestamp == 1_700_000_000
    assert (entry.price, entry.base_fee, entry.priority_fee) == (50, 40, 10)
    assert entry.block_number == 17_123_456

# --- Copies, not references ---

@pytest.mark.asyncio
async def test_readers_get_copies(tracker, source):
    await feed(tracker, source, 10, 20)
    first = tracker.get_current_gas_price()
    assert first is not tracker.get_current_gas_price()
    with pytest.raises(ValidationError):
        first.standard = 999

    history = tracker.get_gas_price_history()
    history.clear()
    assert len(tracker.get_gas_price_history()) == 2

# --- Failure handling ---

@pytest.mark.asyncio
async def test_failed_poll_keeps_previous_state(tracker, source):
    await feed(tracker, source, 33)
    source.queue_standard_prices(44)
    source.set_next_call_to_fail()
    assert await tracker.poll() is False
    assert tracker.get_current_gas_price().standard == 33
    assert len(tracker.get_gas_price_history()) == 1
    # The next tick is the retry.
    assert await tracker.poll() is True
    assert tracker.get_current_gas_price().standard == 44

@pytest.mark.asyncio
async def test_failed_poll_does_not_consume_queued_congestion(tracker, source):
    source.queue_congestion(make_congestion(0.1), make_congestion(0.7))
    source.set_next_call_to_fail()
    assert await tracker.poll() is False
    assert await tracker.poll() is True
    assert tracker.get_network_congestion().level == CongestionLevel.LOW
    assert await tracker.poll() is True
    assert tracker.get_network_congestion().level == CongestionLevel.HIGH

@pytest.mark.asyncio
async def test_non_monotonic_tiers_are_rejected(tracker, source):
    source.queue_fee_tiers(FeeTierSnapshot(slow=30, standard=20, fast=25, instant=40, base_fee=10, priority_fee=1, timestamp=0))
    assert await tracker.poll() is False
    assert tracker.get_current_gas_price().standard == DEFAULT_FEE_TIERS["standard"]
    assert tracker.get_gas_price_history() == []

@pytest.mark.asyncio
async def test_inconsistent_congestion_is_rejected(tracker, source):
    source.queue_congestion(CongestionSnapshot(
        level=CongestionLevel.LOW, score=0.9, pending_transactions=1, block_utilization=90, average_wait_time=60,
    ))
    assert await tracker.poll() is False
    assert tracker.get_network_congestion().level == CongestionLevel.MEDIUM

class HangingSource(MockGasSampleSource):
    async def fetch_fee_tiers(self):
        await asyncio.sleep(5)
        return await super().fetch_fee_tiers()

@pytest.mark.asyncio
async def test_poll_is_bounded_by_timeout():
    tracker = GasPriceTracker(HangingSource(), poll_timeout=0.05)
    assert await tracker.poll() is False
    assert tracker.get_gas_price_history() == []

@pytest.mark.parametrize("kwargs", [{"history_size": 0}, {"history_size": -1}, {"poll_timeout": 0}])
def test_rejects_non_positive_construction_limits(kwargs):
    with pytest.raises(ValueError):
        GasPriceTracker(MockGasSampleSource(), **kwargs)

# --- Trend ---

@pytest.mark.asyncio
async def test_trend_is_stable_below_five_entries(tracker, source):
    await feed(tracker, source, 1, 1_000, 1_000_000, 1_000_000_000)
    assert tracker.predict_gas_price_trend() == GasTrend.STABLE

@pytest.mark.asyncio
@pytest.mark.parametrize("prices, expected", [
    ((10, 10, 10, 20, 20), GasTrend.INCREASING),
    ((20, 20, 20, 10, 10), GasTrend.DECREASING),
    ((100, 100, 100, 104, 104), GasTrend.STABLE),
    # Midpoint counted in both halves: 60 // 3 on each side.
    ((10, 10, 40, 10, 10), GasTrend.STABLE),
])
async def test_trend_from_last_five_entries(tracker, source, prices, expected):
    await feed(tracker, source, *prices)
    assert tracker.predict_gas_price_trend() == expected

@pytest.mark.asyncio
async def test_trend_only_looks_at_last_five(tracker, source):
    await feed(tracker, source, 500, 500, 500, 10, 10, 10, 20, 20)
    assert tracker.predict_gas_price_trend() == GasTrend.INCREASING

# --- Auction recommendation ---

def test_recommendation_is_flat_when_stable(tracker):
    rec = tracker.get_auction_gas_recommendation(180)
    assert (rec.start_gas_price, rec.end_gas_price, rec.average_gas_price) == (20, 20, 20)

@pytest.mark.asyncio
async def test_recommendation_follows_trend(tracker, source):
    await feed(tracker, source, 10, 10, 10, 20, 20)
    rec = tracker.get_auction_gas_recommendation(180)
    assert (rec.start_gas_price, rec.end_gas_price, rec.average_gas_price) == (22, 24, 23)

    await feed(tracker, source, 20, 20, 20, 10, 10)
    rec = tracker.get_auction_gas_recommendation(180)
    assert (rec.start_gas_price, rec.end_gas_price, rec.average_gas_price) == (9, 8, 8)

@pytest.mark.asyncio
async def test_recommendation_ignores_duration(tracker, source):
    await feed(tracker, source, 10, 10, 10, 20, 20)
    assert tracker.get_auction_gas_recommendation(60) == tracker.get_auction_gas_recommendation(3600)

# --- Acceptability and statistics ---

@pytest.mark.parametrize("price", [0, 1, 20, 2**80])
def test_price_is_acceptable_at_its_own_limit(price):
    assert GasPriceTracker.is_gas_price_acceptable(price, price)

def test_acceptability_compares_integers():
    assert GasPriceTracker.is_gas_price_acceptable("99", "100")
    assert not GasPriceTracker.is_gas_price_acceptable("100", "99")

def test_statistics_without_history_use_current_price(tracker):
    stats = tracker.get_gas_price_statistics()
    assert (stats.average, stats.median, stats.min, stats.max) == (20, 20, 20, 20)
    assert stats.volatility == 0

@pytest.mark.asyncio
async def test_statistics_over_history(tracker, source):
    await feed(tracker, source, 40, 10, 30, 20)
    stats = tracker.get_gas_price_statistics()
    assert stats.average == 25
    assert stats.median == 20  # lower middle of [10, 20, 30, 40]
    assert (stats.min, stats.max) == (10, 40)
    assert stats.volatility == pytest.approx(math.sqrt(125) / 25)

@pytest.mark.asyncio
async def test_statistics_median_for_odd_count(tracker, source):
    await feed(tracker, source, 5, 1, 3)
    assert tracker.get_gas_price_statistics().median == 3

@pytest.mark.asyncio
async def test_statistics_with_zero_prices(tracker, source):
    await feed(tracker, source, 0, 0)
    stats = tracker.get_gas_price_statistics()
    assert stats.average == 0
    assert stats.volatility == 0
