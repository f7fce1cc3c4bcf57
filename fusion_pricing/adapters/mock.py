# /fusion_pricing/adapters/mock.py
# Scripted gas sample source for tests and simulation-first development.
# Snapshots are served in the order they were queued; the last one repeats once the queue drains.

from collections import deque
from typing import Deque, Iterable

from fusion_pricing.adapters.base import GasSampleSource, SampleSourceError
from fusion_pricing.core.logger import get_logger
from fusion_pricing.core.types import CongestionSnapshot, FeeTierSnapshot, DEFAULT_CONGESTION, DEFAULT_FEE_TIERS

log = get_logger(__name__)


def make_fee_tiers(standard: int, timestamp: int = 0, block_number: int = 0, **overrides) -> FeeTierSnapshot:
    """A well-ordered snapshot built around ``standard``, shaped like the default tiers."""
    values = dict(
        slow=standard * 3 // 4,
        standard=standard,
        fast=standard * 5 // 4,
        instant=standard * 3 // 2,
        base_fee=standard * 4 // 5,
        priority_fee=standard // 5,
    )
    values.update(overrides)
    return FeeTierSnapshot(timestamp=timestamp, block_number=block_number, **values)


def make_congestion(score: float) -> CongestionSnapshot:
    return CongestionSnapshot.from_score(
        score=score,
        pending_transactions=int(50_000 + score * 100_000),
        block_utilization=min(100.0, 60 + score * 35),
        average_wait_time=int(15 + score * 120),
    )


class MockGasSampleSource(GasSampleSource):
    """
    A mock implementation of GasSampleSource for testing purposes.
    It never touches the network; every answer was queued by the test.
    """
    def __init__(self, fee_tiers: Iterable[FeeTierSnapshot] = (), congestion: Iterable[CongestionSnapshot] = ()):
        self._fee_tiers: Deque[FeeTierSnapshot] = deque(fee_tiers)
        self._congestion: Deque[CongestionSnapshot] = deque(congestion)
        self._last_fee_tiers = FeeTierSnapshot(timestamp=0, **DEFAULT_FEE_TIERS)
        self._last_congestion = CongestionSnapshot(**DEFAULT_CONGESTION)
        self._must_fail = False
        self._hold_congestion = False
        self.fetch_count = 0
        log.info("MOCK_GAS_SOURCE_INITIALIZED", queued=len(self._fee_tiers))

    def queue_fee_tiers(self, *snapshots: FeeTierSnapshot):
        self._fee_tiers.extend(snapshots)

    def queue_standard_prices(self, *prices: int):
        """Shortcut: queue one well-ordered fee snapshot per standard price."""
        self._fee_tiers.extend(make_fee_tiers(price, block_number=i) for i, price in enumerate(prices))

    def queue_congestion(self, *snapshots: CongestionSnapshot):
        self._congestion.extend(snapshots)

    def set_next_call_to_fail(self, fail: bool = True):
        """
        Configure the mock to fail the next poll: the fee fetch raises and the congestion fetch
        of the same poll leaves the queue untouched, so later scripted snapshots keep their order.
        """
        self._must_fail = fail
        self._hold_congestion = fail

    async def fetch_fee_tiers(self) -> FeeTierSnapshot:
        self.fetch_count += 1
        if self._must_fail:
            self._must_fail = False # Reset after firing
            log.error("MOCK_GAS_SOURCE_FORCED_FAILURE")
            raise SampleSourceError("Forced failure for testing.")
        if self._fee_tiers:
            self._last_fee_tiers = self._fee_tiers.popleft()
        return self._last_fee_tiers

    async def fetch_congestion(self) -> CongestionSnapshot:
        if self._hold_congestion:
            self._hold_congestion = False
            return self._last_congestion
        if self._congestion:
            self._last_congestion = self._congestion.popleft()
        return self._last_congestion
