# /fusion_pricing/core/gas_tracker.py
# Tracks gas fee tiers and network congestion, keeps a bounded history window and derives
# trend and statistics from it. The poll is the only writer; every accessor hands out copies.

import asyncio
import math
import time
from collections import deque
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from fusion_pricing.adapters.base import GasSampleSource
from fusion_pricing.core.config import settings
from fusion_pricing.core.logger import (
    get_logger, bind_poll_counter, GAS_POLLS, GAS_STANDARD_PRICE, GAS_HISTORY_SIZE, CONGESTION_SCORE,
)
from fusion_pricing.core.types import (
    CongestionLevel, CongestionSnapshot, FeeTier, FeeTierSnapshot, GasRecommendation,
    GasStatistics, GasTrend, HistoryEntry, DEFAULT_CONGESTION, DEFAULT_FEE_TIERS,
)

log = get_logger(__name__)

MULTIPLIER_SCALE = 1000
TREND_WINDOW = 5

CONGESTION_MULTIPLIERS: Dict[CongestionLevel, Decimal] = {
    CongestionLevel.LOW: Decimal("0.9"),
    CongestionLevel.MEDIUM: Decimal("1.0"),
    CongestionLevel.HIGH: Decimal("1.2"),
    CongestionLevel.EXTREME: Decimal("1.5"),
}

# (start multiplier, end multiplier) applied to the standard price for a new auction.
TrendPolicy = Mapping[GasTrend, Tuple[Decimal, Decimal]]

DEFAULT_TREND_POLICY: TrendPolicy = {
    GasTrend.INCREASING: (Decimal("1.10"), Decimal("1.20")),
    GasTrend.DECREASING: (Decimal("0.90"), Decimal("0.80")),
    GasTrend.STABLE: (Decimal("1.00"), Decimal("1.00")),
}

OPTIMAL_PRICE_TIERS = (FeeTier.FAST, FeeTier.STANDARD, FeeTier.SLOW)


class MalformedSnapshotError(ValueError):
    """A fetched snapshot broke a data-model invariant and was refused."""


def scale_price(price: int, multiplier: Decimal | float) -> int:
    """
    Multiplies a fee amount without leaving integer arithmetic.

    The multiplier is reduced to an integer per-mille factor first, so fee values far above
    2**53 keep every digit.
    """
    factor = math.floor(Decimal(str(multiplier)) * MULTIPLIER_SCALE)
    return (int(price) * factor) // MULTIPLIER_SCALE


def recommend_for_trend(standard_price: int, trend: GasTrend, policy: TrendPolicy = DEFAULT_TREND_POLICY) -> GasRecommendation:
    start_multiplier, end_multiplier = policy[trend]
    start = scale_price(standard_price, start_multiplier)
    end = scale_price(standard_price, end_multiplier)
    return GasRecommendation(start_gas_price=start, end_gas_price=end, average_gas_price=(start + end) // 2)


class GasPriceTracker:
    """
    Owns the freshest fee/congestion view and a trailing history window.

    A background asyncio task polls the :class:`GasSampleSource` every ``interval_ms``. A poll
    either commits the fee snapshot, the congestion snapshot and one history entry together, or
    changes nothing. Readers never see tracker-owned objects, only copies.
    """
    def __init__(
        self,
        source: GasSampleSource,
        history_size: int | None = None,
        poll_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.history_size = settings.GAS_HISTORY_SIZE if history_size is None else history_size
        self.poll_timeout = settings.GAS_POLL_TIMEOUT_SECONDS if poll_timeout is None else poll_timeout
        if self.history_size <= 0:
            raise ValueError(f"history_size must be positive, got {self.history_size}")
        if self.poll_timeout <= 0:
            raise ValueError(f"poll_timeout must be positive, got {self.poll_timeout}")
        self._clock = clock

        self._current_gas_price = FeeTierSnapshot(timestamp=int(clock()), **DEFAULT_FEE_TIERS)
        self._congestion = CongestionSnapshot(**DEFAULT_CONGESTION)
        self._history: deque[HistoryEntry] = deque(maxlen=self.history_size)

        self._poll_lock = asyncio.Lock()
        self._poll_counter = 0
        self._stop_event: Optional[asyncio.Event] = None
        # Strong references; a schedule winding down after a restart stays here until it exits.
        self._tasks: set[asyncio.Task] = set()
        log.info("GAS_TRACKER_INITIALIZED", source=type(source).__name__, history_size=self.history_size)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def start_monitoring(self, interval_ms: int | None = None) -> None:
        """Replaces any running schedule, polls once immediately, then every ``interval_ms``."""
        if interval_ms is None:
            interval_ms = settings.GAS_POLL_INTERVAL_MS
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.stop_monitoring()

        stop_event = asyncio.Event()
        self._stop_event = stop_event
        await self.poll()
        if stop_event.is_set():
            # stop_monitoring() ran while the first poll was in flight.
            return
        task = asyncio.create_task(self._run_schedule(interval_ms / 1000, stop_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        log.info("GAS_MONITORING_STARTED", interval_ms=interval_ms)

    def stop_monitoring(self) -> None:
        """Stops the schedule. No new poll starts after this returns; safe when not running."""
        if self._stop_event is None:
            return
        self._stop_event.set()
        self._stop_event = None
        log.info("GAS_MONITORING_STOPPED")

    async def aclose(self) -> None:
        """Stops monitoring and waits for schedules that are still winding down."""
        self.stop_monitoring()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run_schedule(self, interval: float, stop_event: asyncio.Event) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + interval
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, next_tick - loop.time()))
                break
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break
            await self.poll()
            next_tick += interval
            now = loop.time()
            if now > next_tick:
                missed = math.ceil((now - next_tick) / interval)
                next_tick += missed * interval
                GAS_POLLS.labels("skipped").inc(missed)
                log.warning("GAS_POLL_TICKS_SKIPPED", missed=missed)

    # ------------------------------------------------------------------
    # The single writer
    # ------------------------------------------------------------------

    async def poll(self) -> bool:
        """
        Fetches one sample and commits it. Returns True when state changed.

        Source errors, timeouts and malformed snapshots are logged and leave the previous state
        in place; the next scheduled tick is the retry.
        """
        if self._poll_lock.locked():
            GAS_POLLS.labels("skipped").inc()
            log.warning("GAS_POLL_SKIPPED_PREVIOUS_IN_FLIGHT")
            return False

        async with self._poll_lock:
            self._poll_counter += 1
            bind_poll_counter(self._poll_counter)
            try:
                fee_tiers, congestion = await asyncio.wait_for(self._fetch_sample(), timeout=self.poll_timeout)
                self._validate(fee_tiers, congestion)
            except MalformedSnapshotError as e:
                GAS_POLLS.labels("malformed").inc()
                log.error("GAS_SNAPSHOT_MALFORMED", error=str(e))
                return False
            except asyncio.TimeoutError:
                GAS_POLLS.labels("failed").inc()
                log.error("GAS_POLL_TIMED_OUT", timeout=self.poll_timeout)
                return False
            except Exception as e:
                GAS_POLLS.labels("failed").inc()
                log.error("GAS_POLL_FAILED", error=str(e), error_type=type(e).__name__)
                return False

            entry = HistoryEntry(
                timestamp=int(self._clock()),
                price=fee_tiers.standard,
                base_fee=fee_tiers.base_fee,
                priority_fee=fee_tiers.priority_fee,
                block_number=fee_tiers.block_number,
            )
            # No await between these assignments: readers see the old or the new state, never a mix.
            self._current_gas_price = fee_tiers
            self._congestion = congestion
            self._history.append(entry)

            GAS_POLLS.labels("ok").inc()
            GAS_STANDARD_PRICE.set(fee_tiers.standard)
            GAS_HISTORY_SIZE.set(len(self._history))
            CONGESTION_SCORE.set(congestion.score)
            log.info("GAS_PRICE_UPDATED", standard=str(fee_tiers.standard), congestion=congestion.level.value)
            return True

    async def _fetch_sample(self) -> Tuple[FeeTierSnapshot, CongestionSnapshot]:
        """Both fetches run concurrently; neither outlives this call, whichever way it ends."""
        tasks = [
            asyncio.create_task(self.source.fetch_fee_tiers()),
            asyncio.create_task(self.source.fetch_congestion()),
        ]
        try:
            fee_tiers, congestion = await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        return fee_tiers, congestion

    @staticmethod
    def _validate(fee_tiers: FeeTierSnapshot, congestion: CongestionSnapshot) -> None:
        if not fee_tiers.is_monotonic():
            raise MalformedSnapshotError(
                f"fee tiers out of order: slow={fee_tiers.slow} standard={fee_tiers.standard} "
                f"fast={fee_tiers.fast} instant={fee_tiers.instant}"
            )
        if not congestion.is_consistent():
            raise MalformedSnapshotError(
                f"congestion level {congestion.level.value} does not match score {congestion.score}"
            )

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def get_current_gas_price(self) -> FeeTierSnapshot:
        return self._current_gas_price.model_copy(deep=True)

    def get_network_congestion(self) -> CongestionSnapshot:
        return self._congestion.model_copy(deep=True)

    def get_gas_price_history(self, limit: int | None = None) -> List[HistoryEntry]:
        history = [entry.model_copy() for entry in self._history]
        if limit is None:
            return history
        if limit <= 0:
            return []
        return history[-limit:]

    def get_optimal_gas_price(self, tier: FeeTier | str = FeeTier.STANDARD) -> int:
        tier = FeeTier(tier)
        if tier not in OPTIMAL_PRICE_TIERS:
            raise ValueError(f"No optimal price for tier '{tier.value}'; expected fast, standard or slow")
        multiplier = CONGESTION_MULTIPLIERS[self._congestion.level]
        return scale_price(self._current_gas_price.tier(tier), multiplier)

    def predict_gas_price_trend(self) -> GasTrend:
        if len(self._history) < TREND_WINDOW:
            return GasTrend.STABLE

        recent = [entry.price for entry in list(self._history)[-TREND_WINDOW:]]
        # Entries 0-2 and 2-4: the midpoint deliberately counts in both averages.
        old_avg = sum(recent[0:3]) // 3
        new_avg = sum(recent[2:5]) // 3
        threshold = old_avg // 20

        if new_avg > old_avg + threshold:
            return GasTrend.INCREASING
        if new_avg < old_avg - threshold:
            return GasTrend.DECREASING
        return GasTrend.STABLE

    def get_auction_gas_recommendation(self, duration_seconds: int) -> GasRecommendation:
        # duration_seconds does not influence the multipliers.
        return recommend_for_trend(self._current_gas_price.standard, self.predict_gas_price_trend())

    @staticmethod
    def is_gas_price_acceptable(price: int | str, max_price: int | str) -> bool:
        return int(price) <= int(max_price)

    def get_gas_price_statistics(self) -> GasStatistics:
        if not self._history:
            current = self._current_gas_price.standard
            return GasStatistics(average=current, median=current, min=current, max=current, volatility=0.0)

        prices = [entry.price for entry in self._history]
        average = sum(prices) // len(prices)
        ordered = sorted(prices)
        median = ordered[(len(ordered) - 1) // 2]

        volatility = 0.0
        if average > 0:
            variance = sum((float(p) - float(average)) ** 2 for p in prices) / len(prices)
            volatility = math.sqrt(variance) / float(average)

        return GasStatistics(
            average=average,
            median=median,
            min=ordered[0],
            max=ordered[-1],
            volatility=volatility,
        )
