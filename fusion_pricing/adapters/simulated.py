# /fusion_pricing/adapters/simulated.py
# A synthetic fee market: a slow sinusoidal drift plus uniform jitter, with congestion that
# follows peak UTC hours. Stands in for a live node in local runs and demos.

import math
import random
import time
from datetime import datetime, timezone
from typing import Callable

from fusion_pricing.adapters.base import GasSampleSource
from fusion_pricing.core.logger import get_logger
from fusion_pricing.core.types import CongestionSnapshot, FeeTierSnapshot

log = get_logger(__name__)

PEAK_HOURS_UTC = ((9, 11), (14, 16), (19, 21))


class SimulatedGasSampleSource(GasSampleSource):
    def __init__(
        self,
        base_price: float = 20.0,
        volatility: float = 0.3,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_price = base_price
        self.volatility = volatility
        self.rng = rng or random.Random()
        self.clock = clock
        log.info("SIMULATED_GAS_SOURCE_INITIALIZED", base_price=base_price, volatility=volatility)

    async def fetch_fee_tiers(self) -> FeeTierSnapshot:
        now = self.clock()
        # Long-term drift of +/-20% with a period of roughly 10.5 minutes.
        trend = math.sin(now * 1000 / 100_000) * 0.2
        jitter = (self.rng.random() - 0.5) * self.volatility
        current = self.base_price * (1 + trend + jitter)

        return FeeTierSnapshot(
            slow=math.floor(current * 0.8),
            standard=math.floor(current),
            fast=math.floor(current * 1.2),
            instant=math.floor(current * 1.5),
            base_fee=math.floor(max(1.0, current * 0.8)),
            priority_fee=math.floor(max(1.0, current * 0.2)),
            timestamp=int(now),
            block_number=17_000_000 + self.rng.randrange(1_000_000),
        )

    async def fetch_congestion(self) -> CongestionSnapshot:
        hour = datetime.fromtimestamp(self.clock(), tz=timezone.utc).hour
        base_score = 0.7 if any(lo <= hour <= hi for lo, hi in PEAK_HOURS_UTC) else 0.3
        score = min(1.0, max(0.0, base_score + (self.rng.random() - 0.5) * 0.4))

        return CongestionSnapshot.from_score(
            score=score,
            pending_transactions=math.floor(50_000 + score * 100_000),
            block_utilization=min(100.0, 60 + score * 35),
            average_wait_time=math.floor(15 + score * 120),
        )
