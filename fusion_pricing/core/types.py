# /fusion_pricing/core/types.py
# Immutable value objects shared by the tracker, the advisor, the auction curve and the API.

from decimal import Decimal
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

# Fee amounts are unbounded integers in the chain's smallest unit. They travel over JSON as
# decimal strings so no client parses them into a lossy float.
FeeAmount = Annotated[int, Field(ge=0), PlainSerializer(str, return_type=str, when_used="json")]
AuctionPrice = Annotated[Decimal, Field(ge=0), PlainSerializer(str, return_type=str, when_used="json")]


class FeeTier(str, Enum):
    SLOW = "slow"
    STANDARD = "standard"
    FAST = "fast"
    INSTANT = "instant"


class GasTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class CongestionLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"

    @classmethod
    def from_score(cls, score: float) -> "CongestionLevel":
        """Authoritative score -> level mapping."""
        if score < 0.3:
            return cls.LOW
        if score < 0.6:
            return cls.MEDIUM
        if score < 0.8:
            return cls.HIGH
        return cls.EXTREME


class FeeTierSnapshot(BaseModel):
    """
    One sample of the fee market. Superseded by the next sample, never mutated.

    Tier ordering (slow <= standard <= fast <= instant) is the feed's job; the tracker checks it
    with :meth:`is_monotonic` and refuses snapshots that break it.
    """
    model_config = ConfigDict(frozen=True)

    slow: FeeAmount
    standard: FeeAmount
    fast: FeeAmount
    instant: FeeAmount
    base_fee: FeeAmount
    priority_fee: FeeAmount
    timestamp: int
    block_number: int = 0

    def tier(self, tier: FeeTier | str) -> int:
        return getattr(self, FeeTier(tier).value)

    def is_monotonic(self) -> bool:
        return self.slow <= self.standard <= self.fast <= self.instant


class CongestionSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: CongestionLevel
    score: float = Field(ge=0.0, le=1.0)
    pending_transactions: int = Field(ge=0)
    block_utilization: float = Field(ge=0.0, le=100.0)
    average_wait_time: int = Field(ge=0)  # seconds

    @classmethod
    def from_score(
        cls,
        score: float,
        pending_transactions: int,
        block_utilization: float,
        average_wait_time: int,
    ) -> "CongestionSnapshot":
        return cls(
            level=CongestionLevel.from_score(score),
            score=score,
            pending_transactions=pending_transactions,
            block_utilization=block_utilization,
            average_wait_time=average_wait_time,
        )

    def is_consistent(self) -> bool:
        return self.level == CongestionLevel.from_score(self.score)


class HistoryEntry(BaseModel):
    """One retained poll: used for trend and statistics only, never replayed."""
    model_config = ConfigDict(frozen=True)

    timestamp: int
    price: FeeAmount
    base_fee: FeeAmount
    priority_fee: FeeAmount
    block_number: int


class GasRecommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_gas_price: FeeAmount
    end_gas_price: FeeAmount
    average_gas_price: FeeAmount


class GasStatistics(BaseModel):
    model_config = ConfigDict(frozen=True)

    average: FeeAmount
    median: FeeAmount
    min: FeeAmount
    max: FeeAmount
    volatility: float


# Baseline used from construction until the first successful poll.
DEFAULT_FEE_TIERS = dict(slow=15, standard=20, fast=25, instant=30, base_fee=16, priority_fee=4)
DEFAULT_CONGESTION = dict(
    level=CongestionLevel.MEDIUM,
    score=0.5,
    pending_transactions=75_000,
    block_utilization=70.0,
    average_wait_time=45,
)
