# /fusion_pricing/core/auction.py
# Linear Dutch auction curve. Everything here is a pure function of (spec, now, override);
# nothing is cached and there is no lifecycle.

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from fusion_pricing.core.types import AuctionPrice, GasRecommendation

HUNDRED = Decimal(100)


class InvalidAuctionSpecError(ValueError):
    """Raised when an auction window does not end after it starts."""


class AuctionPhase(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"


class AuctionSpec(BaseModel):
    """
    Price bounds and window of one auction. Times are epoch seconds.

    ``start_price >= end_price`` is the usual decaying auction, but a rising one is allowed.
    """
    model_config = ConfigDict(frozen=True)

    start_price: AuctionPrice
    end_price: AuctionPrice
    start_time: float
    end_time: float

    def __init__(self, **data):
        super().__init__(**data)
        # Checked outside field validation so callers get InvalidAuctionSpecError, not ValidationError.
        if self.end_time <= self.start_time:
            raise InvalidAuctionSpecError(
                f"end_time ({self.end_time}) must be after start_time ({self.start_time})"
            )

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @classmethod
    def from_recommendation(cls, recommendation: GasRecommendation, start_time: float, duration_seconds: float) -> "AuctionSpec":
        return cls(
            start_price=Decimal(recommendation.start_gas_price),
            end_price=Decimal(recommendation.end_gas_price),
            start_time=start_time,
            end_time=start_time + duration_seconds,
        )


class AuctionQuote(BaseModel):
    """One evaluation of the curve at a point in time."""
    model_config = ConfigDict(frozen=True)

    phase: AuctionPhase
    progress: Decimal
    price: AuctionPrice
    remaining: str


def phase(spec: AuctionSpec, now: float) -> AuctionPhase:
    if now < spec.start_time:
        return AuctionPhase.PENDING
    if now < spec.end_time:
        return AuctionPhase.ACTIVE
    return AuctionPhase.EXPIRED


def progress(spec: AuctionSpec, now: float) -> Decimal:
    """Percent of the window elapsed, clamped to [0, 100]. A zero-length window counts as done."""
    duration = Decimal(spec.end_time) - Decimal(spec.start_time)
    if duration <= 0:
        return HUNDRED
    elapsed = Decimal(now) - Decimal(spec.start_time)
    return min(max(elapsed / duration * HUNDRED, Decimal(0)), HUNDRED)


def price_at(spec: AuctionSpec, now: float, override: Optional[Decimal] = None) -> Decimal:
    """
    Price of the auction at ``now``.

    ``override`` is a live price observed elsewhere (a resolver quote, say) and is returned
    untouched; the spec itself never changes.
    """
    if override is not None:
        return override
    start_price = Decimal(spec.start_price)
    end_price = Decimal(spec.end_price)
    done = progress(spec, now)
    if done == HUNDRED:
        return end_price
    return start_price - (start_price - end_price) * done / HUNDRED


def remaining_seconds(spec: AuctionSpec, now: float) -> int:
    return max(int(spec.end_time - now), 0)


def format_duration(seconds: int) -> str:
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def remaining_time(spec: AuctionSpec, now: float) -> str:
    """Time left as HH:MM:SS; ``00:00:00`` means the auction has expired."""
    return format_duration(remaining_seconds(spec, now))


def quote(spec: AuctionSpec, now: float, override: Optional[Decimal] = None) -> AuctionQuote:
    return AuctionQuote(
        phase=phase(spec, now),
        progress=progress(spec, now),
        price=price_at(spec, now, override),
        remaining=remaining_time(spec, now),
    )


class AuctionCurveEvaluator:
    """Object form of the curve functions, for callers that inject an evaluator."""
    phase = staticmethod(phase)
    progress = staticmethod(progress)
    price_at = staticmethod(price_at)
    remaining_time = staticmethod(remaining_time)
    quote = staticmethod(quote)
