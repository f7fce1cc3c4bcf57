# /fusion_pricing/core/advisor.py
# Turns the tracker's trend into auction pricing. The trend -> multiplier policy lives here so
# it can change without touching how samples are collected.

from fusion_pricing.core.auction import AuctionSpec
from fusion_pricing.core.gas_tracker import GasPriceTracker, TrendPolicy, DEFAULT_TREND_POLICY, recommend_for_trend
from fusion_pricing.core.logger import get_logger
from fusion_pricing.core.types import FeeTier, GasRecommendation, GasTrend

log = get_logger(__name__)


class AuctionPricingAdvisor:
    """Stateless façade over a :class:`GasPriceTracker` and a trend policy."""
    def __init__(self, tracker: GasPriceTracker, policy: TrendPolicy = DEFAULT_TREND_POLICY):
        missing = set(GasTrend) - set(policy)
        if missing:
            raise ValueError(f"Trend policy has no multipliers for: {sorted(t.value for t in missing)}")
        self.tracker = tracker
        self.policy = policy

    def trend(self) -> GasTrend:
        return self.tracker.predict_gas_price_trend()

    def recommend(self, duration_seconds: int) -> GasRecommendation:
        """
        Start/end gas prices for a new auction.

        ``duration_seconds`` is part of the interface for callers that know their auction length;
        the current policy does not depend on it.
        """
        trend = self.trend()
        standard = self.tracker.get_current_gas_price().standard
        recommendation = recommend_for_trend(standard, trend, self.policy)
        log.debug(
            "AUCTION_GAS_RECOMMENDED",
            trend=trend.value,
            duration_seconds=duration_seconds,
            start=str(recommendation.start_gas_price),
            end=str(recommendation.end_gas_price),
        )
        return recommendation

    def optimal_gas_price(self, tier: FeeTier | str = FeeTier.STANDARD) -> int:
        return self.tracker.get_optimal_gas_price(tier)

    def build_auction(self, start_time: float, duration_seconds: int) -> AuctionSpec:
        """An auction whose price bounds follow the current recommendation."""
        return AuctionSpec.from_recommendation(self.recommend(duration_seconds), start_time, duration_seconds)
