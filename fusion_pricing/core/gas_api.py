# /fusion_pricing/core/gas_api.py
import time
from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, ValidationError

from fusion_pricing.core import auction
from fusion_pricing.core.advisor import AuctionPricingAdvisor
from fusion_pricing.core.config import settings
from fusion_pricing.core.gas_tracker import GasPriceTracker
from fusion_pricing.core.logger import get_logger
from fusion_pricing.core.types import FeeTier

log = get_logger(__name__)


class AuctionQuoteRequest(BaseModel):
    start_price: Decimal
    end_price: Decimal
    start_time: float
    end_time: float
    now: Optional[float] = None
    override: Optional[Decimal] = None


def success(data: Any) -> dict:
    """Response envelope. Amounts inside ``data`` are already decimal strings."""
    return {"success": True, "data": data, "timestamp": int(time.time())}


def create_app(tracker: GasPriceTracker, advisor: AuctionPricingAdvisor | None = None) -> FastAPI:
    """Read-only HTTP surface over one tracker. The caller owns the tracker's lifecycle."""
    advisor = advisor or AuctionPricingAdvisor(tracker)
    app = FastAPI(title="fusion-pricing")

    @app.get("/healthz")
    async def healthz():
        current = tracker.get_current_gas_price()
        return {
            "status": "ok",
            "monitoring": tracker.is_monitoring,
            "last_sample_timestamp": current.timestamp,
            "sample_age_seconds": max(0, int(time.time()) - current.timestamp),
        }

    @app.get("/gas/current")
    async def current_gas_price():
        return success(tracker.get_current_gas_price().model_dump(mode="json"))

    @app.get("/gas/history")
    async def gas_history(limit: Optional[int] = Query(None, ge=0)):
        return success([entry.model_dump(mode="json") for entry in tracker.get_gas_price_history(limit)])

    @app.get("/gas/congestion")
    async def congestion():
        return success(tracker.get_network_congestion().model_dump(mode="json"))

    @app.get("/gas/recommendation")
    async def recommendation(duration: int = Query(settings.DEFAULT_AUCTION_DURATION_SECONDS, gt=0)):
        return success(advisor.recommend(duration).model_dump(mode="json"))

    @app.get("/gas/optimal")
    async def optimal(tier: str = FeeTier.STANDARD.value):
        try:
            price = advisor.optimal_gas_price(tier)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return success({"tier": tier, "gas_price": str(price)})

    @app.get("/gas/trend")
    async def trend():
        return success({"trend": advisor.trend().value})

    @app.get("/gas/statistics")
    async def statistics():
        return success(tracker.get_gas_price_statistics().model_dump(mode="json"))

    @app.post("/auction/quote")
    async def auction_quote(request: AuctionQuoteRequest):
        try:
            spec = auction.AuctionSpec(
                start_price=request.start_price,
                end_price=request.end_price,
                start_time=request.start_time,
                end_time=request.end_time,
            )
        except (auction.InvalidAuctionSpecError, ValidationError) as e:
            log.warning("AUCTION_SPEC_REJECTED", error=str(e))
            raise HTTPException(status_code=422, detail=str(e))
        now = request.now if request.now is not None else time.time()
        return success(auction.quote(spec, now, request.override).model_dump(mode="json"))

    return app
