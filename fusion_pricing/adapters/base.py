# /fusion_pricing/adapters/base.py
# The interface every gas sample source implements. The tracker only ever talks to this.

from fusion_pricing.core.types import CongestionSnapshot, FeeTierSnapshot


class SampleSourceError(Exception):
    """A source could not produce a snapshot for this poll."""


class GasSampleSource:
    """
    Supplies one fee-tier snapshot and one congestion snapshot per poll.

    Both calls may raise. Implementations should finish in bounded time; the tracker still
    wraps every poll in its own timeout so a hung source only costs that tick.
    """
    async def fetch_fee_tiers(self) -> FeeTierSnapshot:
        raise NotImplementedError

    async def fetch_congestion(self) -> CongestionSnapshot:
        raise NotImplementedError

    async def close(self) -> None:
        """Release any connections held by the source."""
        return None
