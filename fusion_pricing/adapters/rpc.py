# /fusion_pricing/adapters/rpc.py
# Gas samples read straight from an execution node: base fee and utilization from the latest
# block, the tip from eth_maxPriorityFeePerGas.

import asyncio
import time
from decimal import Decimal
from typing import Callable

from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from fusion_pricing.adapters.base import GasSampleSource, SampleSourceError
from fusion_pricing.core.config import settings
from fusion_pricing.core.decorators import retriable_network_call
from fusion_pricing.core.logger import get_logger
from fusion_pricing.core.types import CongestionSnapshot, FeeTierSnapshot

log = get_logger(__name__)

FALLBACK_PRIORITY_FEE = int(Decimal("1.5") * 10**9)  # 1.5 gwei

# Tip multipliers per tier, applied on top of the block's base fee.
TIER_TIP_MULTIPLIERS = {
    "slow": Decimal("0.5"),
    "standard": Decimal("1"),
    "fast": Decimal("1.5"),
    "instant": Decimal("2"),
}

SECONDS_PER_BLOCK = 12


class RpcGasSampleSource(GasSampleSource):
    """
    Derives fee tiers and congestion from one node.

    ``w3`` can be injected (tests, shared providers); otherwise an AsyncWeb3 HTTP provider is
    built from ``settings.ETH_RPC_URL``.
    """
    def __init__(self, w3: AsyncWeb3 | None = None, rpc_url: str | None = None, clock: Callable[[], float] = time.time):
        if w3 is None:
            url = rpc_url or settings.rpc_url
            if not url:
                raise SampleSourceError("RpcGasSampleSource needs ETH_RPC_URL or an explicit rpc_url")
            w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(url, request_kwargs={"timeout": settings.RPC_REQUEST_TIMEOUT_SECONDS}))
        self.w3 = w3
        self.clock = clock
        self._block_request: asyncio.Task | None = None
        log.info("RPC_GAS_SOURCE_INITIALIZED")

    @retriable_network_call
    async def get_latest_block(self):
        return await self.w3.eth.get_block("latest")

    async def shared_latest_block(self):
        """
        The latest block, fetched once for all callers that ask while a read is in flight.

        The tracker fetches tiers and congestion concurrently, so both halves of one poll
        describe the same block.
        """
        request = self._block_request
        if request is None or request.done():
            request = asyncio.create_task(self.get_latest_block())
            self._block_request = request
        try:
            return await request
        finally:
            if self._block_request is request and request.done():
                self._block_request = None

    @retriable_network_call
    async def get_priority_fee(self) -> int:
        try:
            # eth_maxPriorityFeePerGas is the modern standard
            return int(await self.w3.eth.max_priority_fee)
        except (ValueError, Web3Exception):
            # Nodes that don't implement the method answer with a JSON-RPC error.
            log.warning("MAX_PRIORITY_FEE_RPC_UNSUPPORTED_FALLING_BACK")
            return FALLBACK_PRIORITY_FEE

    async def fetch_fee_tiers(self) -> FeeTierSnapshot:
        block = await self.shared_latest_block()
        base_fee = block.get("baseFeePerGas")
        if base_fee is None:
            raise SampleSourceError("latest block carries no baseFeePerGas (pre-London chain?)")
        priority_fee = await self.get_priority_fee()

        tiers = {
            name: int(base_fee) + int(Decimal(priority_fee) * multiplier)
            for name, multiplier in TIER_TIP_MULTIPLIERS.items()
        }
        return FeeTierSnapshot(
            **tiers,
            base_fee=int(base_fee),
            priority_fee=priority_fee,
            timestamp=int(self.clock()),
            block_number=int(block["number"]),
        )

    async def fetch_congestion(self) -> CongestionSnapshot:
        block = await self.shared_latest_block()
        gas_limit = int(block["gasLimit"])
        if gas_limit <= 0:
            raise SampleSourceError(f"block {block.get('number')} reports gasLimit={gas_limit}")
        score = min(1.0, max(0.0, int(block["gasUsed"]) / gas_limit))
        # A full block pushes the marginal transaction back by roughly one extra slot per 10%.
        average_wait_time = SECONDS_PER_BLOCK + int(score * 10) * SECONDS_PER_BLOCK

        return CongestionSnapshot.from_score(
            score=score,
            pending_transactions=len(block.get("transactions", [])),
            block_utilization=score * 100,
            average_wait_time=average_wait_time,
        )

    async def close(self) -> None:
        provider = getattr(self.w3, "provider", None)
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
