# Process entrypoint: one tracker, owned here, served over HTTP until shutdown.
import asyncio
import uvicorn

from fusion_pricing.core.config import settings
from fusion_pricing.core.config_validator import validate as validate_config
from fusion_pricing.core.logger import configure_logging, get_logger
from fusion_pricing.core.gas_tracker import GasPriceTracker
from fusion_pricing.core.advisor import AuctionPricingAdvisor
from fusion_pricing.core.gas_api import create_app
from fusion_pricing.adapters.base import GasSampleSource


def build_source() -> GasSampleSource:
    if settings.GAS_SOURCE == "rpc":
        from fusion_pricing.adapters.rpc import RpcGasSampleSource
        return RpcGasSampleSource()
    from fusion_pricing.adapters.simulated import SimulatedGasSampleSource
    return SimulatedGasSampleSource()


async def main():
    configure_logging()
    log = get_logger("FusionPricing.System")
    validate_config()
    log.info("PRICING_ENGINE_STARTING", gas_source=settings.GAS_SOURCE)

    source = build_source()
    tracker = GasPriceTracker(source)
    advisor = AuctionPricingAdvisor(tracker)
    app = create_app(tracker, advisor)

    await tracker.start_monitoring(settings.GAS_POLL_INTERVAL_MS)
    server = uvicorn.Server(uvicorn.Config(app, host=settings.API_HOST, port=settings.API_PORT, log_config=None))
    log.info("API_SERVER_STARTING", host=settings.API_HOST, port=settings.API_PORT)
    try:
        await server.serve()
    finally:
        await tracker.aclose()
        await source.close()
        log.warning("SYSTEM_SHUTDOWN_COMPLETE")

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
