# /fusion_pricing/core/config_validator.py
# A script to be run at startup to validate the gas/auction configuration.
from fusion_pricing.core.config import Settings, settings as default_settings
from fusion_pricing.core.logger import log

def validate(settings: Settings = default_settings):
    log.info("--- CONFIG VALIDATION START ---")
    errors = []

    if settings.GAS_SOURCE == "rpc" and not settings.rpc_url:
        errors.append("GAS_SOURCE=rpc requires ETH_RPC_URL")
    for var in ("GAS_POLL_INTERVAL_MS", "GAS_POLL_TIMEOUT_SECONDS", "GAS_HISTORY_SIZE", "DEFAULT_AUCTION_DURATION_SECONDS"):
        if getattr(settings, var) <= 0:
            errors.append(f"{var} must be positive")
    if settings.GAS_POLL_TIMEOUT_SECONDS * 1000 > settings.GAS_POLL_INTERVAL_MS:
        # Not fatal: overdue ticks are skipped, but the operator should know.
        log.warning("GAS_POLL_TIMEOUT_EXCEEDS_INTERVAL",
                    timeout_s=settings.GAS_POLL_TIMEOUT_SECONDS, interval_ms=settings.GAS_POLL_INTERVAL_MS)

    if errors:
        for error in errors:
            log.critical(error)
        raise ValueError("System configuration is incomplete. Halting.")

    log.info("--- CONFIG VALIDATION PASSED ---")

if __name__ == "__main__":
    validate()
