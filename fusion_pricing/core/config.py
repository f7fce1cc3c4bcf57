# /fusion_pricing/core/config.py
import os
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import SecretStr
from typing import Literal

# Flat settings loader: every value comes from the environment or .env.
class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Gas sample source
    GAS_SOURCE: Literal["simulated", "rpc"] = "simulated"
    ETH_RPC_URL: SecretStr | None = None
    RPC_REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Tracker
    GAS_POLL_INTERVAL_MS: int = 30_000
    GAS_POLL_TIMEOUT_SECONDS: float = 10.0
    GAS_HISTORY_SIZE: int = 100

    # Auctions served over HTTP when the caller gives no duration
    DEFAULT_AUCTION_DURATION_SECONDS: int = 180

    # Operational Settings
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: SecretStr | None = None
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080

    @property
    def rpc_url(self) -> str | None:
        """Plain-text RPC URL, or ``None`` when no node is configured."""
        if self.ETH_RPC_URL is None:
            return None
        return self.ETH_RPC_URL.get_secret_value()

try:
    settings = Settings()
except Exception as e:
    # Late import to avoid circular dependency only for logging the failure
    try:
        from fusion_pricing.core.logger import get_logger
        log = get_logger("FusionPricing.Config")
        log.critical("FAILED_TO_LOAD_SETTINGS", error=str(e), cwd=os.getcwd())
    except Exception:
        print("FAILED_TO_LOAD_SETTINGS", e)
    # In a container, a hard exit is often appropriate if config fails.
    raise SystemExit(1)
