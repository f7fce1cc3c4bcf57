# /fusion_pricing/core/logger.py
import logging
import structlog
from structlog.contextvars import bind_contextvars
import sentry_sdk
from prometheus_client import Counter, Gauge
from fusion_pricing.core.config import settings

# --- Prometheus Metrics ---
GAS_POLLS = Counter("fusion_pricing_gas_polls_total", "Gas sample polls by outcome", ["outcome"])
GAS_STANDARD_PRICE = Gauge("fusion_pricing_gas_standard_price", "Latest accepted standard-tier gas price")
GAS_HISTORY_SIZE = Gauge("fusion_pricing_gas_history_size", "Entries currently retained in the gas history window")
CONGESTION_SCORE = Gauge("fusion_pricing_congestion_score", "Latest accepted network congestion score")

def configure_logging():
    if settings.SENTRY_DSN:
        sentry_sdk.init(dsn=settings.SENTRY_DSN.get_secret_value(), traces_sample_rate=1.0)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(), # Production-ready JSON logs
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

def get_logger(name: str):
    return structlog.get_logger(name)

def bind_poll_counter(counter: int):
    bind_contextvars(poll_counter=counter)

configure_logging()
log = get_logger("FusionPricing.System")
