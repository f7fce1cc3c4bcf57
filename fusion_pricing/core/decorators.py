# /fusion_pricing/core/decorators.py
# Reusable decorators for operational resilience.
import logging

from tenacity import retry, stop_after_attempt, wait_exponential, before_sleep_log
from fusion_pricing.core.logger import get_logger

log = get_logger(__name__)

# Generic retry decorator for node RPC reads. Works on coroutines as well as plain functions.
retriable_network_call = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    before_sleep=before_sleep_log(log, logging.WARNING),
    reraise=True # Re-raise the last exception after retries are exhausted
)
