"""Retry policies for storefront collaborators."""

import logging

from tenacity import (
    RetryCallState,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# Every call happens inside a shopper's request, so delays stay sub-second.
RETRY_CONFIG = {
    "storefront_cart": {
        "max_attempts": 3,
        "initial_delay": 0.2,
        "max_delay": 1.0,
    },
    "storefront_catalog": {
        "max_attempts": 2,
        "initial_delay": 0.2,
        "max_delay": 0.5,
    },
    "experiments": {
        "max_attempts": 2,
        "initial_delay": 0.1,
        "max_delay": 0.3,
    },
    "default": {
        "max_attempts": 3,
        "initial_delay": 0.5,
        "max_delay": 2.0,
    },
}


class wait_retry_after:
    """Exponential backoff, or the server's ``retry_after`` hint when larger, capped at ``max_delay``."""

    def __init__(self, initial_delay: float, max_delay: float):
        self.max_delay = max_delay
        self.backoff = wait_exponential(multiplier=initial_delay, min=initial_delay, max=max_delay)

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.backoff(retry_state)
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        hint = (getattr(exc, "details", None) or {}).get("retry_after")
        if isinstance(hint, (int, float)) and hint > delay:
            delay = hint
        return min(delay, self.max_delay)


def create_retry_decorator(
    service: str = "default",
    retryable_exceptions: tuple = (Exception,),
):
    """Retry decorator for one collaborator, configured from ``RETRY_CONFIG``."""
    config = RETRY_CONFIG.get(service, RETRY_CONFIG["default"])
    return retry(
        stop=stop_after_attempt(config["max_attempts"]),
        wait=wait_retry_after(config["initial_delay"], config["max_delay"]),
        retry=retry_if_exception_type(retryable_exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
