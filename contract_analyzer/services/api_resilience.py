"""
Circuit breakers for the external collaborators.

A breaker opens after repeated failures so requests fail fast instead of
piling onto a collaborator that is already down. Breaker state is process-wide
and reported on /health.
"""

from functools import wraps
from typing import Callable, Dict, List

import openai
import structlog
from pybreaker import CircuitBreaker, CircuitBreakerError, CircuitBreakerListener

from ..utils.errors import StorageUnavailable

logger = structlog.get_logger()


class ServiceUnavailableError(Exception):
    """Raised instead of calling a collaborator whose breaker is open."""

    def __init__(self, breaker_name: str):
        super().__init__(f"{breaker_name} service is temporarily unavailable")
        self.breaker_name = breaker_name


class LoggingCircuitBreakerListener(CircuitBreakerListener):
    """Logs breaker state changes and counted failures."""

    def state_change(self, cb, old_state, new_state):
        old_name = getattr(old_state, "name", str(old_state))
        new_name = getattr(new_state, "name", str(new_state))
        if old_name == new_name:
            return
        logger.warning(
            "circuit_breaker_state_change",
            breaker=cb.name,
            old_state=old_name,
            new_state=new_name
        )

    def failure(self, cb, exc):
        logger.debug(
            "circuit_breaker_failure",
            breaker=cb.name,
            error=str(exc),
            fail_counter=cb.fail_counter
        )


def is_completion_client_error(error: BaseException) -> bool:
    """Rejected requests (4xx other than rate limiting) say nothing about service health."""
    return (
        isinstance(error, openai.APIStatusError)
        and 400 <= error.status_code < 500
        and not isinstance(error, openai.RateLimitError)
    )


def is_missing_object(error: BaseException) -> bool:
    """The store answered, the object just is not there."""
    if not isinstance(error, StorageUnavailable) or not isinstance(error.details, dict):
        return False
    status_code = error.details.get("status_code")
    return isinstance(status_code, int) and 400 <= status_code < 500


# Completion service: opens after 5 consecutive failures, lets a trial call through after 60 seconds
completion_breaker = CircuitBreaker(
    fail_max=5,
    reset_timeout=60,
    name="completion",
    exclude=[is_completion_client_error],
    throw_new_error_on_trip=False,
    listeners=[LoggingCircuitBreakerListener()]
)

# Blob store: same threshold, shorter cool-down
storage_breaker = CircuitBreaker(
    fail_max=5,
    reset_timeout=30,
    name="storage",
    exclude=[is_missing_object],
    throw_new_error_on_trip=False,
    listeners=[LoggingCircuitBreakerListener()]
)

BREAKERS: List[CircuitBreaker] = [completion_breaker, storage_breaker]


def with_circuit_breaker(breaker: CircuitBreaker):
    """
    Guard an async collaborator call with a circuit breaker.

    The awaited call runs inside the breaker's calling() context, so an
    exception raised by the coroutine counts as a failure. The failure that
    trips the breaker is re-raised as itself; later calls fail fast.

    Usage:
        @with_circuit_breaker(storage_breaker)
        async def _download(self, bucket, path):
            ...

    Raises:
        ServiceUnavailableError: If the breaker is open
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                with breaker.calling():
                    return await func(*args, **kwargs)
            except CircuitBreakerError:
                logger.error(
                    "circuit_breaker_open",
                    breaker=breaker.name,
                    message="Failing fast, circuit breaker open"
                )
                raise ServiceUnavailableError(breaker.name)
        return wrapper
    return decorator


def get_breaker_status(breaker: CircuitBreaker) -> dict:
    """
    Get the current status of a circuit breaker.

    Returns:
        Dict with state, fail counter, and thresholds
    """
    return {
        "name": breaker.name,
        "state": breaker.current_state,
        "fail_counter": breaker.fail_counter,
        "fail_max": breaker.fail_max,
        "reset_timeout": breaker.reset_timeout,
    }


def all_breaker_statuses() -> Dict[str, dict]:
    """Status of every registered breaker keyed by name."""
    return {breaker.name: get_breaker_status(breaker) for breaker in BREAKERS}


def any_breaker_open() -> bool:
    return any(breaker.current_state == "open" for breaker in BREAKERS)
