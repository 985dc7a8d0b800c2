"""
Timeout / retry wrappers and per-tier budgets for external calls.

Every outbound call made by a connector goes through `call_with_tier`, which
layers (outermost first): circuit breaker gate -> retry with exponential
backoff -> per-attempt timeout.

Tiers:
    internal: 2s timeout, no retries, no circuit breaker
    fast:     5s timeout, 1 retry, 500ms base delay
    slow:     10s timeout, 2 retries, 1s base delay

Backoff before retry N (0-based) is base_delay * 2**N.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx

from ..config.sources import Tier
from .circuit_breaker import CircuitBreakerConfig, CircuitBreakerRegistry, circuit_breakers
from .errors import CircuitOpenError, TransientSourceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Only transient failures are retried; 4xx and parse errors fail fast
RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    TransientSourceError,
    httpx.TimeoutException,
    httpx.TransportError,
    asyncio.TimeoutError,
)


@dataclass(frozen=True)
class TierConfig:
    """Timeout / retry budget for one tier."""
    timeout: float
    max_retries: int
    base_delay: float = 0.0
    use_circuit_breaker: bool = True


CONNECTOR_TIERS: dict[Tier, TierConfig] = {
    Tier.INTERNAL: TierConfig(timeout=2.0, max_retries=0, base_delay=0.0, use_circuit_breaker=False),
    Tier.FAST: TierConfig(timeout=5.0, max_retries=1, base_delay=0.5),
    Tier.SLOW: TierConfig(timeout=10.0, max_retries=2, base_delay=1.0),
}


def get_tier_config(tier: Tier, timeout: Optional[float] = None) -> TierConfig:
    """Get the budget for a tier, optionally with a wider timeout."""
    config = CONNECTOR_TIERS[tier]
    if timeout is not None:
        config = replace(config, timeout=timeout)
    return config


async def with_timeout(coro: Awaitable[T], timeout: float, operation: str = "request") -> T:
    """Await `coro` with a deadline.

    Only the wrapped call is cancelled on timeout. Raises TransientSourceError
    so the retry layer treats it like any other transient failure.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"TIMEOUT: {operation} timed out after {timeout}s")
        raise TransientSourceError(f"{operation} timed out after {timeout}s")


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int,
    base_delay: float,
    operation: str = "request",
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_EXCEPTIONS,
) -> T:
    """Call `fn` up to max_retries + 1 times with exponential backoff.

    `fn` is a zero-argument factory so every attempt gets a fresh coroutine.
    Exceptions outside `retry_on` propagate immediately.
    """
    attempts = max_retries + 1
    for attempt in range(attempts):
        try:
            return await fn()
        except retry_on as e:
            if attempt >= max_retries:
                logger.error(f"{operation} failed after {attempts} attempts: {type(e).__name__}: {e}")
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"{operation} failed ({type(e).__name__}: {e}), "
                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{attempts})"
            )
            await asyncio.sleep(delay)

    # Loop always returns or raises
    raise RuntimeError(f"{operation}: retry loop exited without result")


async def call_with_tier(
    name: str,
    fn: Callable[[], Awaitable[T]],
    tier: TierConfig,
    registry: Optional[CircuitBreakerRegistry] = None,
    breaker_config: Optional[CircuitBreakerConfig] = None,
) -> T:
    """Run `fn` under a tier budget, gated by the circuit breaker for `name`.

    Raises CircuitOpenError without calling `fn` when the circuit is open.
    The breaker sees one outcome per call (after retries), not per attempt.
    """
    breakers = registry or circuit_breakers

    if tier.use_circuit_breaker and breakers.is_circuit_open(name, breaker_config):
        raise CircuitOpenError(name)

    try:
        result = await with_retry(
            lambda: with_timeout(fn(), tier.timeout, operation=name),
            max_retries=tier.max_retries,
            base_delay=tier.base_delay,
            operation=name,
        )
    except Exception:
        if tier.use_circuit_breaker:
            breakers.record_failure(name, breaker_config)
        raise
    except asyncio.CancelledError:
        if tier.use_circuit_breaker:
            breakers.release_half_open_slot(name)
        raise

    if tier.use_circuit_breaker:
        breakers.record_success(name, breaker_config)
    return result
