"""
Per-source circuit breaker.

States: closed -> open -> half_open -> closed | open

- closed: calls pass. After `failure_threshold` failures the circuit opens.
- open: calls are rejected until `cooldown_seconds` have elapsed since the
  last failure. The next call after the cooldown is admitted as a trial call and
  the circuit moves to half_open.
- half_open: exactly one trial call may be in flight. `success_threshold`
  successful trial calls close the circuit; any failure reopens it and restarts
  the cooldown.

State lives in a process-local registry keyed by source name and guarded by a
threading.Lock, so it is safe to share between asyncio tasks and threads.
State resets when the process restarts.

Usage:
    if is_circuit_open("frenchweb-archive"):
        ...  # skip the source
    try:
        result = await fetch()
        record_success("frenchweb-archive")
    except Exception:
        record_failure("frenchweb-archive")
        raise
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..config.settings import settings
from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 3
    cooldown_seconds: float = 300.0
    success_threshold: int = 2

    @classmethod
    def from_settings(cls) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=settings.circuit_failure_threshold,
            cooldown_seconds=settings.circuit_cooldown_seconds,
            success_threshold=settings.circuit_success_threshold,
        )


@dataclass
class CircuitState:
    """Mutable health record for one named circuit."""
    config: CircuitBreakerConfig
    status: CircuitStatus = CircuitStatus.CLOSED
    failures: int = 0
    last_failure_at: Optional[float] = None
    successes_since_half_open: int = 0
    trial_in_flight: bool = False


class CircuitBreakerRegistry:
    """Named circuit breakers sharing one lock.

    `clock` returns seconds as a float; tests inject a fake one.
    """

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default_config = default_config
        self._clock = clock
        self._states: Dict[str, CircuitState] = {}
        self._lock = threading.Lock()

    def _get_state(self, name: str, config: Optional[CircuitBreakerConfig]) -> CircuitState:
        # Caller holds the lock
        state = self._states.get(name)
        if state is None:
            cfg = config or self._default_config or CircuitBreakerConfig.from_settings()
            state = CircuitState(config=cfg)
            self._states[name] = state
        elif config is not None and state.config != config:
            state.config = config
        return state

    def configure(self, name: str, config: CircuitBreakerConfig) -> None:
        """Register explicit thresholds for a circuit (e.g. the LLM circuit)."""
        with self._lock:
            self._get_state(name, config)

    def is_circuit_open(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> bool:
        """Return True if a call for `name` must be rejected right now.

        Returning False after the cooldown admits the caller as the single
        half-open trial call.
        """
        with self._lock:
            state = self._get_state(name, config)

            if state.status == CircuitStatus.CLOSED:
                return False

            if state.status == CircuitStatus.HALF_OPEN:
                if state.trial_in_flight:
                    return True
                state.trial_in_flight = True
                return False

            # OPEN
            elapsed = self._clock() - (state.last_failure_at or 0.0)
            if elapsed >= state.config.cooldown_seconds:
                state.status = CircuitStatus.HALF_OPEN
                state.successes_since_half_open = 0
                state.trial_in_flight = True
                logger.info(f"CIRCUIT_HALF_OPEN: {name} probing after {elapsed:.0f}s cooldown")
                return False
            return True

    def record_success(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> None:
        with self._lock:
            state = self._get_state(name, config)

            if state.status == CircuitStatus.HALF_OPEN:
                state.trial_in_flight = False
                state.successes_since_half_open += 1
                if state.successes_since_half_open >= state.config.success_threshold:
                    state.status = CircuitStatus.CLOSED
                    state.failures = 0
                    state.successes_since_half_open = 0
                    logger.info(f"CIRCUIT_CLOSED: {name} recovered")
            elif state.status == CircuitStatus.CLOSED:
                state.failures = 0

    def record_failure(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> None:
        with self._lock:
            state = self._get_state(name, config)
            now = self._clock()

            if state.status == CircuitStatus.HALF_OPEN:
                state.status = CircuitStatus.OPEN
                state.last_failure_at = now
                state.trial_in_flight = False
                state.successes_since_half_open = 0
                logger.warning(f"CIRCUIT_OPEN: {name} trial call failed, cooldown restarted")
                return

            state.failures += 1
            state.last_failure_at = now
            if (
                state.status == CircuitStatus.CLOSED
                and state.failures >= state.config.failure_threshold
            ):
                state.status = CircuitStatus.OPEN
                logger.warning(
                    f"CIRCUIT_OPEN: {name} disabled after "
                    f"{state.failures} consecutive failures"
                )

    def release_half_open_slot(self, name: str) -> None:
        """Free the half-open slot of a call that ended without an outcome.

        A cancelled call neither succeeded nor failed; the next caller is
        admitted in its place.
        """
        with self._lock:
            state = self._states.get(name)
            if state is not None and state.trial_in_flight:
                state.trial_in_flight = False
                logger.info(f"CIRCUIT_HALF_OPEN: {name} half-open call cancelled, slot released")

    def reset(self, name: Optional[str] = None) -> None:
        """Forget state for one circuit, or for all of them."""
        with self._lock:
            if name is None:
                self._states.clear()
            else:
                self._states.pop(name, None)

    def get_status(self, name: str) -> CircuitStatus:
        with self._lock:
            state = self._states.get(name)
            return state.status if state else CircuitStatus.CLOSED

    def get_stats(self) -> Dict[str, Any]:
        """Get current circuit breaker stats for monitoring."""
        with self._lock:
            return {
                name: {
                    "status": state.status.value,
                    "failures": state.failures,
                    "successes_since_half_open": state.successes_since_half_open,
                }
                for name, state in self._states.items()
            }

    async def call(
        self,
        name: str,
        fn: Callable[[], Awaitable[T]],
        config: Optional[CircuitBreakerConfig] = None,
    ) -> T:
        """Run `fn` through the circuit. Raises CircuitOpenError when rejected."""
        if self.is_circuit_open(name, config):
            raise CircuitOpenError(name)
        try:
            result = await fn()
        except Exception:
            self.record_failure(name, config)
            raise
        except BaseException:
            # Cancelled
            self.release_half_open_slot(name)
            raise
        self.record_success(name, config)
        return result


# Global registry shared by every connector in the process
circuit_breakers = CircuitBreakerRegistry()


def is_circuit_open(name: str, config: Optional[CircuitBreakerConfig] = None) -> bool:
    return circuit_breakers.is_circuit_open(name, config)


def record_success(name: str, config: Optional[CircuitBreakerConfig] = None) -> None:
    circuit_breakers.record_success(name, config)


def record_failure(name: str, config: Optional[CircuitBreakerConfig] = None) -> None:
    circuit_breakers.record_failure(name, config)
