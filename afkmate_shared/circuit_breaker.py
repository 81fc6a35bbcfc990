"""
Circuit breaker guarding calls to the distributed rate-limit store.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from afkmate_shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, calls skipped
    HALF_OPEN = "half_open"  # A single trial call in flight


class CircuitBreakerOpenException(Exception):
    """Raised when a call is attempted while the breaker is open."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Circuit breaker '{name}' is OPEN - blocking call")


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    ``clock`` is injectable so recovery can be exercised without sleeping.
    """

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 30.0,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self._clock = clock
        self.logger = get_logger(f"circuit_breaker.{name}")

        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        return self._state

    def allow_request(self) -> bool:
        """Return True if a call may be attempted now.

        After the recovery timeout exactly one caller is let through as the
        half-open trial call; everyone else is refused until it reports back.
        """
        if self._state == CircuitBreakerState.CLOSED:
            return True
        if self._state == CircuitBreakerState.OPEN:
            if self._clock() - self._opened_at < self.recovery_timeout:
                return False
            self._state = CircuitBreakerState.HALF_OPEN
            self.logger.info("Circuit breaker transitioning to half-open")
        if self._trial_in_flight:
            return False
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        self._trial_in_flight = False
        if self._state != CircuitBreakerState.CLOSED:
            self.logger.info("Circuit breaker reset to CLOSED after successful call")
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0

    def record_failure(self) -> None:
        self._trial_in_flight = False
        self._failure_count += 1
        if self._state == CircuitBreakerState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            if self._state != CircuitBreakerState.OPEN:
                self.logger.warning(
                    "Circuit breaker opened due to failures",
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold
                )
            self._state = CircuitBreakerState.OPEN
            self._opened_at = self._clock()

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute ``func`` with circuit breaker protection."""
        if not self.allow_request():
            raise CircuitBreakerOpenException(self.name)

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self._trial_in_flight = False
            raise
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def is_open(self) -> bool:
        return self._state == CircuitBreakerState.OPEN

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
            "recovery_timeout": self.recovery_timeout
        }
