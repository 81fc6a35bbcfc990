"""
Admission control: distributed backend with local fallback.
"""

import asyncio
from typing import Optional, TYPE_CHECKING

from afkmate_shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from afkmate_shared.logging import get_logger
from .local_backend import LocalRateLimitBackend
from .policies import AdmissionResult, RateLimitBackend, RateLimitPolicy
from .redis_backend import RedisRateLimitBackend

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from afkmate_shared.config import BaseConfig
    from afkmate_shared.metrics import MetricsCollector


class RateLimiter:
    """Single ``admit`` entry point over interchangeable counting backends.

    With a distributed backend configured every admission goes there first.
    Any failure of that call (error, timeout, open circuit) is absorbed and the
    same request is counted by the local backend instead, so callers only ever
    see an admit/deny decision. While the breaker is half-open only one
    concurrent admission reaches the distributed backend.
    """

    def __init__(self,
                 local: Optional[LocalRateLimitBackend] = None,
                 distributed: Optional[RateLimitBackend] = None,
                 *,
                 timeout_seconds: float = 0.5,
                 circuit_breaker: Optional[CircuitBreaker] = None,
                 metrics: Optional["MetricsCollector"] = None,
                 sweep_interval_seconds: float = 60.0):
        self.local = local if local is not None else LocalRateLimitBackend()
        self.distributed = distributed
        self.timeout_seconds = timeout_seconds
        self.circuit_breaker = circuit_breaker
        if distributed is not None and circuit_breaker is None:
            self.circuit_breaker = CircuitBreaker(name=f"rate_limit_{distributed.name}")
        self.metrics = metrics
        self.sweep_interval_seconds = sweep_interval_seconds
        self.logger = get_logger("api.rate_limiter")

    @property
    def backend_name(self) -> str:
        return self.distributed.name if self.distributed is not None else self.local.name

    async def _admit_distributed(self, client_id: str, policy: RateLimitPolicy) -> AdmissionResult:
        return await asyncio.wait_for(self.distributed.admit(client_id, policy), timeout=self.timeout_seconds)

    async def admit(self, client_id: str, policy: RateLimitPolicy) -> AdmissionResult:
        """Count one attempt by ``client_id`` against ``policy`` and decide."""
        result: Optional[AdmissionResult] = None

        if self.distributed is not None:
            try:
                result = await self.circuit_breaker.call(self._admit_distributed, client_id, policy)
            except CircuitBreakerOpenException:
                self.logger.debug("Rate limit circuit open, using local counters", policy=policy.name)
                self._record_fallback("circuit_open")
            except asyncio.TimeoutError:
                self.logger.warning(
                    "Rate limit backend timed out, falling back to local counters",
                    backend=self.distributed.name,
                    timeout_seconds=self.timeout_seconds
                )
                self._record_fallback("timeout")
            except Exception as e:
                self.logger.warning(
                    "Rate limit backend unavailable, falling back to local counters",
                    backend=self.distributed.name,
                    error=str(e)
                )
                self._record_fallback("error")

        if result is None:
            result = await self.local.admit(client_id, policy)

        if self.metrics is not None:
            self.metrics.record_rate_limit_decision(policy.name, result.allowed, result.backend)
        return result

    def _record_fallback(self, reason: str) -> None:
        if self.metrics is not None:
            self.metrics.record_rate_limit_fallback(reason)

    async def start(self) -> None:
        """Begin background maintenance. Called from the service lifespan."""
        self.local.start_sweeper(self.sweep_interval_seconds)

    async def close(self) -> None:
        await self.local.close()
        if self.distributed is not None:
            try:
                await self.distributed.close()
            except Exception as e:
                self.logger.warning("Error closing rate limit backend", backend=self.distributed.name, error=str(e))


def build_rate_limiter(config: "BaseConfig", metrics: Optional["MetricsCollector"] = None) -> RateLimiter:
    """Select backends once, at configuration time, from the presence of a Redis URL."""
    logger = get_logger("api.rate_limiter")
    distributed = None
    circuit_breaker = None

    if config.redis_url:
        distributed = RedisRateLimitBackend(config.redis_url, socket_timeout=config.redis_timeout_seconds)
        circuit_breaker = CircuitBreaker(
            failure_threshold=config.redis_failure_threshold,
            recovery_timeout=config.redis_recovery_timeout_seconds,
            name="rate_limit_redis",
        )
        logger.info("Rate limiting with Redis backend and local fallback")
    else:
        logger.info("Rate limiting with local in-process counters only")

    return RateLimiter(
        LocalRateLimitBackend(),
        distributed,
        timeout_seconds=config.redis_timeout_seconds,
        circuit_breaker=circuit_breaker,
        metrics=metrics,
        sweep_interval_seconds=config.rate_limit_sweep_interval_seconds,
    )
