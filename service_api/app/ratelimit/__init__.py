"""
Rate limiting package for the API service.

Holds the per-endpoint policies, the in-process and Redis counting
backends, and the ``RateLimiter`` that composes them with a local fallback.
"""

from .client_identifier import UNKNOWN_CLIENT, identify_client
from .limiter import RateLimiter, build_rate_limiter
from .local_backend import LocalRateLimitBackend
from .policies import (
    ANALYZE_POLICY,
    FIX_POLICY,
    RATE_LIMITS,
    VALIDATE_TOKEN_POLICY,
    AdmissionResult,
    RateLimitBackend,
    RateLimitPolicy,
)
from .redis_backend import RedisRateLimitBackend

__all__ = [
    "ANALYZE_POLICY",
    "FIX_POLICY",
    "RATE_LIMITS",
    "VALIDATE_TOKEN_POLICY",
    "AdmissionResult",
    "LocalRateLimitBackend",
    "RateLimitBackend",
    "RateLimitPolicy",
    "RateLimiter",
    "RedisRateLimitBackend",
    "UNKNOWN_CLIENT",
    "build_rate_limiter",
    "identify_client",
]
