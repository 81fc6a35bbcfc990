"""
Rate limit policies, admission results and the backend contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class RateLimitPolicy:
    """At most ``limit`` admissions per ``window_seconds`` for one client."""
    limit: int
    window_seconds: int
    name: str = "default"

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError("limit must be a positive integer")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be a positive integer")


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of one admission check."""
    allowed: bool
    limit: int
    remaining: int
    reset_in_seconds: int
    backend: str = "local"

    def headers(self) -> Dict[str, str]:
        """Advisory headers attached to every response of a rate-limited route."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_in_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_in_seconds)
        return headers


# Named per-endpoint policies, fixed for the life of the process.
ANALYZE_POLICY = RateLimitPolicy(limit=20, window_seconds=60, name="analyze")
VALIDATE_TOKEN_POLICY = RateLimitPolicy(limit=10, window_seconds=60, name="validate_token")
FIX_POLICY = RateLimitPolicy(limit=30, window_seconds=60, name="fix")

RATE_LIMITS: Dict[str, RateLimitPolicy] = {
    ANALYZE_POLICY.name: ANALYZE_POLICY,
    VALIDATE_TOKEN_POLICY.name: VALIDATE_TOKEN_POLICY,
    FIX_POLICY.name: FIX_POLICY,
}


def make_key(client_id: str, policy: RateLimitPolicy) -> str:
    """Counter key. The policy shape is part of the key so policies never share counters."""
    return f"rate_limit:{client_id}:{policy.limit}:{policy.window_seconds}"


class RateLimitBackend(ABC):
    """Counting store behind the admission contract."""

    name: str = "backend"

    @abstractmethod
    async def admit(self, client_id: str, policy: RateLimitPolicy) -> AdmissionResult:
        """Count this attempt and decide whether it is admitted."""

    async def close(self) -> None:
        """Release backend resources."""
        return None
