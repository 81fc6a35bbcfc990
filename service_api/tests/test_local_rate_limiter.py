"""
Unit tests for the in-process rate limit backend.
"""

import asyncio

import pytest

from service_api.app.ratelimit import (
    ANALYZE_POLICY,
    FIX_POLICY,
    RATE_LIMITS,
    VALIDATE_TOKEN_POLICY,
    AdmissionResult,
    LocalRateLimitBackend,
    RateLimitPolicy,
)
from service_api.app.ratelimit.policies import make_key


class FakeClock:

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimitPolicy:
    """Test cases for policies and admission results."""

    @pytest.mark.parametrize("limit,window", [(0, 60), (10, 0), (-1, 60)])
    def test_rejects_non_positive_values(self, limit, window):
        with pytest.raises(ValueError):
            RateLimitPolicy(limit=limit, window_seconds=window)

    def test_named_policies(self):
        assert (ANALYZE_POLICY.limit, ANALYZE_POLICY.window_seconds) == (20, 60)
        assert (VALIDATE_TOKEN_POLICY.limit, VALIDATE_TOKEN_POLICY.window_seconds) == (10, 60)
        assert (FIX_POLICY.limit, FIX_POLICY.window_seconds) == (30, 60)
        assert RATE_LIMITS["validate_token"] is VALIDATE_TOKEN_POLICY

    def test_key_layout(self):
        assert make_key("10.0.0.1", RateLimitPolicy(3, 60)) == "rate_limit:10.0.0.1:3:60"

    def test_allowed_headers(self):
        result = AdmissionResult(allowed=True, limit=10, remaining=7, reset_in_seconds=42)

        assert result.headers() == {
            "X-RateLimit-Limit": "10",
            "X-RateLimit-Remaining": "7",
            "X-RateLimit-Reset": "42",
        }

    def test_denied_headers_include_retry_after(self):
        result = AdmissionResult(allowed=False, limit=10, remaining=0, reset_in_seconds=42)
        assert result.headers()["Retry-After"] == "42"


class TestLocalRateLimitBackend:
    """Test cases for LocalRateLimitBackend."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def backend(self, clock):
        return LocalRateLimitBackend(clock=clock)

    @pytest.fixture
    def policy(self):
        return RateLimitPolicy(limit=3, window_seconds=60, name="test")

    def test_limit_then_deny(self, backend, policy):
        results = [backend.check("client-a", policy) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        assert all(r.limit == 3 for r in results)
        assert all(r.backend == "local" for r in results)

    def test_denials_keep_counting(self, backend, policy, clock):
        for _ in range(10):
            result = backend.check("client-a", policy)

        assert result.allowed is False
        assert result.remaining == 0

        clock.now += 30
        assert backend.check("client-a", policy).allowed is False

    def test_reset_reports_time_left_in_window(self, backend, policy, clock):
        assert backend.check("client-a", policy).reset_in_seconds == 60

        clock.now += 20.5
        assert backend.check("client-a", policy).reset_in_seconds == 40

    def test_window_resets_after_elapsing(self, backend, policy, clock):
        for _ in range(4):
            backend.check("client-a", policy)

        clock.now += 60.001
        result = backend.check("client-a", policy)

        assert result.allowed is True
        assert result.remaining == policy.limit - 1

    def test_window_still_active_at_boundary(self, backend, policy, clock):
        for _ in range(3):
            backend.check("client-a", policy)

        clock.now += 60
        assert backend.check("client-a", policy).allowed is False

    def test_clients_are_independent(self, backend, policy):
        for _ in range(4):
            backend.check("client-a", policy)

        result = backend.check("client-b", policy)
        assert result.allowed is True
        assert result.remaining == 2

    def test_policies_are_independent(self, backend, policy):
        for _ in range(4):
            backend.check("client-a", policy)

        other = RateLimitPolicy(limit=5, window_seconds=60, name="other")
        assert backend.check("client-a", other).remaining == 4

    @pytest.mark.asyncio
    async def test_admit_matches_check(self, backend, policy):
        result = await backend.admit("client-a", policy)

        assert result.allowed is True
        assert result.remaining == 2

    def test_sweep_removes_only_elapsed_counters(self, backend, clock):
        short = RateLimitPolicy(limit=3, window_seconds=10)
        long = RateLimitPolicy(limit=3, window_seconds=120)
        backend.check("client-a", short)
        backend.check("client-b", long)

        clock.now += 11
        removed = backend.sweep()

        assert removed == 1
        assert len(backend) == 1

    def test_sweep_does_not_change_decisions(self, backend, policy, clock):
        for _ in range(3):
            backend.check("client-a", policy)

        backend.sweep()
        assert backend.check("client-a", policy).allowed is False

    @pytest.mark.asyncio
    async def test_sweeper_runs_periodically(self, backend, policy, clock):
        backend.check("client-a", policy)
        clock.now += 61

        backend.start_sweeper(0.01)
        await asyncio.sleep(0.05)
        await backend.stop_sweeper()

        assert len(backend) == 0

    @pytest.mark.asyncio
    async def test_start_sweeper_is_idempotent(self, backend):
        first = backend.start_sweeper(60)
        second = backend.start_sweeper(60)

        assert first is second
        await backend.close()
        assert first.cancelled()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, backend):
        await backend.stop_sweeper()
