"""
Unit tests for the shared circuit breaker.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from afkmate_shared.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenException,
    CircuitBreakerState,
)


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(failure_threshold=2, recovery_timeout=30, name="test", clock=clock)

    def test_starts_closed(self, breaker):
        assert breaker.state is CircuitBreakerState.CLOSED
        assert breaker.allow_request() is True

    def test_rejects_zero_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker(failure_threshold=0)

    def test_opens_after_consecutive_failures(self, breaker):
        breaker.record_failure()
        assert breaker.state is CircuitBreakerState.CLOSED

        breaker.record_failure()
        assert breaker.is_open()
        assert breaker.allow_request() is False

    def test_success_resets_failure_count(self, breaker):
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert breaker.state is CircuitBreakerState.CLOSED

    def test_half_open_after_recovery_timeout(self, breaker, clock):
        breaker.record_failure()
        breaker.record_failure()

        clock.now = 29.9
        assert breaker.allow_request() is False

        clock.now = 30
        assert breaker.allow_request() is True
        assert breaker.state is CircuitBreakerState.HALF_OPEN

    def test_half_open_trial_success_closes(self, breaker, clock):
        breaker.record_failure()
        breaker.record_failure()
        clock.now = 31
        breaker.allow_request()

        breaker.record_success()
        assert breaker.state is CircuitBreakerState.CLOSED

    def test_half_open_trial_failure_reopens(self, breaker, clock):
        breaker.record_failure()
        breaker.record_failure()
        clock.now = 31
        breaker.allow_request()

        breaker.record_failure()
        assert breaker.state is CircuitBreakerState.OPEN
        assert breaker.allow_request() is False

    def test_half_open_admits_single_caller(self, breaker, clock):
        breaker.record_failure()
        breaker.record_failure()
        clock.now = 31

        assert breaker.allow_request() is True
        assert breaker.allow_request() is False
        assert breaker.allow_request() is False
        assert breaker.state is CircuitBreakerState.HALF_OPEN

    def test_next_trial_allowed_after_failed_trial_and_timeout(self, breaker, clock):
        breaker.record_failure()
        breaker.record_failure()
        clock.now = 31
        assert breaker.allow_request() is True
        breaker.record_failure()

        clock.now = 62
        assert breaker.allow_request() is True
        assert breaker.allow_request() is False

    @pytest.mark.asyncio
    async def test_cancelled_trial_releases_half_open_slot(self, breaker, clock):
        breaker.record_failure()
        breaker.record_failure()
        clock.now = 31
        func = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await breaker.call(func)

        assert breaker.state is CircuitBreakerState.HALF_OPEN
        assert breaker.allow_request() is True

    @pytest.mark.asyncio
    async def test_call_success(self, breaker):
        func = AsyncMock(return_value="ok")

        assert await breaker.call(func, 1, key="value") == "ok"
        func.assert_awaited_once_with(1, key="value")

    @pytest.mark.asyncio
    async def test_call_failure_is_recorded_and_reraised(self, breaker):
        func = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await breaker.call(func)
        with pytest.raises(RuntimeError):
            await breaker.call(func)

        assert breaker.is_open()

    @pytest.mark.asyncio
    async def test_call_blocked_when_open(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        func = AsyncMock()

        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(func)
        func.assert_not_awaited()

    def test_get_state(self, breaker):
        breaker.record_failure()

        state = breaker.get_state()

        assert state["name"] == "test"
        assert state["state"] == "closed"
        assert state["failure_count"] == 1
        assert state["failure_threshold"] == 2
