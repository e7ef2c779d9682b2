"""Tests for CircuitBreaker.

Tests cover:
- Opening after consecutive failures
- Rejecting calls without invoking the operation while open
- Single probe in half-open state
- Closing and reopening from half-open
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from agentflow.errors import CircuitOpenError, OperationCancelledError
from agentflow.resilience.circuit import CircuitBreaker, CircuitState
from helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    """Create a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    """Create a breaker with threshold 3 and a 30s cool-down."""
    return CircuitBreaker(
        name="search", failure_threshold=3, open_duration_seconds=30, clock=clock
    )


async def _fail() -> None:
    raise RuntimeError("boom")


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold_and_rejects_without_invoking(self, breaker):
        """Test three failures open the circuit and the fourth call is rejected."""
        for _ in range(3):
            with pytest.raises(RuntimeError):
                await breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN

        operation = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(operation)

        operation.assert_not_called()
        assert exc_info.value.name == "search"
        assert exc_info.value.retry_after_seconds == pytest.approx(30)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        """Test a success in closed state resets the failure count."""
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(_fail)
        assert breaker.failure_count == 2

        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_after_cool_down(self, breaker, clock):
        """Test the circuit moves to half-open once the cool-down elapses."""
        for _ in range(3):
            with pytest.raises(RuntimeError):
                await breaker.call(_fail)

        clock.advance(29)
        assert breaker.state == CircuitState.OPEN

        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_allows_exactly_one_probe(self, breaker, clock):
        """Test only one probe runs while half-open."""
        for _ in range(3):
            with pytest.raises(RuntimeError):
                await breaker.call(_fail)
        clock.advance(30)

        release = asyncio.Event()

        async def slow_probe() -> str:
            await release.wait()
            return "probed"

        probe = asyncio.create_task(breaker.call(slow_probe))
        await asyncio.sleep(0)

        second = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError):
            await breaker.call(second)
        second.assert_not_called()

        release.set()
        assert await probe == "probed"
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_failed_probe_reopens_and_restarts_cool_down(self, breaker, clock):
        """Test a half-open failure reopens the circuit with a fresh cool-down."""
        for _ in range(3):
            with pytest.raises(RuntimeError):
                await breaker.call(_fail)
        clock.advance(30)

        with pytest.raises(RuntimeError):
            await breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN
        clock.advance(29)
        assert breaker.state == CircuitState.OPEN
        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN

    @pytest.mark.asyncio
    async def test_cancellation_does_not_count_as_failure(self, breaker):
        """Test cancelled operations leave the failure count unchanged."""

        async def cancelled() -> None:
            raise OperationCancelledError()

        for _ in range(5):
            with pytest.raises(OperationCancelledError):
                await breaker.call(cancelled)

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_reset_closes_circuit(self, breaker):
        """Test reset forces the circuit closed."""
        for _ in range(3):
            with pytest.raises(RuntimeError):
                await breaker.call(_fail)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert await breaker.call(AsyncMock(return_value=1)) == 1

    def test_rejects_invalid_threshold(self):
        """Test a threshold below one is rejected."""
        with pytest.raises(ValueError):
            CircuitBreaker(failure_threshold=0)
