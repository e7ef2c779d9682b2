"""Circuit breaker for remote dependencies.

States:
- CLOSED: calls pass; failures are counted, a success resets the count
- OPEN: calls are rejected with CircuitOpenError until the cool-down elapses
- HALF_OPEN: exactly one probe call is let through; success closes the
  circuit, failure reopens it and restarts the cool-down
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from agentflow.errors import CircuitOpenError, OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Halts calls to a failing dependency for a cool-down period."""

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        open_duration_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the breaker.

        Args:
            name: Dependency name, used in logs and errors.
            failure_threshold: Consecutive failures that open the circuit.
            open_duration_seconds: Cool-down before a probe is allowed.
            clock: Monotonic time source.
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.open_duration_seconds = open_duration_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation through the breaker.

        Raises:
            CircuitOpenError: If the circuit rejects the call.
        """
        is_probe = self._acquire()
        try:
            result = await operation()
        except (asyncio.CancelledError, OperationCancelledError):
            self._release(is_probe)
            raise
        except Exception:
            self._record_failure(is_probe)
            raise
        self._record_success(is_probe)
        return result

    def reset(self) -> None:
        """Force the circuit closed and clear the failure count."""
        with self._lock:
            self._transition(CircuitState.CLOSED)
            self._failure_count = 0
            self._opened_at = None
            self._probe_in_flight = False

    def _acquire(self) -> bool:
        with self._lock:
            self._maybe_half_open()

            if self._state == CircuitState.CLOSED:
                return False

            if self._state == CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return True

            raise CircuitOpenError(self.name, self._retry_after())

    def _record_success(self, is_probe: bool) -> None:
        with self._lock:
            if is_probe:
                self._probe_in_flight = False
                self._transition(CircuitState.CLOSED)
                self._opened_at = None
            self._failure_count = 0

    def _release(self, is_probe: bool) -> None:
        # Cancellation says nothing about the dependency's health
        if is_probe:
            with self._lock:
                self._probe_in_flight = False

    def _record_failure(self, is_probe: bool) -> None:
        with self._lock:
            if is_probe:
                self._probe_in_flight = False
                self._open()
                return

            if self._state != CircuitState.CLOSED:
                return

            self._failure_count += 1
            if self._failure_count >= self.failure_threshold:
                self._open()

    def _open(self) -> None:
        self._transition(CircuitState.OPEN)
        self._opened_at = self._clock()

    def _maybe_half_open(self) -> None:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if self._clock() - self._opened_at >= self.open_duration_seconds:
            self._transition(CircuitState.HALF_OPEN)
            self._failure_count = 0

    def _retry_after(self) -> float:
        if self._opened_at is None:
            return 0.0
        elapsed = self._clock() - self._opened_at
        return max(0.0, self.open_duration_seconds - elapsed)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state != self._state:
            logger.info(
                "Circuit %s: %s -> %s", self.name, self._state.value, new_state.value
            )
            self._state = new_state
