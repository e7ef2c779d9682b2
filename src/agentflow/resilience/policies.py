"""Resilience policies wrapping remote calls.

This module provides:
- RetryPolicy: bounded attempts with exponential backoff (tenacity)
- CircuitBreakerPolicy: adapts CircuitBreaker to the policy interface
- TimeoutPolicy: deadline with cooperative cancellation
- FallbackPolicy: run an alternate once when the primary fails
- ResiliencePipeline: composes policies, first added is outermost
- ResilienceLayer: one pipeline and breaker per logical dependency

Every operation receives the CancellationToken it should observe.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from agentflow.cancellation import CancellationToken
from agentflow.config import ResilienceSettings
from agentflow.errors import (
    CircuitOpenError,
    OperationCancelledError,
    OperationTimeoutError,
)
from agentflow.resilience.circuit import CircuitBreaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# An operation receives the token it should observe
Operation = Callable[[CancellationToken], Awaitable[T]]
RetryPredicate = Callable[[BaseException], bool]

_NEVER_RETRIED = (CircuitOpenError, OperationCancelledError, asyncio.CancelledError)


def is_retryable(error: BaseException) -> bool:
    """Default retry predicate: anything except rejection and cancellation."""
    return not isinstance(error, _NEVER_RETRIED)


class ResiliencePolicy(ABC):
    """A wrapper that runs an operation with some failure-handling behaviour."""

    @abstractmethod
    async def execute(
        self,
        operation: Operation[T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        """Run operation under this policy."""


class RetryPolicy(ResiliencePolicy):
    """Retry an operation with exponential backoff.

    max_retries counts total attempts. The delay starts at base_delay_seconds
    and doubles after each failure. The last error is re-raised.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        retry_on: RetryPredicate | None = None,
        name: str = "default",
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.name = name
        self._retry_on = retry_on

    def _should_retry(self, error: BaseException) -> bool:
        if not is_retryable(error):
            return False
        return self._retry_on(error) if self._retry_on else True

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.info(
            "Retrying %s in %.2fs (attempt %d/%d)",
            self.name,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
            retry_state.attempt_number + 1,
            self.max_retries,
        )

    async def execute(
        self,
        operation: Operation[T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        token = cancel_token or CancellationToken()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.base_delay_seconds, exp_base=2),
            retry=retry_if_exception(self._should_retry),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                token.raise_if_cancelled()
                try:
                    return await operation(token)
                except Exception as e:
                    logger.warning(
                        "%s attempt %d/%d failed: %s",
                        self.name,
                        attempt.retry_state.attempt_number,
                        self.max_retries,
                        e,
                    )
                    raise

        raise RuntimeError("retry loop exited without a result")  # pragma: no cover


class CircuitBreakerPolicy(ResiliencePolicy):
    """Run an operation through a CircuitBreaker."""

    def __init__(self, breaker: CircuitBreaker) -> None:
        self.breaker = breaker

    async def execute(
        self,
        operation: Operation[T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        token = cancel_token or CancellationToken()
        return await self.breaker.call(lambda: operation(token))


class TimeoutPolicy(ResiliencePolicy):
    """Fail an operation that exceeds its deadline.

    On expiry the operation's child token is cancelled so cooperative
    work stops, and OperationTimeoutError is raised.
    """

    def __init__(self, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.timeout_seconds = timeout_seconds

    async def execute(
        self,
        operation: Operation[T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        token = (cancel_token or CancellationToken()).child()
        deadline = asyncio.timeout(self.timeout_seconds)
        try:
            async with deadline:
                return await operation(token)
        except TimeoutError as e:
            # Timeouts raised by the operation itself propagate unchanged
            if not deadline.expired():
                raise
            token.cancel("timeout")
            raise OperationTimeoutError(self.timeout_seconds) from e


class FallbackPolicy(ResiliencePolicy):
    """Run an alternate once when the primary fails."""

    def __init__(
        self,
        fallback: Callable[[BaseException, CancellationToken], Awaitable[Any]],
    ) -> None:
        self._fallback = fallback

    async def execute(
        self,
        operation: Operation[T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        token = cancel_token or CancellationToken()
        try:
            return await operation(token)
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning("Primary operation failed, using fallback: %s", e)
            return await self._fallback(e, token)


class ResiliencePipeline(ResiliencePolicy):
    """Compose policies; the first policy added is the outermost wrapper."""

    def __init__(self, policies: list[ResiliencePolicy] | None = None) -> None:
        self._policies: list[ResiliencePolicy] = list(policies or [])

    def add(self, policy: ResiliencePolicy) -> ResiliencePipeline:
        self._policies.append(policy)
        return self

    @property
    def policies(self) -> list[ResiliencePolicy]:
        return list(self._policies)

    async def execute(
        self,
        operation: Operation[T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        token = cancel_token or CancellationToken()
        wrapped: Operation[T] = operation
        for policy in reversed(self._policies):
            wrapped = _wrap(policy, wrapped)
        return await wrapped(token)


def _wrap(policy: ResiliencePolicy, inner: Operation[T]) -> Operation[T]:
    async def run(token: CancellationToken) -> T:
        return await policy.execute(inner, token)

    return run


class ResilienceLayer:
    """Hands out one pipeline per logical dependency.

    Each dependency gets its own CircuitBreaker, shared between its retried
    and streaming pipelines. Pipelines are built as retry -> breaker -> timeout.
    """

    def __init__(
        self,
        settings: ResilienceSettings | None = None,
        retry_on: RetryPredicate | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or ResilienceSettings()
        self._retry_on = retry_on
        self._clock = clock
        self._lock = threading.Lock()
        self._breakers: dict[str, CircuitBreaker] = {}
        self._pipelines: dict[tuple[str, bool], ResiliencePipeline] = {}

    def breaker(self, dependency: str) -> CircuitBreaker:
        with self._lock:
            return self._breaker_locked(dependency)

    def pipeline(self, dependency: str, retry: bool = True) -> ResiliencePipeline:
        """Get the pipeline for a dependency.

        Args:
            dependency: Logical dependency name (tool name, LLM role, ...).
            retry: False for calls that cannot be replayed, such as streams
                whose chunks were already forwarded.
        """
        key = (dependency, retry)
        with self._lock:
            pipeline = self._pipelines.get(key)
            if pipeline is None:
                pipeline = self._build(dependency, retry)
                self._pipelines[key] = pipeline
            return pipeline

    async def execute(
        self,
        dependency: str,
        operation: Operation[T],
        cancel_token: CancellationToken | None = None,
        retry: bool = True,
    ) -> T:
        return await self.pipeline(dependency, retry).execute(operation, cancel_token)

    def _breaker_locked(self, dependency: str) -> CircuitBreaker:
        breaker = self._breakers.get(dependency)
        if breaker is None:
            breaker = CircuitBreaker(
                name=dependency,
                failure_threshold=self.settings.failure_threshold,
                open_duration_seconds=self.settings.open_duration_seconds,
                clock=self._clock,
            )
            self._breakers[dependency] = breaker
        return breaker

    def _build(self, dependency: str, retry: bool) -> ResiliencePipeline:
        pipeline = ResiliencePipeline()
        if retry:
            pipeline.add(
                RetryPolicy(
                    max_retries=self.settings.max_retries,
                    base_delay_seconds=self.settings.base_delay_seconds,
                    retry_on=self._retry_on,
                    name=dependency,
                )
            )
        pipeline.add(CircuitBreakerPolicy(self._breaker_locked(dependency)))
        pipeline.add(TimeoutPolicy(self.settings.timeout_seconds))
        return pipeline
