"""Resilience policies for remote calls.

This module provides:
- CircuitBreaker: halts calls to a failing dependency for a cool-down
- RetryPolicy, TimeoutPolicy, FallbackPolicy: single-concern wrappers
- ResiliencePipeline: composes policies, first added is outermost
- ResilienceLayer: one pipeline and breaker per logical dependency
"""

from agentflow.resilience.circuit import CircuitBreaker, CircuitState
from agentflow.resilience.policies import (
    CircuitBreakerPolicy,
    FallbackPolicy,
    ResilienceLayer,
    ResiliencePipeline,
    ResiliencePolicy,
    RetryPolicy,
    TimeoutPolicy,
    is_retryable,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerPolicy",
    "CircuitState",
    "FallbackPolicy",
    "ResilienceLayer",
    "ResiliencePipeline",
    "ResiliencePolicy",
    "RetryPolicy",
    "TimeoutPolicy",
    "is_retryable",
]
