"""Exception hierarchy for agentflow.

Step-level failures are reported as data (failed results carrying an
ErrorKind). The exceptions below are raised by the resilience layer, the
session store and configuration loading, and are converted to failed
results at the step boundary.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification attached to failed step results."""

    NOT_FOUND = "not_found"
    PARAMETER = "parameter"
    EXECUTION = "execution"
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"  # Dependency failed or was skipped


class AgentFlowError(Exception):
    """Base class for all agentflow errors."""

    kind: ErrorKind = ErrorKind.EXECUTION


class TargetNotFoundError(AgentFlowError):
    """Raised when a step target resolves to neither a tool nor an LLM function."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Target not found: {name}")
        self.name = name


class ParameterError(AgentFlowError):
    """Raised when step parameters cannot be substituted or generated."""

    kind = ErrorKind.PARAMETER


class StepExecutionError(AgentFlowError):
    """Raised when a tool or LLM function reports failure."""

    def __init__(self, message: str, step: int | None = None):
        super().__init__(message)
        self.step = step


class OperationTimeoutError(AgentFlowError, TimeoutError):
    """Raised when an operation exceeds its deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Operation timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class CircuitOpenError(AgentFlowError):
    """Raised when a circuit breaker rejects a call."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, name: str, retry_after_seconds: float = 0.0):
        super().__init__(
            f"Circuit '{name}' is open; retry after {retry_after_seconds:.1f}s"
        )
        self.name = name
        self.retry_after_seconds = retry_after_seconds


class OperationCancelledError(AgentFlowError):
    """Raised when a cancellation token has been triggered."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Operation was cancelled"):
        super().__init__(message)


class PlanValidationError(AgentFlowError):
    """Raised when a plan violates structural rules."""

    kind = ErrorKind.BLOCKED


class SessionNotFoundError(AgentFlowError):
    """Raised when a session id is not present in the store."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class ConfigError(AgentFlowError):
    """Raised when configuration cannot be loaded."""


class LLMClientError(AgentFlowError):
    """Raised when LLM client encounters an error."""


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to the ErrorKind recorded on a failed result."""
    if isinstance(error, AgentFlowError):
        return error.kind
    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT
    return ErrorKind.EXECUTION
