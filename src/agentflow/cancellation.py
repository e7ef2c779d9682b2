"""Cooperative cancellation tokens.

A token is threaded through plan execution, every step and every remote
call. Child tokens observe their parent, so cancelling a session cancels
everything beneath it while a timeout can cancel just one call.
"""

from __future__ import annotations

import threading

from agentflow.errors import OperationCancelledError


class CancellationToken:
    """Signal that work should stop at the next checkpoint."""

    def __init__(self, parent: CancellationToken | None = None):
        self._parent = parent
        self._cancelled = threading.Event()
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled

    @property
    def reason(self) -> str | None:
        if self._cancelled.is_set():
            return self._reason
        if self._parent is not None:
            return self._parent.reason
        return None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled.is_set():
            self._reason = reason
            self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if this token or a parent is cancelled."""
        if self.is_cancelled:
            raise OperationCancelledError(f"Operation was cancelled: {self.reason}")

    def child(self) -> CancellationToken:
        """Create a token linked to this one."""
        return CancellationToken(parent=self)
