"""Thread-safe in-memory session store.

The store is the only object shared between concurrent call paths. Every
operation holds a single lock; update is last-write-wins, so callers
serialize writes to any one session.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime, timedelta

from agentflow.errors import SessionNotFoundError
from agentflow.orchestration.models import OrchestrationContext

logger = logging.getLogger(__name__)


class SessionStore:
    """Maps session ids to OrchestrationContexts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, OrchestrationContext] = {}

    def create(self, user_request: str, session_id: str | None = None) -> OrchestrationContext:
        """Create and store a new session.

        Raises:
            ValueError: If session_id is already in use.
        """
        context = OrchestrationContext(
            session_id=session_id or str(uuid.uuid4()),
            user_request=user_request,
        )
        with self._lock:
            if context.session_id in self._sessions:
                raise ValueError(f"Session already exists: {context.session_id}")
            self._sessions[context.session_id] = context
        logger.debug("Created session %s", context.session_id)
        return context

    def get(self, session_id: str) -> OrchestrationContext | None:
        with self._lock:
            return self._sessions.get(session_id)

    def require(self, session_id: str) -> OrchestrationContext:
        """Get a session or raise SessionNotFoundError."""
        context = self.get(session_id)
        if context is None:
            raise SessionNotFoundError(session_id)
        return context

    def update(self, context: OrchestrationContext) -> None:
        with self._lock:
            self._sessions[context.session_id] = context

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def sweep_expired(self, max_age: timedelta, now: datetime | None = None) -> int:
        """Remove sessions started more than max_age ago.

        Returns:
            Number of sessions removed.
        """
        cutoff = (now or datetime.now(UTC)) - max_age
        with self._lock:
            expired = [
                session_id
                for session_id, context in self._sessions.items()
                if context.started_at < cutoff
            ]
            for session_id in expired:
                del self._sessions[session_id]

        if expired:
            logger.info("Swept %d expired sessions", len(expired))
        return len(expired)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
