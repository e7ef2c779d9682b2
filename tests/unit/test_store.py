"""Tests for SessionStore."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest

from agentflow.errors import SessionNotFoundError
from agentflow.orchestration.store import SessionStore


@pytest.fixture
def store() -> SessionStore:
    """Create an empty store."""
    return SessionStore()


class TestSessionStore:
    """Tests for SessionStore operations."""

    def test_create_and_get(self, store):
        """Test created sessions can be fetched by id."""
        context = store.create("plan my trip")

        assert store.get(context.session_id) is context
        assert context.user_request == "plan my trip"
        assert context.session_id in store
        assert len(store) == 1

    def test_create_with_explicit_id(self, store):
        """Test a caller-chosen id is used and cannot be reused."""
        store.create("first", session_id="abc")

        with pytest.raises(ValueError):
            store.create("second", session_id="abc")

    def test_get_missing_returns_none(self, store):
        """Test unknown ids return None from get and raise from require."""
        assert store.get("nope") is None
        with pytest.raises(SessionNotFoundError):
            store.require("nope")

    def test_update_is_last_write_wins(self, store):
        """Test update replaces the stored context."""
        context = store.create("request", session_id="s")
        replacement = context.model_copy(update={"iterations": 3})

        store.update(replacement)

        assert store.get("s").iterations == 3

    def test_remove(self, store):
        """Test remove reports whether a session was dropped."""
        context = store.create("request")

        assert store.remove(context.session_id) is True
        assert store.remove(context.session_id) is False
        assert len(store) == 0

    def test_sweep_expired(self, store):
        """Test sessions older than max_age are removed."""
        old = store.create("old")
        old.started_at = datetime.now(UTC) - timedelta(hours=2)
        fresh = store.create("fresh")

        removed = store.sweep_expired(timedelta(hours=1))

        assert removed == 1
        assert store.get(old.session_id) is None
        assert store.get(fresh.session_id) is fresh

    def test_concurrent_creates(self, store):
        """Test concurrent creation from many threads loses nothing."""

        def worker(index: int) -> None:
            for n in range(50):
                store.create(f"request {index}-{n}")

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 400
