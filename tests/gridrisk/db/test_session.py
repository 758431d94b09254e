"""
Tests for Database Session Utilities
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy import exc, text
from sqlalchemy.orm import sessionmaker

from src.gridrisk.db import session as db_session
from src.gridrisk.db.session import close_connections, get_db_session, health_check, with_retry


def _operational_error():
    return exc.OperationalError("SELECT 1", {}, Exception("connection reset"))


class TestWithRetry:
    """Tests for the retry decorator."""

    def test_retries_transient_failures(self):
        """Test that operational errors are retried until success."""
        calls = []

        @with_retry(max_retries=3, retry_delay=0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise _operational_error()
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_raises_after_max_retries(self):
        """Test that the last error is raised once retries are exhausted."""
        calls = []

        @with_retry(max_retries=2, retry_delay=0)
        def always_fails():
            calls.append(1)
            raise _operational_error()

        with pytest.raises(exc.OperationalError):
            always_fails()
        assert len(calls) == 2

    def test_does_not_retry_other_errors(self):
        """Test that non-transient errors propagate immediately."""
        calls = []

        @with_retry(max_retries=3, retry_delay=0)
        def broken():
            calls.append(1)
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            broken()
        assert len(calls) == 1


class TestSessionHelpers:
    """Tests for session context management and health checks."""

    def test_get_db_session_commits(self, engine):
        """Test that the context manager commits on success."""
        factory = sessionmaker(bind=engine)

        with get_db_session(factory) as session:
            session.execute(text(
                "INSERT INTO profiles (id, role, email_notifications, created_at, updated_at) "
                "VALUES ('p1', 'admin', 1, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
            ))

        with get_db_session(factory) as session:
            count = session.execute(text("SELECT COUNT(*) FROM profiles")).scalar()
        assert count == 1

    def test_get_db_session_rolls_back(self, engine):
        """Test that the context manager rolls back and re-raises."""
        factory = sessionmaker(bind=engine)

        with pytest.raises(RuntimeError):
            with get_db_session(factory) as session:
                session.execute(text(
                    "INSERT INTO profiles (id, role, email_notifications, created_at, updated_at) "
                    "VALUES ('p1', 'admin', 1, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
                ))
                raise RuntimeError("abort")

        with get_db_session(factory) as session:
            count = session.execute(text("SELECT COUNT(*) FROM profiles")).scalar()
        assert count == 0

    def test_health_check(self, test_db):
        """Test health check against a live database."""
        assert health_check(test_db) is True

    def test_close_connections_disposes_default_engine(self, monkeypatch):
        """Test that shutdown disposes the engine and forgets it."""
        fake_engine = MagicMock()
        monkeypatch.setattr(db_session, "_engine", fake_engine)

        close_connections()

        fake_engine.dispose.assert_called_once()
        assert db_session._engine is None

    def test_close_connections_without_engine(self, monkeypatch):
        monkeypatch.setattr(db_session, "_engine", None)
        close_connections()
        assert db_session._engine is None
