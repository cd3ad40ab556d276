"""
Pytest configuration and fixtures for the publisher backend tests.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import shared.db
from shared.models import metadata
from shared.openai_client import ModerationVerdict
from shared.post_store import PostStore, UserStore

# Use in-memory SQLite for tests with shared connection
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands timestamps back naive; they are stored in UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class FakeModerator:
    """Returns queued verdicts (or raises queued exceptions) in call order."""

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[str] = []

    def moderate(self, text: str, prompt_override: str | None = None) -> ModerationVerdict:
        self.calls.append(text)
        outcome = self.outcomes.pop(0) if self.outcomes else ModerationVerdict(True, "Looks fine")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeNotifier:
    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def notify_rejection(self, *, post_id: int, post_text: str | None, user_email: str, reason: str) -> bool:
        self.calls.append(
            {"post_id": post_id, "post_text": post_text, "user_email": user_email, "reason": reason}
        )
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture(scope="function")
def engine(monkeypatch):
    """Create a fresh database for each test and route get_engine() to it."""
    test_engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(bind=test_engine)
    monkeypatch.setattr(shared.db, "_engine", test_engine)

    yield test_engine

    metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def post_store(engine):
    return PostStore(engine)


@pytest.fixture(scope="function")
def user_store(engine):
    return UserStore(engine)


@pytest.fixture(scope="function")
def notifier():
    return FakeNotifier()
