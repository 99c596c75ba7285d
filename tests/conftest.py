"""
Pytest configuration and shared fixtures.

This module provides:
- Environment variable setup for tests
- An in-memory document store with a fixed clock
- A repository bound to that store and a few seeded users
"""

import os
from datetime import datetime, timezone

import pytest

# Set test environment variables BEFORE any userstore imports
os.environ["ENVIRONMENT"] = "development"
os.environ["MONGODB_URL"] = "mongodb://localhost:27017"
os.environ["MONGODB_DB_NAME"] = "userstore_test"
os.environ["BATCH_QUERY_CHUNK_SIZE"] = "10"
os.environ["LOG_LEVEL"] = "DEBUG"

from userstore.db.memory import InMemoryDocumentStore  # noqa: E402
from userstore.models.user import Presence, User  # noqa: E402
from userstore.repositories.user_repository import UserRepository  # noqa: E402

FIXED_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    """In-memory store whose server timestamp is always FIXED_NOW."""
    return InMemoryDocumentStore(clock=lambda: FIXED_NOW)


@pytest.fixture
def repository(store):
    return UserRepository(store)


@pytest.fixture
def make_user():
    """
    Factory for users with sensible defaults.

    Usage:
        user = make_user("u1", username="john")
    """
    def _make(user_id: str, **fields) -> User:
        fields.setdefault("first_name", user_id.capitalize())
        fields.setdefault("username", user_id)
        return User(user_id=user_id, **fields)

    return _make


@pytest.fixture
async def seeded(repository, make_user):
    """
    Three users: alice (online, premium), bob (offline), carol (online).
    """
    users = [
        make_user("alice", username="alice", phone="+100", presence=Presence.ONLINE, premium=True),
        make_user("bob", username="bob", phone="+200"),
        make_user("carol", username="carol", phone="+300", presence=Presence.ONLINE),
    ]
    for user in users:
        result = await repository.create_user(user)
        assert result.is_success
    return {user.user_id: user for user in users}
