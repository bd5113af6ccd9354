"""Shared fixtures for task service tests."""
from __future__ import annotations

import pytest

from db import Database
from settings import Settings
from store import TaskStore, UserStore

TEST_SECRET = "test-secret-key-for-testing-0123456789"
VALID_PASSWORD = "Secret1!"
# Minimum bcrypt cost keeps the suite fast.
TEST_ROUNDS = 4


@pytest.fixture
def database() -> Database:
    db = Database.from_url("sqlite://")
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def user_store(database) -> UserStore:
    return UserStore(database, bcrypt_rounds=TEST_ROUNDS)


@pytest.fixture
def task_store(database) -> TaskStore:
    return TaskStore(database)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        JWT_SECRET=TEST_SECRET,
        DATABASE_URL="sqlite://",
        BCRYPT_ROUNDS=TEST_ROUNDS,
    )


@pytest.fixture
def alice(user_store):
    """A registered user named alice."""
    return user_store.register("alice", VALID_PASSWORD)


@pytest.fixture
def bob(user_store):
    return user_store.register("bob", "Other2@pass")
