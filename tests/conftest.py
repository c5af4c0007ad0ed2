"""Shared fixtures: isolated environment and throwaway SQLite databases."""

from __future__ import annotations

import pytest

from todos.db.connection import SqliteDatabase
from todos.db.models import SqliteTodoRepository

_ENV_VARS = (
    "DATABASE_URL",
    "TODOS_DB_URL",
    "TODOS_DB_EXTRA_URLS",
    "TODOS_LOG_LEVEL",
    "TODOS_ENVIRONMENT",
    "TODOS_SENTRY_DSN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's database settings out of the tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sqlite_url(tmp_path) -> str:
    return f"sqlite:{tmp_path / 'todos.db'}"


@pytest.fixture
def db(sqlite_url) -> SqliteDatabase:
    """A migrated temporary SQLite database."""
    database = SqliteDatabase(sqlite_url)
    database.initialize_schema()
    return database


@pytest.fixture
def repo(db) -> SqliteTodoRepository:
    return SqliteTodoRepository(db)


@pytest.fixture
def empty_config(tmp_path):
    """An empty config file, so only env/defaults apply."""
    path = tmp_path / "app.yml"
    path.write_text("")
    return path


