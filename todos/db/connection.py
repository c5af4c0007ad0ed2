"""Database connection management for SQLite and PostgreSQL."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

import psycopg
from psycopg import sql
from psycopg.conninfo import conninfo_to_dict, make_conninfo
from psycopg.rows import dict_row

from todos.config import DatabaseBackend, backend_for_url

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

_MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version TEXT PRIMARY KEY,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

# Concurrent first runs may race to record the same version
_RECORD_MIGRATION = (
    "INSERT INTO schema_migrations (version) VALUES ({ph}) ON CONFLICT (version) DO NOTHING"
)


class UnsupportedDatabaseError(ValueError):
    """Raised for a connection string whose scheme has no backend."""

    def __init__(self, url: str, reason: str | None = None):
        self.url = url
        if reason is None:
            scheme = url.split(":", 1)[0] if ":" in url else url
            reason = f"Unsupported Database Management System: {scheme!r}"
        super().__init__(reason)


class Database:
    """Backend-neutral query helpers over a per-backend ``connection()``."""

    backend: DatabaseBackend
    placeholder = "?"

    def __init__(self, url: str):
        self.url = url

    @contextmanager
    def connection(self) -> Generator[Any, None, None]:
        raise NotImplementedError

    def create_database(self) -> bool:
        """Create the database if missing. Returns True if it was created."""
        raise NotImplementedError

    def apply_migration(self, version: str, sql_text: str) -> None:
        """Run a migration script and record it, in one transaction."""
        raise NotImplementedError

    def execute(self, sql_text: str, params: tuple = ()) -> list[dict[str, Any]]:
        """Execute a query and return results as list of dicts."""
        with self.connection() as conn:
            cursor = conn.execute(sql_text, params)
            if cursor.description:
                columns = [d[0] for d in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            return []

    def execute_one(self, sql_text: str, params: tuple = ()) -> dict[str, Any] | None:
        """Execute a query and return the first row as a dict, or None."""
        results = self.execute(sql_text, params)
        return results[0] if results else None

    def execute_write(self, sql_text: str, params: tuple = ()) -> int:
        """Execute an UPDATE/DELETE and return the affected row count."""
        with self.connection() as conn:
            cursor = conn.execute(sql_text, params)
            return cursor.rowcount

    def applied_migrations(self) -> set[str]:
        self.execute_write(_MIGRATIONS_TABLE)
        rows = self.execute("SELECT version FROM schema_migrations")
        return {r["version"] for r in rows}

    def pending_migrations(self) -> list[Path]:
        """Migration files for this backend not yet recorded as applied."""
        applied = self.applied_migrations()
        migrations = sorted((MIGRATIONS_DIR / self.backend.value).glob("*.sql"))
        return [m for m in migrations if m.stem not in applied]

    def initialize_schema(self) -> list[str]:
        """Apply pending migrations in order; return the versions applied."""
        applied: list[str] = []
        for migration_path in self.pending_migrations():
            self.apply_migration(migration_path.stem, migration_path.read_text())
            logger.info("Applied migration: %s", migration_path.name)
            applied.append(migration_path.stem)
        return applied


class SqliteDatabase(Database):
    """SQLite file database, addressed as ``sqlite:path`` or ``sqlite://path``."""

    backend = DatabaseBackend.SQLITE
    placeholder = "?"

    def __init__(self, url: str):
        super().__init__(url)
        self.path = sqlite_path_from_url(url)

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection (context manager)."""
        conn = sqlite3.connect(str(self.path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def create_database(self) -> bool:
        if self.path.exists():
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection():
            pass
        logger.info("Created SQLite database at %s", self.path)
        return True

    def apply_migration(self, version: str, sql_text: str) -> None:
        # executescript() commits first, so run statements one by one inside
        # an explicit transaction instead
        with self.connection() as conn:
            conn.execute("BEGIN")
            for statement in split_statements(sql_text):
                conn.execute(statement)
            conn.execute(_RECORD_MIGRATION.format(ph="?"), (version,))

    def execute_insert(self, sql_text: str, params: tuple = ()) -> int:
        """Execute an INSERT and return the new row id."""
        with self.connection() as conn:
            cursor = conn.execute(sql_text, params)
            return cursor.lastrowid


class PostgresDatabase(Database):
    """PostgreSQL server database, addressed by a libpq URL."""

    backend = DatabaseBackend.POSTGRESQL
    placeholder = "%s"

    @contextmanager
    def connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection (context manager)."""
        conn = psycopg.connect(self.url, row_factory=dict_row)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(self, sql_text: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self.connection() as conn:
            cursor = conn.execute(sql_text, params)
            if cursor.description:
                return cursor.fetchall()
            return []

    @property
    def database_name(self) -> str:
        return conninfo_to_dict(self.url).get("dbname") or "postgres"

    def create_database(self) -> bool:
        # CREATE DATABASE cannot run inside a transaction, so go through the
        # maintenance database in autocommit mode.
        name = self.database_name
        admin_conninfo = make_conninfo(self.url, dbname="postgres")
        with psycopg.connect(admin_conninfo, autocommit=True) as conn:
            exists = conn.execute(
                "SELECT 1 FROM pg_database WHERE datname = %s", (name,)
            ).fetchone()
            if exists:
                return False
            conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name)))
        logger.info("Created PostgreSQL database %s", name)
        return True

    def apply_migration(self, version: str, sql_text: str) -> None:
        # DDL is transactional in PostgreSQL; a parameterless execute() may
        # hold several statements
        with self.connection() as conn:
            conn.execute(sql_text)
            conn.execute(_RECORD_MIGRATION.format(ph="%s"), (version,))


def sqlite_path_from_url(url: str) -> Path:
    """``sqlite:todos.db`` and ``sqlite://todos.db`` are relative, ``sqlite:///x`` absolute."""
    rest = url[len("sqlite:"):]
    if rest.startswith("//"):
        rest = rest[2:]
    rest = rest.split("?", 1)[0]
    if not rest:
        raise UnsupportedDatabaseError(url, "SQLite URL has no file path")
    if rest == ":memory:":
        # every statement opens its own connection, so nothing would persist
        raise UnsupportedDatabaseError(url, "In-memory SQLite databases are not supported")
    return Path(rest)


def open_database(url: str) -> Database:
    """Build the Database for a connection string."""
    backend = backend_for_url(url)
    if backend == DatabaseBackend.SQLITE:
        return SqliteDatabase(url)
    if backend == DatabaseBackend.POSTGRESQL:
        return PostgresDatabase(url)
    raise UnsupportedDatabaseError(url)


def split_statements(script: str) -> list[str]:
    """Split a SQL script into complete statements (semicolons in literals are kept)."""
    statements: list[str] = []
    buffer = ""
    for piece in script.split(";"):
        buffer += piece + ";"
        if sqlite3.complete_statement(buffer):
            if buffer.strip(" \t\r\n;"):
                statements.append(buffer.strip())
            buffer = ""
    return statements
