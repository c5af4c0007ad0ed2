"""Database layer: SQLite and PostgreSQL behind one interface."""

from todos.db.connection import Database, UnsupportedDatabaseError, open_database

__all__ = ["Database", "UnsupportedDatabaseError", "open_database"]
