"""Todo records and per-backend repositories."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from todos.config import DatabaseBackend
from todos.db.connection import Database, PostgresDatabase, SqliteDatabase

logger = logging.getLogger(__name__)


@dataclass
class Todo:
    id: int
    description: str
    done: bool = False

    @classmethod
    def from_row(cls, row: dict) -> Todo:
        # SQLite stores booleans as 0/1
        return cls(id=row["id"], description=row["description"], done=bool(row["done"]))


class TodoRepository:
    """Database operations for todos.

    The statements here are portable across backends apart from the
    parameter placeholder; subclasses provide whatever else differs.
    """

    def __init__(self, db: Database):
        self.db = db

    @property
    def _ph(self) -> str:
        return self.db.placeholder

    def create_table(self) -> list[str]:
        """Bring the schema up to date; returns the migrations applied."""
        return self.db.initialize_schema()

    def add_todo(self, description: str) -> int:
        raise NotImplementedError

    def complete_todo(self, todo_id: int) -> bool:
        rows_affected = self.db.execute_write(
            f"UPDATE todos SET done = TRUE WHERE id = {self._ph}",
            (todo_id,),
        )
        return rows_affected > 0

    def clear_todos(self) -> int:
        deleted = self.db.execute_write("DELETE FROM todos")
        logger.debug("Deleted %d todos", deleted)
        return deleted

    def list_todos(self) -> list[Todo]:
        rows = self.db.execute("SELECT id, description, done FROM todos ORDER BY id")
        return [Todo.from_row(r) for r in rows]


class SqliteTodoRepository(TodoRepository):
    db: SqliteDatabase

    def add_todo(self, description: str) -> int:
        # Insert the task, then obtain the ID of this row
        return self.db.execute_insert(
            "INSERT INTO todos (description) VALUES (?)",
            (description,),
        )


class PostgresTodoRepository(TodoRepository):
    db: PostgresDatabase

    def add_todo(self, description: str) -> int:
        row = self.db.execute_one(
            "INSERT INTO todos (description) VALUES (%s) RETURNING id",
            (description,),
        )
        return row["id"]


_REPOSITORIES: dict[DatabaseBackend, type[TodoRepository]] = {
    DatabaseBackend.SQLITE: SqliteTodoRepository,
    DatabaseBackend.POSTGRESQL: PostgresTodoRepository,
}


def repository_for(db: Database) -> TodoRepository:
    """Pick the todo repository matching the database's backend."""
    return _REPOSITORIES[db.backend](db)
