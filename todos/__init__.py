"""Todo list CLI running the same commands against SQLite or PostgreSQL."""

__version__ = "0.1.0"
