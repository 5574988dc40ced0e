"""SQLite connection management shared by the repository implementations."""

from shared.db.connection import Database, to_db_timestamp

__all__ = [
    "Database",
    "to_db_timestamp",
]
