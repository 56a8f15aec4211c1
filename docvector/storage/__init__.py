"""PostgreSQL connection management."""

from docvector.storage.database import Database

__all__ = ["Database"]
