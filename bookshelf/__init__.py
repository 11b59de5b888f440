"""Bookshelf - book records over a pluggable store.

This package contains:
- Data model (book.py)
- Storage interface and errors (database.py)
- Backing stores (db_memory.py, db_sqlite.py, db_redis.py)
- HTTP API (api.py)
- CLI interface (main.py)
"""

from bookshelf.book import Book
from bookshelf.database import BookDatabase, NotFoundError, StorageError, open_database

__all__ = ["Book", "BookDatabase", "NotFoundError", "StorageError", "open_database"]
