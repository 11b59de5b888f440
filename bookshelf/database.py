"""Storage interface shared by every backing store.

Any object providing these methods can back the API; the concrete stores
(db_memory, db_sqlite, db_redis) do not inherit from a common class.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol, runtime_checkable

from bookshelf.book import Book
from bookshelf.config import Settings, settings as default_settings


class BookshelfError(Exception):
    pass


class NotFoundError(BookshelfError, LookupError):
    """The requested book identifier does not exist."""

    def __init__(self, op: str, book_id: int) -> None:
        self.op = op
        self.book_id = book_id
        super().__init__(f"{op}: book {book_id} not found")


class StorageError(BookshelfError):
    """The backing store failed; the original exception is chained as __cause__."""

    def __init__(self, op: str, message: str, book_id: Optional[int] = None) -> None:
        self.op = op
        self.book_id = book_id
        if book_id is not None:
            super().__init__(f"{op}: book {book_id}: {message}")
        else:
            super().__init__(f"{op}: {message}")


@runtime_checkable
class BookDatabase(Protocol):
    """Thread-safe access to a database of books."""

    def list_books(self) -> List[Book]:
        """Return all books ordered by title."""
        ...

    def list_books_created_by(self, creator_id: str) -> List[Book]:
        """Return the books created by ``creator_id``, ordered by title."""
        ...

    def get_book(self, book_id: int) -> Book:
        ...

    def add_book(self, book: Book) -> int:
        """Save ``book`` under a new identifier and return that identifier."""
        ...

    def delete_book(self, book_id: int) -> None:
        ...

    def update_book(self, book: Book) -> None:
        """Replace every field of the stored book with ``book.id``."""
        ...

    def close(self) -> None:
        ...


def sort_by_title(books: Iterable[Book]) -> List[Book]:
    """Title order, identifier as tie-breaker, so listings are total and stable."""
    return sorted(books, key=lambda b: (b.title, b.id))


def open_database(config: Optional[Settings] = None) -> BookDatabase:
    """Create the store selected by ``config.database_backend``."""
    config = config or default_settings
    backend = config.database_backend
    if backend == "memory":
        from bookshelf.db_memory import MemoryBookDatabase

        return MemoryBookDatabase()
    if backend == "sqlite":
        from bookshelf.db_sqlite import SQLiteBookDatabase

        return SQLiteBookDatabase(config.database_file, pool_size=config.database_pool_size)
    if backend == "redis":
        from bookshelf.db_redis import RedisBookDatabase

        return RedisBookDatabase.from_url(
            config.redis_url,
            key_prefix=config.redis_key_prefix,
            timeout=config.redis_timeout,
        )
    raise ValueError(f"Unknown database backend: {backend!r} (expected memory, sqlite or redis)")
