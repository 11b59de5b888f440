import logging
import threading
from dataclasses import replace
from typing import Dict, List

from bookshelf.book import Book
from bookshelf.database import NotFoundError, StorageError, sort_by_title

logger = logging.getLogger(__name__)


class MemoryBookDatabase:
    """In-process store guarded by a single lock. Nothing survives a restart."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._books: Dict[int, Book] = {}
        self._next_id = 1
        self._closed = False

    def _check_open(self, op: str) -> None:
        if self._closed:
            raise StorageError(op, "database is closed")

    def list_books(self) -> List[Book]:
        with self._lock:
            self._check_open("list_books")
            return sort_by_title(replace(b) for b in self._books.values())

    def list_books_created_by(self, creator_id: str) -> List[Book]:
        with self._lock:
            self._check_open("list_books_created_by")
            return sort_by_title(
                replace(b) for b in self._books.values() if b.created_by_id == creator_id
            )

    def get_book(self, book_id: int) -> Book:
        with self._lock:
            self._check_open("get_book")
            book = self._books.get(book_id)
            if book is None:
                raise NotFoundError("get_book", book_id)
            return replace(book)

    def add_book(self, book: Book) -> int:
        with self._lock:
            self._check_open("add_book")
            book_id = self._next_id
            self._next_id += 1
            self._books[book_id] = book.with_id(book_id)
            return book_id

    def delete_book(self, book_id: int) -> None:
        with self._lock:
            self._check_open("delete_book")
            if self._books.pop(book_id, None) is None:
                raise NotFoundError("delete_book", book_id)

    def update_book(self, book: Book) -> None:
        with self._lock:
            self._check_open("update_book")
            if book.id not in self._books:
                raise NotFoundError("update_book", book.id)
            self._books[book.id] = replace(book)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._books.clear()
        logger.info("Memory book database closed")
