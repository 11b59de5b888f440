import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from bookshelf.book import Book
from bookshelf.database import NotFoundError, StorageError

logger = logging.getLogger(__name__)

# SQLite INTEGER is a signed 64-bit value; anything outside cannot be stored.
_MIN_ID = -(2 ** 63)
_MAX_ID = 2 ** 63 - 1

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS books (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL DEFAULT '',
        author TEXT NOT NULL DEFAULT '',
        published_date TEXT NOT NULL DEFAULT '',
        description TEXT NOT NULL DEFAULT '',
        created_by_id TEXT NOT NULL DEFAULT ''
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_books_title ON books(title, id)",
    "CREATE INDEX IF NOT EXISTS idx_books_created_by_id ON books(created_by_id, title)",
)

_COLUMNS = "id, title, author, published_date, description, created_by_id"


class SQLiteBookDatabase:
    """Relational store on a SQLite file, shared through a small connection pool.

    AUTOINCREMENT keeps identifiers from being reused after a delete.
    """

    def __init__(self, db_file: str, pool_size: int = 5, timeout: float = 30.0) -> None:
        self.db_file = db_file
        self._timeout = timeout
        self._lock = threading.Lock()
        self._closed = False
        # Every ":memory:" connection is its own database, so share exactly one.
        if db_file == ":memory:":
            pool_size = 1
        self._pool: "queue.Queue[Optional[sqlite3.Connection]]" = queue.Queue(maxsize=max(pool_size, 1))
        try:
            for _ in range(self._pool.maxsize):
                self._pool.put(self._connect())
        except sqlite3.Error as exc:
            self.close()
            raise StorageError("open", f"could not open {db_file}: {exc}") from exc
        try:
            self._create_tables()
        except StorageError:
            self.close()
            raise
        logger.info(f"SQLite book database opened at {db_file} (pool size {self._pool.maxsize})")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_file, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _create_tables(self) -> None:
        with self._connection("open") as conn:
            with conn:
                for statement in _SCHEMA:
                    conn.execute(statement)

    @contextmanager
    def _connection(self, op: str, book_id: Optional[int] = None) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StorageError(op, "database is closed", book_id)
        try:
            conn = self._pool.get(timeout=self._timeout)
        except queue.Empty as exc:
            raise StorageError(op, "timed out waiting for a connection", book_id) from exc
        if conn is None:
            # Closed while waiting; pass the wake-up on to the next waiter.
            self._pool.put_nowait(None)
            raise StorageError(op, "database is closed", book_id)
        try:
            yield conn
        except sqlite3.Error as exc:
            logger.warning(f"SQLite {op} failed: {exc}")
            raise StorageError(op, f"{type(exc).__name__}: {exc}", book_id) from exc
        finally:
            self._release(conn)

    def _release(self, conn: sqlite3.Connection) -> None:
        with self._lock:
            if not self._closed:
                self._pool.put_nowait(conn)
                return
        conn.close()

    # ------------------------- Reads ------------------------- #
    def list_books(self) -> List[Book]:
        with self._connection("list_books") as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM books ORDER BY title, id").fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    def list_books_created_by(self, creator_id: str) -> List[Book]:
        with self._connection("list_books_created_by") as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM books WHERE created_by_id = ? ORDER BY title, id",
                (creator_id,),
            ).fetchall()
        return [Book.from_dict(dict(row)) for row in rows]

    def get_book(self, book_id: int) -> Book:
        if not _MIN_ID <= book_id <= _MAX_ID:
            raise NotFoundError("get_book", book_id)
        with self._connection("get_book", book_id) as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM books WHERE id = ?", (book_id,)).fetchone()
        if row is None:
            raise NotFoundError("get_book", book_id)
        return Book.from_dict(dict(row))

    # ------------------------- Writes ------------------------- #
    def add_book(self, book: Book) -> int:
        doc = book.to_document()
        with self._connection("add_book") as conn:
            with conn:
                cursor = conn.execute(
                    "INSERT INTO books (title, author, published_date, description, created_by_id) "
                    "VALUES (:title, :author, :published_date, :description, :created_by_id)",
                    doc,
                )
                book_id = cursor.lastrowid
        return int(book_id)

    def delete_book(self, book_id: int) -> None:
        if not _MIN_ID <= book_id <= _MAX_ID:
            raise NotFoundError("delete_book", book_id)
        with self._connection("delete_book", book_id) as conn:
            with conn:
                cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
                deleted = cursor.rowcount
        if deleted == 0:
            raise NotFoundError("delete_book", book_id)

    def update_book(self, book: Book) -> None:
        if not _MIN_ID <= book.id <= _MAX_ID:
            raise NotFoundError("update_book", book.id)
        params = book.to_document()
        params["id"] = book.id
        with self._connection("update_book", book.id) as conn:
            with conn:
                cursor = conn.execute(
                    "UPDATE books SET title = :title, author = :author, "
                    "published_date = :published_date, description = :description, "
                    "created_by_id = :created_by_id WHERE id = :id",
                    params,
                )
                updated = cursor.rowcount
        if updated == 0:
            raise NotFoundError("update_book", book.id)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # Connections checked out right now are closed by _release.
        while True:
            try:
                conn = self._pool.get_nowait()
            except queue.Empty:
                break
            conn.close()
        # Wakes callers blocked in _connection.
        self._pool.put_nowait(None)
        logger.info(f"SQLite book database at {self.db_file} closed")
