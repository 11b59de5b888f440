"""Document store on Redis.

Each book is one JSON document under ``{prefix}book:{id}``. Identifiers come
from ``INCR {prefix}next_id`` so they are never reused. Two sets index the
documents: ``{prefix}books`` holds every id and ``{prefix}created_by:{creator}``
holds the ids created by one creator. Updates and deletes read the old
document under WATCH so the creator index moves with it even when writers
overlap.
"""

import json
import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

import redis

from bookshelf.book import Book
from bookshelf.database import NotFoundError, StorageError, sort_by_title

logger = logging.getLogger(__name__)


class RedisBookDatabase:
    def __init__(self, client: redis.Redis, key_prefix: str = "bookshelf:") -> None:
        self._client = client
        self.key_prefix = key_prefix
        self._closed = False

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "bookshelf:", timeout: float = 5.0) -> "RedisBookDatabase":
        """Connect and PING so a bad URL fails at startup rather than on first request."""
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
            health_check_interval=30,
        )
        try:
            client.ping()
        except redis.RedisError as exc:
            client.close()
            raise StorageError("open", f"could not reach Redis: {exc}") from exc
        logger.info(f"Redis book database connected (prefix {key_prefix!r})")
        return cls(client, key_prefix=key_prefix)

    # ------------------------- Keys ------------------------- #
    def _book_key(self, book_id: int) -> str:
        return f"{self.key_prefix}book:{book_id}"

    def _creator_key(self, creator_id: str) -> str:
        return f"{self.key_prefix}created_by:{creator_id}"

    @property
    def _all_key(self) -> str:
        return f"{self.key_prefix}books"

    @property
    def _counter_key(self) -> str:
        return f"{self.key_prefix}next_id"

    # ------------------------- Helpers ------------------------- #
    @contextmanager
    def _errors(self, op: str, book_id: Optional[int] = None) -> Iterator[None]:
        if self._closed:
            raise StorageError(op, "database is closed", book_id)
        try:
            yield
        except redis.RedisError as exc:
            logger.warning(f"Redis {op} failed: {exc}")
            raise StorageError(op, f"{type(exc).__name__}: {exc}", book_id) from exc
        except ValueError as exc:
            logger.error(f"Redis {op} returned a malformed document: {exc}")
            raise StorageError(op, "malformed book document", book_id) from exc

    @staticmethod
    def _decode(book_id: int, raw: str) -> Book:
        doc = json.loads(raw)
        doc["id"] = book_id
        return Book.from_dict(doc)

    def _load_many(self, ids: Iterable[str]) -> List[Book]:
        book_ids = sorted(int(i) for i in ids)
        if not book_ids:
            return []
        raws = self._client.mget([self._book_key(i) for i in book_ids])
        # An id can outlive its document briefly while a delete is in flight.
        return sort_by_title(
            self._decode(book_id, raw) for book_id, raw in zip(book_ids, raws) if raw is not None
        )

    # ------------------------- Reads ------------------------- #
    def list_books(self) -> List[Book]:
        with self._errors("list_books"):
            return self._load_many(self._client.smembers(self._all_key))

    def list_books_created_by(self, creator_id: str) -> List[Book]:
        with self._errors("list_books_created_by"):
            books = self._load_many(self._client.smembers(self._creator_key(creator_id)))
            # The set is an index; the document is authoritative.
            return [b for b in books if b.created_by_id == creator_id]

    def get_book(self, book_id: int) -> Book:
        with self._errors("get_book", book_id):
            raw = self._client.get(self._book_key(book_id))
            if raw is None:
                raise NotFoundError("get_book", book_id)
            return self._decode(book_id, raw)

    # ------------------------- Writes ------------------------- #
    def add_book(self, book: Book) -> int:
        with self._errors("add_book"):
            book_id = int(self._client.incr(self._counter_key))
            pipe = self._client.pipeline(transaction=True)
            pipe.set(self._book_key(book_id), json.dumps(book.to_document(), ensure_ascii=False))
            pipe.sadd(self._all_key, book_id)
            pipe.sadd(self._creator_key(book.created_by_id), book_id)
            pipe.execute()
            return book_id

    def delete_book(self, book_id: int) -> None:
        key = self._book_key(book_id)

        def remove(pipe: redis.client.Pipeline) -> None:
            raw = pipe.get(key)
            if raw is None:
                raise NotFoundError("delete_book", book_id)
            old = self._decode(book_id, raw)
            pipe.multi()
            pipe.delete(key)
            pipe.srem(self._all_key, book_id)
            pipe.srem(self._creator_key(old.created_by_id), book_id)

        with self._errors("delete_book", book_id):
            # WATCH on the document: re-run if another writer changed it since the GET.
            self._client.transaction(remove, key)

    def update_book(self, book: Book) -> None:
        key = self._book_key(book.id)
        doc = json.dumps(book.to_document(), ensure_ascii=False)

        def rewrite(pipe: redis.client.Pipeline) -> None:
            raw = pipe.get(key)
            if raw is None:
                raise NotFoundError("update_book", book.id)
            old = self._decode(book.id, raw)
            pipe.multi()
            pipe.set(key, doc)
            if old.created_by_id != book.created_by_id:
                pipe.srem(self._creator_key(old.created_by_id), book.id)
                pipe.sadd(self._creator_key(book.created_by_id), book.id)

        with self._errors("update_book", book.id):
            self._client.transaction(rewrite, key)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.close()
        logger.info("Redis book database closed")
