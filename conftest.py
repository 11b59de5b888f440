import os
import uuid

import pytest
from fastapi.testclient import TestClient

from bookshelf.api import create_app
from bookshelf.db_memory import MemoryBookDatabase
from bookshelf.db_sqlite import SQLiteBookDatabase


@pytest.fixture
def redis_db():
    """A Redis store under a throwaway key prefix; skipped when no server answers."""
    import redis

    from bookshelf.db_redis import RedisBookDatabase

    url = os.environ.get("REDIS_URL", "redis://localhost:6379/15")
    client = redis.from_url(url, decode_responses=True, socket_connect_timeout=1, socket_timeout=1)
    try:
        client.ping()
    except redis.RedisError:
        client.close()
        pytest.skip(f"Redis not reachable at {url}")

    prefix = f"bookshelf-test-{uuid.uuid4().hex}:"
    store = RedisBookDatabase(client, key_prefix=prefix)
    yield store
    store.close()

    cleanup = redis.from_url(url, decode_responses=True)
    try:
        keys = list(cleanup.scan_iter(match=f"{prefix}*"))
        if keys:
            cleanup.delete(*keys)
    finally:
        cleanup.close()


@pytest.fixture(params=["memory", "sqlite", pytest.param("redis", marks=pytest.mark.integration)])
def db(request, tmp_path):
    """Every store implementation, for contract tests."""
    if request.param == "memory":
        store = MemoryBookDatabase()
    elif request.param == "sqlite":
        store = SQLiteBookDatabase(str(tmp_path / "contract.db"))
    else:
        store = request.getfixturevalue("redis_db")
    yield store
    store.close()


@pytest.fixture
def sqlite_db(tmp_path):
    store = SQLiteBookDatabase(str(tmp_path / "books.db"))
    yield store
    store.close()


@pytest.fixture
def memory_db():
    store = MemoryBookDatabase()
    yield store
    store.close()


@pytest.fixture
def client(memory_db):
    with TestClient(create_app(db=memory_db)) as test_client:
        yield test_client
