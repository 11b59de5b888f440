import pytest
from fastapi.testclient import TestClient

from bookshelf.api import create_app
from bookshelf.book import Book
from bookshelf.config import Settings
from bookshelf.database import StorageError

DUNE = {"title": "Dune", "author": "Herbert", "published_date": "1965", "description": "Desert planet"}


def test_index_redirects_to_books(client):
    response = client.get("/", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/books"


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.text == "ok"


def test_get_books_empty(client):
    response = client.get("/books")
    assert response.status_code == 200
    assert response.json() == []


def test_full_book_lifecycle(client):
    response = client.post("/books", json=DUNE)
    assert response.status_code == 200
    created = response.json()
    assert created == {**DUNE, "id": 1, "created_by_id": ""}

    response = client.get("/books")
    assert response.json() == [created]

    response = client.put("/books/1", json={**DUNE, "title": "Dune Messiah"})
    assert response.status_code == 200
    assert response.json()["title"] == "Dune Messiah"

    response = client.get("/books/1")
    assert response.status_code == 200
    assert response.json()["title"] == "Dune Messiah"

    response = client.delete("/books/1")
    assert response.status_code == 200
    assert response.json() == {"deleted": 1}

    response = client.get("/books/1")
    assert response.status_code == 404


def test_create_ignores_client_id(client, memory_db):
    response = client.post("/books", json={**DUNE, "id": 99})
    assert response.status_code == 200
    assert response.json()["id"] == 1
    assert memory_db.get_book(1).title == "Dune"


def test_create_defaults_missing_fields(client):
    response = client.post("/books", json={"title": "Untitled draft"})
    assert response.status_code == 200
    assert response.json()["author"] == ""
    assert response.json()["published_date"] == ""


def test_books_listed_by_title(client):
    for title in ["Neuromancer", "Dune", "Hyperion"]:
        client.post("/books", json={**DUNE, "title": title})
    titles = [b["title"] for b in client.get("/books").json()]
    assert titles == ["Dune", "Hyperion", "Neuromancer"]


def test_creator_comes_from_header(client):
    client.post("/books", json=DUNE, headers={"X-User-ID": "alice"})
    client.post("/books", json={**DUNE, "title": "Emma"}, headers={"X-User-ID": "bob"})
    client.post("/books", json={**DUNE, "title": "Anonymous"})

    mine = client.get("/books/mine", headers={"X-User-ID": "alice"}).json()
    assert [b["title"] for b in mine] == ["Dune"]
    assert mine[0]["created_by_id"] == "alice"

    nobody = client.get("/books/mine").json()
    assert [b["title"] for b in nobody] == ["Anonymous"]


def test_update_keeps_creator(client, memory_db):
    client.post("/books", json=DUNE, headers={"X-User-ID": "alice"})
    response = client.post("/books/1", json={**DUNE, "description": "Spice"}, headers={"X-User-ID": "mallory"})
    assert response.status_code == 200
    assert response.json()["created_by_id"] == "alice"
    assert memory_db.get_book(1).description == "Spice"


def test_post_delete_alias(client):
    client.post("/books", json=DUNE)
    response = client.post("/books/1:delete")
    assert response.status_code == 200
    assert client.get("/books").json() == []


@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/books/7"),
        ("delete", "/books/7"),
        ("post", "/books/7:delete"),
        ("get", "/books/0"),
    ],
)
def test_unknown_book_is_404(client, method, path):
    response = client.request(method.upper(), path)
    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


def test_update_unknown_book_is_404(client):
    response = client.put("/books/7", json=DUNE)
    assert response.status_code == 404


@pytest.mark.parametrize("bad_id", ["abc", "-1", "1.5", str(2 ** 64)])
def test_malformed_id_is_400(client, bad_id):
    assert client.get(f"/books/{bad_id}").status_code == 400
    assert client.delete(f"/books/{bad_id}").status_code == 400
    assert client.put(f"/books/{bad_id}", json=DUNE).status_code == 400


def test_zero_padded_id_is_accepted(client):
    book_id = client.post("/books", json=DUNE).json()["id"]
    padded = str(book_id).zfill(25)

    response = client.get(f"/books/{padded}")
    assert response.status_code == 200
    assert response.json()["id"] == book_id
    assert client.get("/books/" + "0" * 5000 + str(book_id)).status_code == 200
    assert client.get("/books/" + "0" * 25).status_code == 404


def test_malformed_body_is_400(client):
    response = client.post("/books", json={"title": 123})
    assert response.status_code == 400

    response = client.post("/books", content="not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


class BrokenBookDatabase:
    """Fails every call the way a lost connection would."""

    def _fail(self, op):
        raise StorageError(op, "connection refused") from ConnectionRefusedError("secret-host:27017")

    def list_books(self):
        self._fail("list_books")

    def list_books_created_by(self, creator_id):
        self._fail("list_books_created_by")

    def get_book(self, book_id):
        self._fail("get_book")

    def add_book(self, book):
        self._fail("add_book")

    def delete_book(self, book_id):
        self._fail("delete_book")

    def update_book(self, book):
        self._fail("update_book")

    def close(self):
        pass


def test_storage_error_is_500_without_internals():
    with TestClient(create_app(db=BrokenBookDatabase())) as client:
        for response in (
            client.get("/books"),
            client.get("/books/1"),
            client.post("/books", json=DUNE),
        ):
            assert response.status_code == 500
            assert response.json() == {"detail": "could not access the book database"}
            assert "secret-host" not in response.text


def test_closed_store_is_500(memory_db):
    memory_db.close()
    with TestClient(create_app(db=memory_db)) as client:
        assert client.get("/books").status_code == 500


def test_lifespan_opens_and_closes_configured_store(tmp_path):
    db_file = str(tmp_path / "api.db")
    app = create_app(config=Settings(database_backend="sqlite", database_file=db_file))

    with TestClient(app) as client:
        assert client.post("/books", json=DUNE).status_code == 200
        store = app.state.db

    assert app.state.db is None
    with pytest.raises(StorageError):
        store.list_books()

    # Data written through the API is on disk for the next start.
    with TestClient(app) as client:
        assert [b["title"] for b in client.get("/books").json()] == ["Dune"]


def test_injected_store_is_left_open(memory_db):
    with TestClient(create_app(db=memory_db)):
        pass
    assert memory_db.add_book(Book(title="Still open")) == 1
