import subprocess
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from bookshelf.book import Book
from bookshelf.config import configure_logging, settings
from bookshelf.database import BookDatabase, NotFoundError, StorageError, open_database
from bookshelf.ui_helpers import print_book_result, print_list_result, set_output_mode

app = typer.Typer(help="Bookshelf CLI")


@contextmanager
def _database() -> Iterator[BookDatabase]:
    """Open the configured store for one command; report failures as exit code 1."""
    try:
        db = open_database(settings)
    except StorageError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    try:
        yield db
    except NotFoundError as e:
        print(f"Not found: {e}")
        raise typer.Exit(code=1)
    except StorageError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    finally:
        db.close()


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level, e.g. DEBUG"),
):
    """Global options for the CLI."""
    configure_logging(log_level or "WARNING")
    if output:
        set_output_mode(output)


@app.command("list")
def cli_list(mine: Optional[str] = typer.Option(None, "--mine", help="Only books created by this user id")):
    """List books ordered by title."""
    with _database() as db:
        books = db.list_books() if mine is None else db.list_books_created_by(mine)
    print_list_result(books)


@app.command("show")
def cli_show(book_id: int):
    """Show a single book."""
    with _database() as db:
        book = db.get_book(book_id)
    print_book_result(book)


@app.command("add")
def cli_add(
    title: str,
    author: str,
    published_date: str = typer.Option("", "--published-date", "-p", help="Free-form publication date"),
    description: str = typer.Option("", "--description", "-d"),
    created_by: str = typer.Option("", "--created-by", help="Creator user id"),
):
    """Add a book; the store assigns its id."""
    book = Book(
        title=title,
        author=author,
        published_date=published_date,
        description=description,
        created_by_id=created_by,
    )
    with _database() as db:
        book_id = db.add_book(book)
    print(f"Added book {book_id}: {title} by {author}")


@app.command("update")
def cli_update(
    book_id: int,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    published_date: Optional[str] = typer.Option(None, "--published-date", "-p"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
):
    """Update a book; fields not given keep their stored values."""
    with _database() as db:
        book = db.get_book(book_id)
        if title is not None:
            book.title = title
        if author is not None:
            book.author = author
        if published_date is not None:
            book.published_date = published_date
        if description is not None:
            book.description = description
        db.update_book(book)
    print(f"Updated book {book_id}: {book.title} by {book.author}")


@app.command("delete")
def cli_delete(book_id: int):
    """Delete a book."""
    with _database() as db:
        db.delete_book(book_id)
    print(f"Book {book_id} has been deleted.")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port (default: PORT)"),
):
    """Run the HTTP API with uvicorn."""
    host = host or settings.api_host
    port = port or int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "bookshelf.api:app",
        "--host", host,
        "--port", str(port),
    ]
    result = subprocess.run(args)
    if result.returncode:
        raise typer.Exit(code=result.returncode)


if __name__ == "__main__":
    app()
