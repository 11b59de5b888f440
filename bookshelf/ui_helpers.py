import json
import os
from typing import List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bookshelf.book import Book

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BOOKSHELF_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_list_result(books: List[Book]) -> None:
    """Print books in the current output mode.
    - plain: 'ID - Title by Author' lines, or 'No books found.'
    - json: JSON array of full book objects
    - rich: Rich table
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
        return

    if not books:
        print("No books found.")
        return

    if mode == "rich":
        table = Table(title="Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Published", style="white")
        for b in books:
            table.add_row(str(b.id), b.title, b.author, b.published_date)
        _console.print(table)
    else:
        for b in books:
            print(b)


def print_book_result(book: Book) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Author:[/] {book.author}\n"
            f"[bold]Published:[/] {book.published_date}\n"
            f"[bold]Created by:[/] {book.created_by_id or '-'}\n\n"
            f"{book.description}"
        )
        _console.print(Panel.fit(content, title=f"{book.id}: {book.title}", border_style="blue"))
    else:
        print(f"ID: {book.id}")
        print(f"Title: {book.title}")
        print(f"Author: {book.author}")
        print(f"Published: {book.published_date}")
        print(f"Description: {book.description}")
        if book.created_by_id:
            print(f"Created by: {book.created_by_id}")
