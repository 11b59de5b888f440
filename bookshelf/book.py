from __future__ import annotations

from dataclasses import asdict, dataclass, replace

FIELDS = ("title", "author", "published_date", "description", "created_by_id")


@dataclass
class Book:
    """A single book record.

    ``id`` is assigned by the store; ``0`` means "not stored yet".
    ``published_date`` is free-form text. An empty ``created_by_id`` means the
    book has no recorded creator.
    """

    id: int = 0
    title: str = ""
    author: str = ""
    published_date: str = ""
    description: str = ""
    created_by_id: str = ""

    def __str__(self) -> str:
        return f"{self.id} - {self.title} by {self.author}"

    def with_id(self, book_id: int) -> "Book":
        return replace(self, id=book_id)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_document(self) -> dict:
        """Stored form: every field except the identifier, which is the key."""
        return {name: getattr(self, name) for name in FIELDS}

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # Stores may hand back NULLs for optional text columns
        return Book(
            id=int(data.get("id") or 0),
            title=data.get("title") or "",
            author=data.get("author") or "",
            published_date=data.get("published_date") or "",
            description=data.get("description") or "",
            created_by_id=data.get("created_by_id") or "",
        )
