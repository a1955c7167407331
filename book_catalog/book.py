from __future__ import annotations

from typing import Any, Mapping

# Known labels; the set is open, any other label is accepted as-is
GENRES = ["Fiction", "Non-fiction", "Academic", "Children", "Reference", "Self-help"]

# Wire name first, Python names after
FIELD_KEYS = {
    "id": ("id",),
    "title": ("title",),
    "author": ("author",),
    "isbn": ("ISBN", "isbn"),
    "published_date": ("publishedDate", "published_date"),
    "genre": ("genre",),
    "copies_available": ("copiesAvailable", "copies_available"),
}


def pick(data: Mapping[str, Any], field: str, default: Any = None) -> Any:
    """Read ``field`` from a wire-shaped or snake_case mapping."""
    for key in FIELD_KEYS[field]:
        if key in data:
            return data[key]
    return default


class BookRecord:
    """A single catalog entry describing one title and its available copy count."""

    def __init__(self, title: str, author: str, isbn: str, published_date: str,
                 genre: str = "", copies_available: int = 0, id: str | None = None) -> None:
        self.id = id
        self.title = title
        self.author = author
        self.isbn = isbn
        self.published_date = published_date
        self.genre = genre
        self.copies_available = copies_available

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def __repr__(self) -> str:
        return f"BookRecord(id={self.id!r}, title={self.title!r}, copies_available={self.copies_available!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BookRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def copy(self, **changes: Any) -> "BookRecord":
        fields = {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "published_date": self.published_date,
            "genre": self.genre,
            "copies_available": self.copies_available,
        }
        fields.update(changes)
        return BookRecord(**fields)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "ISBN": self.isbn,
            "publishedDate": self.published_date,
            "genre": self.genre,
            "copiesAvailable": self.copies_available,
        }

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "BookRecord":
        # No normalization here; that is the validation engine's job
        return BookRecord(
            id=pick(data, "id"),
            title=pick(data, "title", ""),
            author=pick(data, "author", ""),
            isbn=pick(data, "isbn", ""),
            published_date=pick(data, "published_date", ""),
            genre=pick(data, "genre", "") or "",
            copies_available=pick(data, "copies_available", 0),
        )


class LoanRecord:
    """One outstanding borrow of a book by a caller.

    Holds a snapshot of the book as it was when borrowed; later edits to the
    catalog entry do not show up here.
    """

    def __init__(self, book: BookRecord, borrowed_date: str, caller: str) -> None:
        self.book = book
        self.borrowed_date = borrowed_date
        self.caller = caller

    @property
    def book_id(self) -> str | None:
        return self.book.id

    def __repr__(self) -> str:
        return f"LoanRecord(book_id={self.book_id!r}, caller={self.caller!r}, borrowed_date={self.borrowed_date!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LoanRecord):
            return NotImplemented
        return (self.book == other.book and self.borrowed_date == other.borrowed_date
                and self.caller == other.caller)

    def copy(self) -> "LoanRecord":
        return LoanRecord(book=self.book.copy(), borrowed_date=self.borrowed_date, caller=self.caller)

    def to_dict(self) -> dict:
        data = self.book.to_dict()
        data["borrowedDate"] = self.borrowed_date
        return data

    @staticmethod
    def from_dict(data: Mapping[str, Any], caller: str) -> "LoanRecord":
        return LoanRecord(
            book=BookRecord.from_dict(data),
            borrowed_date=data.get("borrowedDate") or data.get("borrowed_date") or "",
            caller=caller,
        )
