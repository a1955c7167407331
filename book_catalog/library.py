import logging
import threading
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .book import BookRecord, LoanRecord
from .errors import DuplicateId, NotBorrowed, NotFound, OutOfStock
from .validation import BookValidator

logger = logging.getLogger(__name__)

# Reference demo catalog; loaded through the validation engine like any other record
DEMO_BOOKS: List[Dict[str, Any]] = [
    {
        "id": "1",
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "ISBN": "9780061120084",
        "publishedDate": "1960-07-11",
        "genre": "Fiction",
        "copiesAvailable": 3,
    },
    {
        "id": "2",
        "title": "Principles of Physics",
        "author": "David Halliday",
        "ISBN": "9780470524633",
        "publishedDate": "2010-06-14",
        "genre": "Academic",
        "copiesAvailable": 5,
    },
    {
        "id": "3",
        "title": "1984",
        "author": "George Orwell",
        "ISBN": "9780451524935",
        "publishedDate": "1949-06-08",
        "genre": "Fiction",
        "copiesAvailable": 2,
    },
]


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Library:
    """In-memory catalog plus each caller's active loans.

    Every public method runs under one lock, so a borrow or return updates
    the copy count and the loan list as a single step. Records handed out
    are copies; nothing outside this class holds a reference to the stored
    state.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._books: Dict[str, BookRecord] = {}
        self._loans: Dict[str, List[LoanRecord]] = {}

    # ------------------------- Catalog operations ------------------------- #
    def add_book(self, record: BookRecord, book_id: Optional[str] = None) -> BookRecord:
        """Insert an already validated record under a new id (or ``book_id`` if given)."""
        with self._lock:
            if book_id is None:
                book_id = self._new_id()
            elif book_id in self._books:
                raise DuplicateId(f"Book with ID {book_id} already exists.", book_id)
            stored = record.copy(id=book_id)
            self._books[book_id] = stored
            logger.info("Added book %s (%s)", book_id, stored.title)
            return stored.copy()

    def update_book(self, book_id: str, record: BookRecord) -> BookRecord:
        """Replace every field except ``id``. Loan snapshots are left as they were."""
        with self._lock:
            if book_id not in self._books:
                raise NotFound(f"Book with ID {book_id} not found", book_id)
            stored = record.copy(id=book_id)
            self._books[book_id] = stored
            logger.info("Updated book %s", book_id)
            return stored.copy()

    def delete_book(self, book_id: str) -> None:
        with self._lock:
            if self._books.pop(book_id, None) is None:
                raise NotFound(f"Book with ID {book_id} not found", book_id)
            orphaned = self._count_loans(book_id)
            if orphaned:
                logger.warning("Deleted book %s with %d outstanding loan(s)", book_id, orphaned)
            else:
                logger.info("Deleted book %s", book_id)

    def get_book(self, book_id: str) -> BookRecord:
        with self._lock:
            book = self._books.get(book_id)
            if book is None:
                raise NotFound(f"Book with ID {book_id} not found", book_id)
            return book.copy()

    def list_books(self) -> List[BookRecord]:
        with self._lock:
            return [b.copy() for b in self._books.values()]

    def search_books(self, query: str = "", genre: str = "") -> List[BookRecord]:
        """Title/author match case-insensitively, ISBN as a plain substring; genre must match exactly."""
        needle = (query or "").strip()
        lowered = needle.lower()
        results = []
        for book in self.list_books():
            if needle and not (
                lowered in book.title.lower()
                or lowered in book.author.lower()
                or needle in book.isbn
            ):
                continue
            if genre and book.genre != genre:
                continue
            results.append(book)
        return results

    def list_genres(self) -> List[str]:
        seen: List[str] = []
        for book in self.list_books():
            if book.genre and book.genre not in seen:
                seen.append(book.genre)
        return seen

    # ------------------------- Circulation ------------------------- #
    def borrow(self, book_id: str, caller: str) -> LoanRecord:
        with self._lock:
            book = self._books.get(book_id)
            if book is None:
                raise NotFound(f"Book with ID {book_id} not found", book_id)
            if book.copies_available <= 0:
                logger.warning("Borrow of %s by %s refused: out of stock", book_id, caller)
                raise OutOfStock("No copies available for borrowing", book_id)

            loan = LoanRecord(book=book.copy(), borrowed_date=_utc_timestamp(), caller=caller)
            book.copies_available -= 1
            self._loans.setdefault(caller, []).append(loan)
            logger.info("%s borrowed %s (%d left)", caller, book_id, book.copies_available)
            return loan.copy()

    def return_book(self, book_id: str, caller: str) -> LoanRecord:
        """Close the caller's oldest loan of ``book_id``.

        If the book has since been deleted the loan is still closed, but there
        is no copy count to restore.
        """
        with self._lock:
            loans = self._loans.get(caller, [])
            index = next((i for i, loan in enumerate(loans) if loan.book_id == book_id), None)
            if index is None:
                logger.warning("Return of %s by %s refused: not borrowed", book_id, caller)
                raise NotBorrowed(f"You haven't borrowed the book with ID {book_id}", book_id)

            loan = loans.pop(index)
            if not loans:
                del self._loans[caller]
            book = self._books.get(book_id)
            if book is not None:
                book.copies_available += 1
                logger.info("%s returned %s (%d left)", caller, book_id, book.copies_available)
            else:
                logger.info("%s returned %s; book no longer in catalog", caller, book_id)
            return loan

    def list_loans(self, caller: str) -> List[LoanRecord]:
        with self._lock:
            return [loan.copy() for loan in self._loans.get(caller, [])]

    def outstanding_loans(self, book_id: str) -> int:
        with self._lock:
            return self._count_loans(book_id)

    def total_copies(self, book_id: str) -> int:
        """Copies on the shelf plus copies out on loan."""
        with self._lock:
            book = self._books.get(book_id)
            if book is None:
                raise NotFound(f"Book with ID {book_id} not found", book_id)
            return book.copies_available + self._count_loans(book_id)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            books = list(self._books.values())
            genres = Counter(b.genre or "Uncategorized" for b in books)
            return {
                "total_books": len(books),
                "unique_authors": len({b.author for b in books}),
                "copies_available": sum(b.copies_available for b in books),
                "active_loans": sum(len(loans) for loans in self._loans.values()),
                "borrowers": len(self._loans),
                "genres": dict(genres),
            }

    # ------------------------- Utilities ------------------------- #
    def _count_loans(self, book_id: str) -> int:
        return sum(1 for loans in self._loans.values() for loan in loans if loan.book_id == book_id)

    def _new_id(self) -> str:
        book_id = uuid.uuid4().hex
        while book_id in self._books:
            book_id = uuid.uuid4().hex
        return book_id


def seed_demo_books(library: Library, validator: BookValidator,
                    books: Iterable[Mapping[str, Any]] = DEMO_BOOKS) -> List[BookRecord]:
    """Validate and insert ``books``, keeping their ids."""
    added = []
    for raw in books:
        record = validator.validate(raw).raise_for_errors()
        added.append(library.add_book(record, book_id=raw.get("id")))
    logger.info("Seeded %d demo books", len(added))
    return added
