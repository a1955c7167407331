"""Record validation engine shared by the API and the CLI.

One implementation serves both entry points: the CLI runs it before sending
anything, the API runs it again before touching the catalog.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, List, Mapping, Optional, Union

from .book import BookRecord, pick
from .errors import ValidationFailed
from .utils.validators import (
    coerce_copies,
    is_past_or_present_date,
    is_valid_isbn,
    meets_academic_copy_minimum,
    normalize_date,
    sanitize_text,
)

TITLE_REQUIRED = "Title is required"
AUTHOR_REQUIRED = "Author is required"
ISBN_REQUIRED = "ISBN is required"
ISBN_INVALID = "Invalid ISBN format (must be 10 or 13 digits)"
DATE_REQUIRED = "Published date is required"
DATE_IN_FUTURE = "Published date cannot be in the future"
ACADEMIC_COPIES = "Academic books must have at least 5 copies available"
NEGATIVE_COPIES = "Copies available cannot be negative"


@dataclass
class ValidationResult:
    valid: bool
    record: BookRecord
    errors: List[str] = field(default_factory=list)

    def raise_for_errors(self) -> BookRecord:
        """Return the normalized record, or raise ``ValidationFailed``."""
        if not self.valid:
            raise ValidationFailed(self.errors)
        return self.record


class BookValidator:
    """Normalizes a raw book record and checks it against the catalog rules.

    ``today`` is a zero-argument callable giving the current calendar date; it
    is the only outside input, so a fixed clock makes results reproducible.
    """

    def __init__(self, today: Optional[Callable[[], date]] = None) -> None:
        self._today = today or date.today

    def normalize(self, raw: Union[Mapping[str, Any], BookRecord]) -> BookRecord:
        data = raw.to_dict() if isinstance(raw, BookRecord) else raw
        genre = pick(data, "genre")
        if genre is None:
            genre = ""
        elif not isinstance(genre, str):
            genre = str(genre)
        return BookRecord(
            id=pick(data, "id"),
            title=sanitize_text(pick(data, "title")),
            author=sanitize_text(pick(data, "author")),
            isbn=sanitize_text(pick(data, "isbn")),
            published_date=normalize_date(pick(data, "published_date")),
            genre=genre,
            copies_available=coerce_copies(pick(data, "copies_available")),
        )

    def validate(self, raw: Union[Mapping[str, Any], BookRecord]) -> ValidationResult:
        record = self.normalize(raw)
        errors: List[str] = []

        if not record.title:
            errors.append(TITLE_REQUIRED)
        if not record.author:
            errors.append(AUTHOR_REQUIRED)

        if not record.isbn:
            errors.append(ISBN_REQUIRED)
        elif not is_valid_isbn(record.isbn):
            errors.append(ISBN_INVALID)

        if not record.published_date:
            errors.append(DATE_REQUIRED)
        elif not is_past_or_present_date(record.published_date, today=self._today()):
            errors.append(DATE_IN_FUTURE)

        if not meets_academic_copy_minimum(record.genre, record.copies_available):
            errors.append(ACADEMIC_COPIES)
        if record.copies_available < 0:
            errors.append(NEGATIVE_COPIES)

        return ValidationResult(valid=not errors, record=record, errors=errors)


default_validator = BookValidator()


def validate_book(raw: Union[Mapping[str, Any], BookRecord]) -> ValidationResult:
    return default_validator.validate(raw)
