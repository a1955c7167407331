import math
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

ACADEMIC_GENRE = "Academic"
ACADEMIC_MIN_COPIES = 5

_ISBN_RE = re.compile(r"[0-9]{9}[0-9Xx]|[0-9]{13}")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_YEAR_RE = re.compile(r"^\d{4}$")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

# Tried in order after the ISO forms
_DATE_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)


class TextValidator:
    """Sanitization for free-text book fields."""

    @staticmethod
    def sanitize_text(text: Any) -> str:
        if text is None:
            return ""
        if not isinstance(text, str):
            text = str(text)
        return text.strip()


class ISBNValidator:
    """Format check for ISBN-10 / ISBN-13.

    Only the shape is checked: 13 digits, or 9 digits followed by a digit or
    an ``X``. No checksum is computed.
    """

    @staticmethod
    def is_valid_isbn(isbn: Optional[str]) -> bool:
        if not isbn or not isinstance(isbn, str):
            return False
        return _ISBN_RE.fullmatch(isbn) is not None


class DateValidator:
    """Calendar date normalization and the published-date rule."""

    @staticmethod
    def _parse(value: Any) -> Optional[date]:
        if value is None:
            return None
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc)
            return value.date()
        if isinstance(value, date):
            return value
        if not isinstance(value, str):
            return None

        s = value.strip()
        if not s:
            return None

        try:
            m = _ISO_DATE_RE.match(s)
            if m:
                return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            m = _YEAR_MONTH_RE.match(s)
            if m:
                return date(int(m.group(1)), int(m.group(2)), 1)
            if _YEAR_RE.match(s):
                return date(int(s), 1, 1)
        except ValueError:
            return None

        if "T" in s or ":" in s:
            stamp = s[:-1] + "+00:00" if s.endswith(("Z", "z")) else s
            try:
                parsed = datetime.fromisoformat(stamp)
            except ValueError:
                parsed = None
            if parsed is not None:
                if parsed.tzinfo is not None:
                    parsed = parsed.astimezone(timezone.utc)
                return parsed.date()

        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
        return None

    @staticmethod
    def normalize_date(value: Any) -> str:
        """Return ``YYYY-MM-DD`` for anything that parses as a date, else ``""``.

        Unparseable input collapses to the empty string, so callers report it
        as a missing date rather than a malformed one.
        """
        parsed = DateValidator._parse(value)
        if parsed is None:
            return ""
        return parsed.isoformat()

    @staticmethod
    def is_past_or_present_date(normalized: Any, today: Optional[date] = None) -> bool:
        # Compare calendar days, never instants
        if not normalized or not isinstance(normalized, str):
            return False
        try:
            parsed = date.fromisoformat(normalized)
        except ValueError:
            return False
        return parsed <= (today or date.today())


class CopiesValidator:
    """Copy-count coercion and the academic minimum."""

    @staticmethod
    def coerce_copies(value: Any) -> int:
        """Best-effort integer for ``copies_available``; anything unusable is 0."""
        if value is None or isinstance(value, bool):
            return 0
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if math.isfinite(value) else 0
        if isinstance(value, str):
            m = _LEADING_INT_RE.match(value)
            if not m:
                return 0
            try:
                return int(m.group(1))
            except ValueError:
                # digit run past the interpreter's int conversion limit
                return 0
        return 0

    @staticmethod
    def meets_academic_copy_minimum(genre: Any, copies: int) -> bool:
        return genre != ACADEMIC_GENRE or copies >= ACADEMIC_MIN_COPIES


sanitize_text: Callable[[Any], str] = TextValidator.sanitize_text
normalize_date: Callable[[Any], str] = DateValidator.normalize_date
is_valid_isbn = ISBNValidator.is_valid_isbn
is_past_or_present_date = DateValidator.is_past_or_present_date
coerce_copies = CopiesValidator.coerce_copies
meets_academic_copy_minimum = CopiesValidator.meets_academic_copy_minimum
