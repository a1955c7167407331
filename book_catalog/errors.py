from typing import List, Optional


class CatalogError(Exception):
    """Base class for expected catalog outcomes (never defects)."""

    def __init__(self, message: str, book_id: Optional[str] = None) -> None:
        self.book_id = book_id
        super().__init__(message)

    @property
    def messages(self) -> List[str]:
        return [str(self)]


class NotFound(CatalogError, LookupError):
    pass


class DuplicateId(CatalogError, ValueError):
    pass


class OutOfStock(CatalogError):
    pass


class NotBorrowed(CatalogError, LookupError):
    pass


class ValidationFailed(CatalogError, ValueError):
    """A record failed validation. ``messages`` keeps every rule's message in order."""

    def __init__(self, messages: List[str]) -> None:
        self._messages = list(messages)
        super().__init__("; ".join(self._messages))

    @property
    def messages(self) -> List[str]:
        return list(self._messages)
