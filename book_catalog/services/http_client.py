import logging
from typing import Any, Dict, List, Optional, Type

import httpx

from ..book import BookRecord, LoanRecord
from ..config import settings
from ..errors import CatalogError, NotBorrowed, NotFound, OutOfStock, ValidationFailed

logger = logging.getLogger(__name__)


class CatalogClient:
    """Synchronous client for the catalog REST API.

    Error envelopes come back as the same exceptions the ledger raises, so
    callers handle local and remote failures alike. Nothing is retried.
    """

    def __init__(self, base_url: Optional[str] = None, caller: Optional[str] = None,
                 timeout: Optional[float] = None, client: Optional[httpx.Client] = None) -> None:
        self.caller = caller or settings.default_caller
        if client is None:
            client = httpx.Client(
                base_url=base_url or settings.api_base_url,
                timeout=httpx.Timeout(timeout or settings.http_timeout, connect=5.0),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        self._client = client

    # ------------------------- Books ------------------------- #
    def list_books(self, query: Optional[str] = None, genre: Optional[str] = None) -> List[BookRecord]:
        params = {k: v for k, v in (("q", query), ("genre", genre)) if v}
        resp = self._request("GET", "/api/books", params=params)
        return [BookRecord.from_dict(item) for item in resp.json()]

    def get_book(self, book_id: str) -> BookRecord:
        resp = self._request("GET", f"/api/books/{book_id}")
        return BookRecord.from_dict(resp.json())

    def add_book(self, record: BookRecord) -> BookRecord:
        resp = self._request("POST", "/api/books", json=self._payload(record), bad_request=ValidationFailed)
        return BookRecord.from_dict(resp.json())

    def update_book(self, book_id: str, record: BookRecord) -> BookRecord:
        resp = self._request("PUT", f"/api/books/{book_id}", json=self._payload(record),
                             bad_request=ValidationFailed)
        return BookRecord.from_dict(resp.json())

    def delete_book(self, book_id: str) -> None:
        self._request("DELETE", f"/api/books/{book_id}")

    # ------------------------- Circulation ------------------------- #
    def borrow(self, book_id: str) -> LoanRecord:
        resp = self._request("POST", f"/api/books/{book_id}/borrow", bad_request=OutOfStock)
        return LoanRecord.from_dict(resp.json(), caller=self.caller)

    def return_book(self, book_id: str) -> None:
        self._request("POST", f"/api/books/{book_id}/return", not_found=NotBorrowed)

    def list_loans(self) -> List[LoanRecord]:
        resp = self._request("GET", "/api/user/books")
        return [LoanRecord.from_dict(item, caller=self.caller) for item in resp.json()]

    # ------------------------- Catalog info ------------------------- #
    def list_genres(self) -> List[str]:
        return self._request("GET", "/api/genres").json()

    def get_statistics(self) -> Dict[str, Any]:
        return self._request("GET", "/api/stats").json()

    # ------------------------- Plumbing ------------------------- #
    @staticmethod
    def _payload(record: BookRecord) -> Dict[str, Any]:
        data = record.to_dict()
        data.pop("id", None)
        return data

    @staticmethod
    def _messages(resp: httpx.Response) -> List[str]:
        try:
            body = resp.json()
        except ValueError:
            return [resp.text or f"HTTP {resp.status_code}"]
        if isinstance(body, dict):
            messages = body.get("errorComponent", {}).get("props", {}).get("messages")
            if isinstance(messages, list):
                return [str(m) for m in messages]
            if "detail" in body:
                return [str(body["detail"])]
        return [str(body)]

    def _request(self, method: str, path: str, *,
                 bad_request: Type[CatalogError] = CatalogError,
                 not_found: Type[CatalogError] = NotFound,
                 **kwargs: Any) -> httpx.Response:
        headers = {"X-Caller-Id": self.caller}
        resp = self._client.request(method, path, headers=headers, **kwargs)
        if resp.is_success:
            return resp

        messages = self._messages(resp)
        logger.debug("%s %s -> %s %s", method, path, resp.status_code, messages)
        if resp.status_code == 404:
            raise not_found("; ".join(messages))
        if resp.status_code == 400 and bad_request is ValidationFailed:
            raise ValidationFailed(messages)
        if resp.status_code == 400:
            raise bad_request("; ".join(messages))
        resp.raise_for_status()
        return resp

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "CatalogClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
