import os
from datetime import date

import pytest
from fastapi.testclient import TestClient

from book_catalog.api import app, get_library, get_validator
from book_catalog.library import Library, seed_demo_books
from book_catalog.utils.ui_helpers import OUTPUT_MODE_ENV
from book_catalog.validation import BookValidator

FIXED_TODAY = date(2024, 6, 1)


@pytest.fixture
def validator():
    # Pinned clock so "future" is the same on every run
    return BookValidator(today=lambda: FIXED_TODAY)


@pytest.fixture
def lib():
    return Library()


@pytest.fixture
def seeded_lib(lib, validator):
    seed_demo_books(lib, validator)
    return lib


@pytest.fixture
def valid_book():
    return {
        "title": "1984",
        "author": "George Orwell",
        "ISBN": "9780451524935",
        "publishedDate": "1949-06-08",
        "genre": "Fiction",
        "copiesAvailable": 2,
    }


@pytest.fixture
def client(seeded_lib, validator):
    # Each test gets its own ledger behind the shared app
    app.dependency_overrides[get_library] = lambda: seeded_lib
    app.dependency_overrides[get_validator] = lambda: validator
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _reset_output_mode():
    yield
    os.environ.pop(OUTPUT_MODE_ENV, None)
