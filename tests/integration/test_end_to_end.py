import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

from book_catalog import main
from book_catalog.api import app
from book_catalog.main import app as cli
from book_catalog.services.http_client import CatalogClient

# Mark this module as integration
pytestmark = pytest.mark.integration

runner = CliRunner()


@pytest.fixture
def wired(client, monkeypatch):
    monkeypatch.setattr(main, "get_client",
                        lambda caller=None: CatalogClient(client=TestClient(app), caller=caller))
    return client


def test_submit_valid_record(wired):
    response = wired.post("/api/books", json={
        "title": "1984",
        "author": "George Orwell",
        "ISBN": "9780451524935",
        "publishedDate": "1949-06-08",
        "genre": "Fiction",
        "copiesAvailable": 2,
    })
    assert response.status_code == 201
    assert response.json()["publishedDate"] == "1949-06-08"


def test_submit_invalid_record(wired):
    response = wired.post("/api/books", json={
        "title": "X",
        "author": "Y",
        "ISBN": "123",
        "publishedDate": "2099-01-01",
        "genre": "Academic",
        "copiesAvailable": 1,
    })
    assert response.status_code == 400
    assert response.json()["errorComponent"]["props"]["messages"] == [
        "Invalid ISBN format (must be 10 or 13 digits)",
        "Published date cannot be in the future",
        "Academic books must have at least 5 copies available",
    ]


def test_full_book_lifecycle(wired, seeded_lib):
    result = runner.invoke(cli, [
        "add", "--title", "Principia", "--author", "Isaac Newton", "--isbn", "9780520088177",
        "--published-date", "1687-07-05", "--genre", "Academic", "--copies", "5",
    ])
    assert result.exit_code == 0
    book = next(b for b in seeded_lib.list_books() if b.title == "Principia")

    assert runner.invoke(cli, ["--caller", "ada", "borrow", book.id]).exit_code == 0
    assert runner.invoke(cli, ["--caller", "ada", "borrow", book.id]).exit_code == 0
    assert seeded_lib.get_book(book.id).copies_available == 3
    assert seeded_lib.total_copies(book.id) == 5

    # staff edit does not disturb outstanding loans
    assert runner.invoke(cli, ["edit", book.id, "--copies", "10"]).exit_code == 0
    assert len(seeded_lib.list_loans("ada")) == 2

    assert runner.invoke(cli, ["--caller", "ada", "return", book.id]).exit_code == 0
    assert seeded_lib.get_book(book.id).copies_available == 11
    assert len(seeded_lib.list_loans("ada")) == 1

    assert runner.invoke(cli, ["remove", book.id]).exit_code == 0
    assert runner.invoke(cli, ["--caller", "ada", "return", book.id]).exit_code == 0
    assert seeded_lib.list_loans("ada") == []
