import os
import subprocess
import sys
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import httpx
import typer

from .book import GENRES
from .config import settings
from .errors import CatalogError
from .services.http_client import CatalogClient
from .utils.ui_helpers import (
    print_book_detail,
    print_errors,
    print_list_result,
    print_loans_result,
    print_stats_result,
    set_output_mode,
)
from .validation import BookValidator

validator = BookValidator()

app = typer.Typer(help=f"{settings.app_name} CLI")


def get_client(caller: Optional[str] = None) -> CatalogClient:
    """Client for the running catalog API."""
    return CatalogClient(caller=caller)


def _client(ctx: typer.Context) -> CatalogClient:
    return get_client((ctx.obj or {}).get("caller"))


@contextmanager
def _api_errors(title: str) -> Iterator[None]:
    try:
        yield
    except CatalogError as e:
        print_errors(e.messages, title)
        raise typer.Exit(code=1)
    except httpx.HTTPError as e:
        print_errors([f"Catalog service unreachable: {e}"], title)
        raise typer.Exit(code=1)


def _check(raw: Dict[str, Any]):
    """Run the validation engine locally; nothing is sent when it fails."""
    result = validator.validate(raw)
    if not result.valid:
        print_errors(result.errors)
        raise typer.Exit(code=1)
    return result.record


def _fields(title, author, isbn, published_date, genre, copies) -> Dict[str, Any]:
    given = {
        "title": title,
        "author": author,
        "ISBN": isbn,
        "publishedDate": published_date,
        "genre": genre,
        "copiesAvailable": copies,
    }
    return {k: v for k, v in given.items() if v is not None}


GENRE_HELP = f"Genre label, e.g. {', '.join(GENRES)}"


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output format: plain | json | rich (default: plain)"),
    caller: Optional[str] = typer.Option(None, "--caller", "-c", help="Caller context for borrow/return"),
):
    """Global options (output mode, caller context)."""
    if output:
        set_output_mode(output)
    ctx.obj = {"caller": caller}


@app.command("list")
def cli_list(
    ctx: typer.Context,
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Match title, author or ISBN"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help="Only this genre"),
):
    """List books in the catalog."""
    with _api_errors("Could not list books"):
        with _client(ctx) as client:
            books = client.list_books(query=query, genre=genre)
    print_list_result(books)


@app.command("show")
def cli_show(ctx: typer.Context, book_id: str):
    """Show one book."""
    with _api_errors("Could not show book"):
        with _client(ctx) as client:
            book = client.get_book(book_id)
    print_book_detail(book)


@app.command("add")
def cli_add(
    ctx: typer.Context,
    title: str = typer.Option("", "--title", "-t"),
    author: str = typer.Option("", "--author", "-a"),
    isbn: str = typer.Option("", "--isbn", "-i", help="10 or 13 digits"),
    published_date: str = typer.Option("", "--published-date", "-d", help="e.g. 1949-06-08"),
    genre: str = typer.Option("", "--genre", "-g", help=GENRE_HELP),
    copies: str = typer.Option("1", "--copies", "-n", help="Copies available"),
):
    """Validate a new book locally, then add it."""
    record = _check(_fields(title, author, isbn, published_date, genre, copies))
    with _api_errors("Could not add book"):
        with _client(ctx) as client:
            book = client.add_book(record)
    print(f"Added: {book.title} by {book.author} (ID: {book.id})")


@app.command("edit")
def cli_edit(
    ctx: typer.Context,
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    isbn: Optional[str] = typer.Option(None, "--isbn", "-i"),
    published_date: Optional[str] = typer.Option(None, "--published-date", "-d"),
    genre: Optional[str] = typer.Option(None, "--genre", "-g", help=GENRE_HELP),
    copies: Optional[str] = typer.Option(None, "--copies", "-n"),
):
    """Change fields of a book; unspecified fields keep their current value."""
    with _api_errors("Could not edit book"):
        with _client(ctx) as client:
            current = client.get_book(book_id)
            raw = current.to_dict()
            raw.update(_fields(title, author, isbn, published_date, genre, copies))
            record = _check(raw)
            book = client.update_book(book_id, record)
    print(f"Updated: {book.title} by {book.author} (ID: {book.id})")


@app.command("remove")
def cli_remove(ctx: typer.Context, book_id: str):
    """Delete a book from the catalog."""
    with _api_errors("Could not remove book"):
        with _client(ctx) as client:
            client.delete_book(book_id)
    print(f"Book with ID {book_id} has been removed.")


@app.command("borrow")
def cli_borrow(ctx: typer.Context, book_id: str):
    """Borrow one copy of a book."""
    with _api_errors("Could not borrow book"):
        with _client(ctx) as client:
            loan = client.borrow(book_id)
    print(f"Borrowed: {loan.book.title} by {loan.book.author}")


@app.command("return")
def cli_return(ctx: typer.Context, book_id: str):
    """Return a borrowed copy."""
    with _api_errors("Could not return book"):
        with _client(ctx) as client:
            client.return_book(book_id)
    print(f"Returned book with ID {book_id}.")


@app.command("loans")
def cli_loans(ctx: typer.Context):
    """List the books the caller has borrowed."""
    with _api_errors("Could not list loans"):
        with _client(ctx) as client:
            loans = client.list_loans()
    print_loans_result(loans)


@app.command("genres")
def cli_genres(ctx: typer.Context):
    """List the genres present in the catalog."""
    with _api_errors("Could not list genres"):
        with _client(ctx) as client:
            genres: List[str] = client.list_genres()
    if not genres:
        print("No genres in catalog.")
        return
    for genre in genres:
        print(f"- {genre}")


@app.command("stats")
def cli_stats(ctx: typer.Context):
    """Show catalog statistics."""
    with _api_errors("Could not load statistics"):
        with _client(ctx) as client:
            stats = client.get_statistics()
    print_stats_result(stats)


@app.command("validate")
def cli_validate(
    title: str = typer.Option("", "--title", "-t"),
    author: str = typer.Option("", "--author", "-a"),
    isbn: str = typer.Option("", "--isbn", "-i"),
    published_date: str = typer.Option("", "--published-date", "-d"),
    genre: str = typer.Option("", "--genre", "-g", help=GENRE_HELP),
    copies: str = typer.Option("1", "--copies", "-n"),
):
    """Check a record against the catalog rules without contacting the API."""
    record = _check(_fields(title, author, isbn, published_date, genre, copies))
    print("Record is valid.")
    print_book_detail(record)


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Run the catalog API with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.api_port)
    print(f"Starting catalog API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "book_catalog.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False, env=os.environ.copy())
    except FileNotFoundError:
        print_errors(["uvicorn could not be started; is it installed?"], "Error")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
