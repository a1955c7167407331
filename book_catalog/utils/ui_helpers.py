import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Controls CLI output; allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "CATALOG_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False))


def print_list_result(books: List[Any]) -> None:
    """Print the catalog in the current output mode.
    - plain: 'ID - Title by Author (ISBN: ..., Genre, N available)' lines, or 'No books in catalog.'
    - json: the wire records
    - rich: a Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in catalog.")
        return

    if mode == "json":
        _print_json([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title="📚 Catalog", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("ISBN", no_wrap=True)
        table.add_column("Genre")
        table.add_column("Copies", justify="right")
        for b in books:
            table.add_row(b.id, b.title, b.author, b.isbn, b.genre or "Uncategorized", str(b.copies_available))
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author} "
                  f"(ISBN: {b.isbn}, {b.genre or 'Uncategorized'}, {b.copies_available} available)")


def print_book_detail(book: Any) -> None:
    mode = get_output_mode()
    if mode == "json":
        _print_json(book.to_dict())
        return

    lines = [
        f"Title: {book.title}",
        f"Author: {book.author}",
        f"ISBN: {book.isbn}",
        f"Published: {book.published_date}",
        f"Genre: {book.genre or 'Uncategorized'}",
        f"Copies available: {book.copies_available}",
    ]
    if book.id:
        lines.insert(0, f"ID: {book.id}")
    if mode == "rich":
        _console.print(Panel.fit("\n".join(lines), title="📖 Book", border_style="green"))
    else:
        print("\n".join(lines))


def print_loans_result(loans: List[Any]) -> None:
    mode = get_output_mode()

    if not loans:
        print("No borrowed books.")
        return

    if mode == "json":
        _print_json([loan.to_dict() for loan in loans])
    elif mode == "rich":
        table = Table(title="📗 Borrowed", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Borrowed", no_wrap=True)
        for loan in loans:
            table.add_row(loan.book.id, loan.book.title, loan.book.author, loan.borrowed_date)
        _console.print(table)
    else:
        for loan in loans:
            print(f"{loan.book.id} - {loan.book.title} by {loan.book.author} (borrowed {loan.borrowed_date})")


def print_stats_result(stats: Dict[str, Any]) -> None:
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        _print_json(stats)
        return

    lines = [
        f"Total Books: {stats.get('total_books', 0)}",
        f"Unique Authors: {stats.get('unique_authors', 0)}",
        f"Copies Available: {stats.get('copies_available', 0)}",
        f"Active Loans: {stats.get('active_loans', 0)}",
    ]
    if mode == "rich":
        _console.print(Panel.fit("\n".join(lines), title="📊 Stats", border_style="blue"))
    else:
        print("\n".join(lines))


def print_errors(messages: List[str], title: str = "Validation failed") -> None:
    """Print error messages in the order given."""
    mode = get_output_mode()
    if mode == "json":
        _print_json({"success": False, "messages": list(messages)})
    elif mode == "rich":
        body = "\n".join(f"• {m}" for m in messages)
        _console.print(Panel.fit(body, title=f"❌ {title}", border_style="red"))
    else:
        print(f"{title}:")
        for m in messages:
            print(f"- {m}")
