import json
import os
from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bookcase.book import Book
from bookcase.services.covers import describe_cover

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BOOKCASE_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _stars(rating: int) -> str:
    return "★" * rating + "☆" * (5 - rating)


def _summary(book: Book) -> dict:
    return {
        "title": book.title,
        "author": book.author,
        "rating": book.rating,
        "isbn": book.isbn,
        "notes": book.notes,
        "has_cover": book.has_cover,
    }


def print_book_list(books: Sequence[Book], search_filter: str = "") -> None:
    """Print the displayed books with their index in the current output mode.
    - plain: '[index] Title by Author' lines, or 'No books in catalog.'
    - json: JSON array of book summaries including the index
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        if search_filter:
            print(f"No books match '{search_filter}'.")
        else:
            print("No books in catalog.")
        return

    if mode == "json":
        payload = [dict(index=i, **_summary(b)) for i, b in enumerate(books)]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        title = f"📚 Books matching '{search_filter}'" if search_filter else "📚 Books"
        table = Table(title=title, show_lines=False, header_style="bold cyan")
        table.add_column("#", style="dim", justify="right")
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Rating", style="yellow", no_wrap=True)
        table.add_column("ISBN", style="magenta", no_wrap=True)
        for i, b in enumerate(books):
            table.add_row(str(i), b.title, b.author, _stars(b.rating), b.isbn)
        _console.print(table)
    else:
        for i, b in enumerate(books):
            print(f"[{i}] {b.title} by {b.author}")


def print_book_detail(book: Book) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(_summary(book), ensure_ascii=False))
    elif mode == "rich":
        content = (
            f"[bold]Title:[/] {book.title}\n"
            f"[bold]Author:[/] {book.author}\n"
            f"[bold]Rating:[/] {_stars(book.rating)}\n"
            f"[bold]ISBN:[/] {book.isbn or '-'}\n"
            f"[bold]Cover:[/] {describe_cover(book.cover)}\n"
            f"[bold]Notes:[/] {book.notes or '-'}"
        )
        _console.print(Panel.fit(content, title="📖 Book", border_style="blue"))
    else:
        print(f"Title: {book.title}")
        print(f"Author: {book.author}")
        print(f"Rating: {book.rating}")
        print(f"ISBN: {book.isbn}")
        print(f"Cover: {describe_cover(book.cover)}")
        print(f"Notes: {book.notes}")
