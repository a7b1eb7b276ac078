import asyncio
import dataclasses
import logging
from typing import Optional

import typer
from rich.console import Console

from bookcase.book import Book
from bookcase.catalog import CatalogStore, get_catalog
from bookcase.config import settings
from bookcase.errors import CatalogIndexError, ConsistencyError, DecodeError
from bookcase.services.covers import load_cover_file
from bookcase.services.google_books_service import GoogleBooksService, LookupResult
from bookcase.services.http_client import cleanup_http_client
from bookcase.ui_helpers import print_book_detail, print_book_list, set_output_mode

console = Console()

app = typer.Typer(help="Bookcase: a personal book catalog")


def _catalog(search: Optional[str] = None, sort: Optional[str] = None) -> CatalogStore:
    catalog = get_catalog()
    if sort:
        try:
            catalog.sort_order = sort
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--sort")
    catalog.search_filter = search or ""
    return catalog


def _read_cover(path: Optional[str]) -> Optional[bytes]:
    if not path:
        return None
    try:
        return load_cover_file(path)
    except DecodeError as e:
        print(f"Invalid cover: {e}")
        raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show informational log messages"),
):
    """Global CLI options (output mode, logging)."""
    logging.basicConfig(
        level=logging.INFO if verbose else getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if output:
        set_output_mode(output)


@app.command("list")
def cli_list(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Only show books whose title or author contains this text"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Sort by 'title' or 'author'"),
):
    """List the books in display order."""
    catalog = _catalog(search, sort)
    books = catalog.filtered_items if catalog.is_filtering else catalog.items
    print_book_list(books, catalog.search_filter)


@app.command("show")
def cli_show(
    index: int = typer.Argument(..., help="Index as shown by 'list'"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search text the index refers to"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Sort order the index refers to"),
):
    """Show a single book."""
    catalog = _catalog(search, sort)
    try:
        book = catalog.get(index)
    except CatalogIndexError as e:
        print(str(e))
        raise typer.Exit(code=1)
    print_book_detail(book)


@app.command("add")
def cli_add(
    title: str = typer.Argument(..., help="Book title"),
    author: str = typer.Argument("", help="Book author"),
    rating: int = typer.Option(0, "--rating", "-r", min=0, max=5, help="Rating from 0 to 5"),
    isbn: str = typer.Option("", "--isbn", help="ISBN"),
    notes: str = typer.Option("", "--notes", "-n", help="Free text notes"),
    cover: Optional[str] = typer.Option(None, "--cover", "-c", help="Path to a cover image"),
):
    """Add a book manually."""
    book = Book(title=title.strip(), author=author.strip(), rating=rating, isbn=isbn.strip(), notes=notes,
                cover=_read_cover(cover))
    if not book.is_complete():
        print("A book needs a title.")
        raise typer.Exit(code=1)
    get_catalog().add(book)
    print(f"Successfully added: {book.title} by {book.author}")


@app.command("update")
def cli_update(
    index: int = typer.Argument(..., help="Index as shown by 'list'"),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    author: Optional[str] = typer.Option(None, "--author", "-a"),
    rating: Optional[int] = typer.Option(None, "--rating", "-r", min=0, max=5),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n"),
    cover: Optional[str] = typer.Option(None, "--cover", "-c", help="Path to a new cover image"),
    clear_cover: bool = typer.Option(False, "--clear-cover", help="Remove the cover"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search text the index refers to"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Sort order the index refers to"),
):
    """Edit the book at INDEX."""
    catalog = _catalog(search, sort)
    try:
        current = catalog.get(index)
    except CatalogIndexError as e:
        print(str(e))
        raise typer.Exit(code=1)

    changes = {
        name: value
        for name, value in (("title", title), ("author", author), ("rating", rating), ("isbn", isbn), ("notes", notes))
        if value is not None
    }
    if cover:
        changes["cover"] = _read_cover(cover)
    elif clear_cover:
        changes["cover"] = None
    if not changes:
        print("Nothing to update. Provide at least one field.")
        raise typer.Exit(code=1)

    edited = dataclasses.replace(current, **changes)
    if not edited.is_complete():
        print("A book needs a title.")
        raise typer.Exit(code=1)
    try:
        catalog.update(index, edited)
    except (CatalogIndexError, ConsistencyError) as e:
        print(f"Could not update book: {e}")
        raise typer.Exit(code=1)
    print(f"Updated: {edited.title} by {edited.author}")


@app.command("remove")
def cli_remove(
    index: int = typer.Argument(..., help="Index as shown by 'list'"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search text the index refers to"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Sort order the index refers to"),
):
    """Remove the book at INDEX."""
    catalog = _catalog(search, sort)
    try:
        removed = catalog.remove(index)
    except (CatalogIndexError, ConsistencyError) as e:
        print(f"Could not remove book: {e}")
        raise typer.Exit(code=1)
    print(f"Removed: {removed.title} by {removed.author}")


async def _lookup(identifier: str) -> LookupResult:
    service = GoogleBooksService()
    try:
        return await service.lookup(identifier)
    finally:
        await cleanup_http_client()


@app.command("scan")
def cli_scan(
    identifier: str = typer.Argument(..., help="Scanned barcode or ISBN"),
    save: bool = typer.Option(True, "--save/--no-save", help="Add the book to the catalog when found"),
):
    """Look up a barcode or ISBN on Google Books."""
    with console.status(f"Looking up {identifier}...", spinner="dots"):
        book, error = asyncio.run(_lookup(identifier))

    if book is None:
        if error is not None:
            print(f"Lookup failed: {error}")
            raise typer.Exit(code=1)
        print(f"No book found for {identifier}.")
        raise typer.Exit(code=1)

    if error is not None:
        print(f"Cover unavailable: {error}")
    # The scanned code is the book's ISBN
    book = dataclasses.replace(book, isbn=identifier.strip())
    print(f"Found: {book.title} by {book.author}")

    if not save:
        print_book_detail(book)
        return
    catalog = get_catalog()
    if catalog.find_by_isbn(book.isbn):
        print(f"Note: a book with ISBN {book.isbn} is already in the catalog.")
    catalog.add(book)
    print(f"Successfully added: {book.title} by {book.author}")


@app.command("reset")
def cli_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Replace the catalog with the sample books."""
    if not yes and not typer.confirm("Replace every book with the sample books?"):
        print("Cancelled.")
        raise typer.Exit()
    get_catalog().reset()
    print("Catalog reset to sample books.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
