from __future__ import annotations

import dataclasses
import logging
import threading
import unicodedata
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from bookcase.book import Book, new_book_id
from bookcase.config import settings
from bookcase.errors import CatalogIndexError, ConsistencyError, PersistenceError
from bookcase.storage import CatalogFile

logger = logging.getLogger(__name__)


class SortOrder(str, Enum):
    TITLE = "title"
    AUTHOR = "author"

    @classmethod
    def parse(cls, value: "SortOrder | str") -> "SortOrder":
        if isinstance(value, SortOrder):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown sort order {value!r}; expected 'title' or 'author'") from None


def fold(text: str) -> str:
    """Case and accent insensitive form of ``text`` used for sorting and searching."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


_SORT_KEYS: Dict[SortOrder, Callable[[Book], Tuple[str, str]]] = {
    SortOrder.TITLE: lambda book: (fold(book.title), fold(book.author)),
    SortOrder.AUTHOR: lambda book: (fold(book.author), fold(book.title)),
}


def sort_books(books: List[Book], order: SortOrder) -> None:
    """Sort ``books`` in place. ``list.sort`` is stable, so equal keys keep their order."""
    books.sort(key=_SORT_KEYS[order])


def matches(book: Book, search_filter: str) -> bool:
    needle = fold(search_filter)
    return needle in fold(book.title) or needle in fold(book.author)


def sample_books() -> List[Book]:
    return [
        Book("Great Expectations", "Charles Dickens", 5, "9780140817997", "🎁 from Papa"),
        Book("Don Quixote", "Miguel De Cervantes", 4, "9788471890153", ""),
        Book("Robinson Crusoe", "Daniel Defoe", 5),
        Book("Gulliver's Travels", "Jonathan Swift", 5),
        Book("Emma", "Jane Austen", 5),
        Book("To Kill a Mockingbird", "Harper Lee", 5),
        Book("Animal Farm", "George Orwell", 4),
        Book("Gone with the Wind", "Margaret Mitchell", 5),
        Book("The Fault in Our Stars", "John Green", 5),
        Book("The Da Vinci Code", "Dan Brown", 5),
        Book("Les Misérables", "Victor Hugo", 5),
        Book("Lord of the Flies", "William Golding", 5),
        Book("The Alchemist", "Paulo Coelho", 5),
        Book("Life of Pi", "Yann Martel", 5),
        Book("The Odyssey", "Homer", 5),
    ]


class CatalogStore:
    """Owns the book collection, its sort order, search filter and persistence.

    ``filtered_items`` is a projection of the collection, rebuilt on demand and
    dropped whenever the collection, the sort order or the filter changes.
    Rows handed out by index are mapped back to the collection through their
    ``book_id`` rather than field equality, so duplicates are never ambiguous.
    """

    def __init__(self, storage: Optional[CatalogFile] = None, sort_order: "SortOrder | str | None" = None) -> None:
        self._storage = storage or CatalogFile()
        self._sort_order = SortOrder.parse(sort_order or settings.sort_order)
        self._search_filter = ""
        self._books: Optional[List[Book]] = None
        self._filtered: Optional[List[Book]] = None
        self._lock = threading.RLock()

    # ------------------------- Loading ------------------------- #
    @property
    def _collection(self) -> List[Book]:
        with self._lock:
            if self._books is None:
                self._books = self._load()
            return self._books

    def _load(self) -> List[Book]:
        try:
            books = self._storage.load()
        except PersistenceError as e:
            logger.warning("Falling back to sample books: %s", e)
            books = None
        if books is None:
            books = sample_books()
        sort_books(books, self._sort_order)
        return books

    def reload(self) -> None:
        """Drop the in-memory collection; the next access re-reads storage."""
        with self._lock:
            self._books = None
            self._filtered = None

    def reset(self) -> None:
        """Replace the whole collection with the sample books and persist it."""
        with self._lock:
            books = sample_books()
            sort_books(books, self._sort_order)
            self._books = books
            self._changed()

    # ------------------------- Projections ------------------------- #
    @property
    def items(self) -> Tuple[Book, ...]:
        with self._lock:
            return tuple(self._collection)

    @property
    def filtered_items(self) -> Tuple[Book, ...]:
        with self._lock:
            return tuple(self._filtered_view())

    def _filtered_view(self) -> List[Book]:
        if self._filtered is None:
            self._filtered = [book for book in self._collection if matches(book, self._search_filter)]
        return self._filtered

    def _active(self) -> List[Book]:
        return self._filtered_view() if self._search_filter else self._collection

    @property
    def is_filtering(self) -> bool:
        return bool(self._search_filter)

    @property
    def sort_order(self) -> SortOrder:
        return self._sort_order

    @sort_order.setter
    def sort_order(self, order: "SortOrder | str") -> None:
        self.set_sort_order(order)

    def set_sort_order(self, order: "SortOrder | str") -> None:
        order = SortOrder.parse(order)
        with self._lock:
            self._sort_order = order
            sort_books(self._collection, order)
            self._filtered = None

    @property
    def search_filter(self) -> str:
        return self._search_filter

    @search_filter.setter
    def search_filter(self, text: Optional[str]) -> None:
        self.set_search_filter(text)

    def set_search_filter(self, text: Optional[str]) -> None:
        with self._lock:
            self._search_filter = text or ""
            self._filtered = None

    # ------------------------- Core operations ------------------------- #
    def count(self) -> int:
        with self._lock:
            return len(self._active())

    def __len__(self) -> int:
        return self.count()

    def get(self, index: int) -> Book:
        with self._lock:
            active = self._active()
            if not 0 <= index < len(active):
                logger.warning("Index %s out of range for %d books", index, len(active))
                raise CatalogIndexError(f"No book at index {index} (showing {len(active)} books)")
            return active[index]

    def __getitem__(self, index: int) -> Book:
        return self.get(index)

    def add(self, book: Book) -> Book:
        """Add a book, keeping the collection sorted, and persist."""
        with self._lock:
            books = self._collection
            if any(existing.book_id == book.book_id for existing in books):
                # Adding the same record twice must not share an identity
                book = dataclasses.replace(book, book_id=new_book_id())
            books.append(book)
            sort_books(books, self._sort_order)
            self._changed()
            return book

    def remove(self, index: int) -> Book:
        with self._lock:
            position = self._resolve(index)
            removed = self._collection.pop(position)
            self._changed()
            logger.info("Removed '%s' from the catalog", removed.title)
            return removed

    def update(self, index: int, book: Book) -> Book:
        """Replace the book displayed at ``index``; the replacement keeps its identity."""
        with self._lock:
            position = self._resolve(index)
            books = self._collection
            replacement = dataclasses.replace(book, book_id=books[position].book_id)
            books[position] = replacement
            sort_books(books, self._sort_order)
            self._changed()
            return replacement

    def find_by_isbn(self, isbn: str) -> List[Book]:
        isbn = isbn.strip()
        if not isbn:
            return []
        return [book for book in self._collection if book.isbn == isbn]

    # ------------------------- Helpers ------------------------- #
    def _resolve(self, index: int) -> int:
        """Map an index into the displayed sequence to a position in the collection."""
        target = self.get(index)
        if not self._search_filter:
            return index
        for position, book in enumerate(self._collection):
            if book.book_id == target.book_id:
                return position
        logger.error("Book '%s' from the filtered view is missing from the catalog", target.title)
        raise ConsistencyError(f"Could not locate '{target.title}' in the catalog")

    def _changed(self) -> None:
        self._filtered = None
        self._persist()

    def _persist(self) -> None:
        try:
            self._storage.save(self._collection)
        except PersistenceError as e:
            # The in-memory collection stays authoritative for this session
            logger.error("Catalog changes were not saved: %s", e)


# Process-wide catalog instance
_catalog: Optional[CatalogStore] = None
_catalog_lock = threading.Lock()


def get_catalog() -> CatalogStore:
    """Get or create the process-wide catalog."""
    global _catalog
    with _catalog_lock:
        if _catalog is None:
            _catalog = CatalogStore()
        return _catalog


def reset_catalog() -> None:
    """Forget the process-wide catalog so the next call builds a fresh one."""
    global _catalog
    with _catalog_lock:
        _catalog = None
