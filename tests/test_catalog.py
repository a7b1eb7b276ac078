import json
import logging
import threading

import pytest

from bookcase import catalog as catalog_module
from bookcase.book import Book
from bookcase.catalog import CatalogStore, SortOrder, fold, get_catalog, reset_catalog, sort_books
from bookcase.config import settings
from bookcase.errors import CatalogIndexError, ConsistencyError, PersistenceError
from bookcase.storage import CatalogFile


def _titles(books):
    return [b.title for b in books]


def _matching(books, text):
    text = text.lower()
    return [b for b in books if text in b.title.lower() or text in b.author.lower()]


@pytest.fixture
def small_catalog(storage):
    storage.save([
        Book("Emma", "Jane Austen", 5),
        Book("Animal Farm", "George Orwell", 4),
        Book("Persuasion", "Jane Austen", 4),
        Book("Nineteen Eighty-Four", "George Orwell", 5),
        Book("Life of Pi", "Yann Martel", 5),
    ])
    return CatalogStore(storage=storage, sort_order="title")


# ------------------------- Loading ------------------------- #
def test_empty_storage_seeds_sorted_sample_books(catalog):
    assert catalog.count() == 15
    assert catalog.get(0).title == "Animal Farm"
    assert catalog.get(14).title == "To Kill a Mockingbird"
    assert _titles(catalog.items) == sorted(_titles(catalog.items), key=fold)


def test_only_first_two_samples_carry_isbn_or_notes(catalog):
    annotated = [b for b in catalog.items if b.isbn or b.notes]

    assert sorted(_titles(annotated)) == ["Don Quixote", "Great Expectations"]


def test_corrupt_storage_falls_back_to_samples(storage, data_file, caplog):
    data_file.write_text("garbage", encoding="utf-8")
    store = CatalogStore(storage=storage)

    with caplog.at_level(logging.WARNING):
        assert store.count() == 15
    assert "Falling back to sample books" in caplog.text


@pytest.mark.parametrize("entry", [
    "not a book",
    {"title": 5, "author": "Jane Austen"},
    {"title": None, "author": "Jane Austen"},
])
def test_malformed_book_entry_falls_back_to_samples(storage, data_file, entry):
    data_file.write_text(json.dumps({"version": 1, "books": [entry]}), encoding="utf-8")
    store = CatalogStore(storage=storage)

    assert store.count() == 15
    assert store.get(0).title == "Animal Farm"


def test_collection_is_loaded_lazily(storage, monkeypatch):
    calls = []
    original = storage.load
    monkeypatch.setattr(storage, "load", lambda: calls.append(1) or original())

    store = CatalogStore(storage=storage)
    assert calls == []

    store.count()
    store.get(0)
    assert calls == [1]


def test_stored_books_are_sorted_on_load(small_catalog):
    assert _titles(small_catalog.items) == ["Animal Farm", "Emma", "Life of Pi", "Nineteen Eighty-Four", "Persuasion"]


# ------------------------- Sorting ------------------------- #
def test_sort_is_accent_and_case_insensitive_and_stable():
    accented = Book("Émile", "Rousseau")
    plain = Book("emile", "Rousseau")

    for order in SortOrder:
        books = [accented, plain]
        sort_books(books, order)
        assert books[0] is accented and books[1] is plain

        books = [plain, accented]
        sort_books(books, order)
        assert books[0] is plain and books[1] is accented


def test_author_sort_uses_title_as_tiebreak(small_catalog):
    small_catalog.sort_order = SortOrder.AUTHOR

    assert [(b.author, b.title) for b in small_catalog.items] == [
        ("George Orwell", "Animal Farm"),
        ("George Orwell", "Nineteen Eighty-Four"),
        ("Jane Austen", "Emma"),
        ("Jane Austen", "Persuasion"),
        ("Yann Martel", "Life of Pi"),
    ]


def test_sort_order_accepts_strings(small_catalog):
    small_catalog.set_sort_order("AUTHOR")
    assert small_catalog.sort_order is SortOrder.AUTHOR

    with pytest.raises(ValueError):
        small_catalog.set_sort_order("year")


def test_changing_sort_order_reorders_filtered_view(small_catalog):
    small_catalog.search_filter = "e"
    before = _titles(small_catalog.filtered_items)

    small_catalog.sort_order = "author"
    after = _titles(small_catalog.filtered_items)

    assert sorted(before) == sorted(after)
    assert after == [b.title for b in small_catalog.items if b in small_catalog.filtered_items]


# ------------------------- Filtering ------------------------- #
def test_filter_count_matches_title_or_author(catalog):
    expected = _matching(catalog.items, "the")

    catalog.search_filter = "THE"

    assert catalog.count() == len(expected) == 6
    assert list(catalog.filtered_items) == expected


def test_empty_filter_restores_full_count(catalog):
    catalog.search_filter = "orwell"
    assert catalog.count() == 1
    assert catalog.get(0).title == "Animal Farm"

    catalog.search_filter = ""
    assert catalog.count() == 15
    assert not catalog.is_filtering


def test_filter_ignores_accents(catalog):
    catalog.search_filter = "miserables"

    assert _titles(catalog.filtered_items) == ["Les Misérables"]


def test_filter_without_matches(catalog):
    catalog.search_filter = "zzz"

    assert catalog.count() == 0
    with pytest.raises(CatalogIndexError):
        catalog.get(0)


def test_add_while_filtering_updates_view(small_catalog):
    small_catalog.search_filter = "austen"
    assert small_catalog.count() == 2

    small_catalog.add(Book("Mansfield Park", "Jane Austen", 3))

    assert small_catalog.count() == 3
    assert _titles(small_catalog.filtered_items) == ["Emma", "Mansfield Park", "Persuasion"]


# ------------------------- Mutations ------------------------- #
def test_add_sorts_and_persists(small_catalog, storage):
    small_catalog.add(Book("Brave New World", "Aldous Huxley", 4))

    assert small_catalog.get(1).title == "Brave New World"
    reloaded = CatalogStore(storage=storage, sort_order="title")
    assert _titles(reloaded.items) == _titles(small_catalog.items)


def test_adding_same_book_twice_gives_distinct_identities(small_catalog):
    book = Book("Emma", "Jane Austen", 5)

    first = small_catalog.add(book)
    second = small_catalog.add(book)

    assert first == second
    assert first.book_id != second.book_id


def test_remove_unfiltered(small_catalog, storage):
    removed = small_catalog.remove(0)

    assert removed.title == "Animal Farm"
    assert small_catalog.count() == 4
    assert "Animal Farm" not in _titles(CatalogFile(storage.path).load())


def test_remove_filtered_index_removes_one_book(small_catalog):
    small_catalog.search_filter = "orwell"
    assert small_catalog.count() == 2

    removed = small_catalog.remove(1)

    assert removed.title == "Nineteen Eighty-Four"
    assert small_catalog.count() == 1
    assert len(small_catalog.items) == 4
    assert "Nineteen Eighty-Four" not in _titles(small_catalog.items)


def test_remove_filtered_duplicate_removes_exactly_one(small_catalog):
    small_catalog.add(Book("Emma", "Jane Austen", 5))
    small_catalog.search_filter = "emma"
    assert small_catalog.count() == 2

    small_catalog.remove(1)

    assert small_catalog.count() == 1
    assert _titles(small_catalog.items).count("Emma") == 1
    assert len(small_catalog.items) == 5


def test_update_unfiltered_resorts(small_catalog):
    updated = small_catalog.update(0, Book("Zuleika Dobson", "Max Beerbohm", 3))

    assert small_catalog.get(4) is updated
    assert "Animal Farm" not in _titles(small_catalog.items)


def test_update_filtered_keeps_identity_and_refreshes_view(small_catalog, storage):
    small_catalog.search_filter = "austen"
    original = small_catalog.get(1)
    assert original.title == "Persuasion"

    updated = small_catalog.update(1, Book("Persuasion", "Anonymous", 5, notes="re-read"))

    assert updated.book_id == original.book_id
    assert small_catalog.count() == 1
    assert _titles(small_catalog.filtered_items) == ["Emma"]
    stored = {b.book_id: b for b in storage.load()}
    assert stored[original.book_id].notes == "re-read"


@pytest.mark.parametrize("index", [-1, 5, 100])
def test_out_of_range_index(small_catalog, index):
    with pytest.raises(CatalogIndexError):
        small_catalog.get(index)
    with pytest.raises(IndexError):
        small_catalog.remove(index)
    with pytest.raises(IndexError):
        small_catalog.update(index, Book("X", "Y"))
    assert small_catalog.count() == 5


def test_stale_filtered_entry_raises_consistency_error(small_catalog, caplog):
    small_catalog.search_filter = "orwell"
    stale = small_catalog.filtered_items[0]
    # Simulate the collection changing behind the projection's back
    small_catalog._books.remove(stale)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(ConsistencyError):
            small_catalog.remove(0)
    assert "missing from the catalog" in caplog.text
    assert len(small_catalog.items) == 4


def test_save_failure_keeps_change_in_memory(small_catalog, storage, monkeypatch, caplog):
    def failing_save(books):
        raise PersistenceError("disk full")

    monkeypatch.setattr(storage, "save", failing_save)

    with caplog.at_level(logging.ERROR):
        small_catalog.add(Book("Brave New World", "Aldous Huxley", 4))

    assert "Brave New World" in _titles(small_catalog.items)
    assert "disk full" in caplog.text


def test_reset_restores_samples(small_catalog, storage):
    small_catalog.reset()

    assert small_catalog.count() == 15
    assert len(storage.load()) == 15


def test_reload_rereads_storage(small_catalog, storage):
    assert small_catalog.count() == 5
    storage.save([Book("The Odyssey", "Homer", 5)])

    small_catalog.reload()

    assert _titles(small_catalog.items) == ["The Odyssey"]


def test_find_by_isbn(catalog):
    assert _titles(catalog.find_by_isbn("9780140817997")) == ["Great Expectations"]
    assert catalog.find_by_isbn("") == []


def test_get_catalog_is_process_wide(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "data_file", str(tmp_path / "books.json"))
    monkeypatch.setattr(catalog_module, "_catalog", None)

    first = get_catalog()
    assert get_catalog() is first
    assert first._storage.path == tmp_path / "books.json"

    reset_catalog()
    assert get_catalog() is not first


def test_projections_are_read_under_the_lock(small_catalog):
    class RecordingLock:
        def __init__(self):
            self.entered = 0
            self._lock = threading.RLock()

        def __enter__(self):
            self.entered += 1
            return self._lock.__enter__()

        def __exit__(self, *exc):
            return self._lock.__exit__(*exc)

    small_catalog.count()
    lock = small_catalog._lock = RecordingLock()

    items = small_catalog.items
    assert lock.entered >= 1
    assert isinstance(items, tuple) and len(items) == 5
