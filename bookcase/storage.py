"""Durable storage for the catalog.

The whole collection is written as one JSON document. Writes go to a
temporary file in the same directory which then replaces the catalog file,
so a crash never leaves a half-written catalog behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from bookcase.book import Book
from bookcase.config import settings
from bookcase.errors import PersistenceError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class CatalogFile:
    """Reads and writes the serialized book collection."""

    def __init__(self, path: Optional[str | os.PathLike] = None) -> None:
        self.path = Path(path or settings.data_file).expanduser()

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, books: Sequence[Book]) -> None:
        payload = {
            "version": FORMAT_VERSION,
            "books": [book.to_dict() for book in books],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.remove(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not save catalog to {self.path}: {e}") from e
        logger.debug("Saved %d books to %s", len(books), self.path)

    def load(self) -> Optional[List[Book]]:
        """Return the stored books, or None when nothing has been stored yet."""
        if not self.path.exists():
            logger.info("No catalog file at %s", self.path)
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read catalog from {self.path}: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("books"), list):
            raise PersistenceError(f"Catalog file {self.path} has an unexpected layout")
        version = payload.get("version")
        if version != FORMAT_VERSION:
            raise PersistenceError(f"Unsupported catalog format version: {version!r}")

        try:
            books = [Book.from_dict(entry) for entry in payload["books"]]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Catalog file {self.path} contains an invalid book: {e}") from e
        logger.debug("Loaded %d books from %s", len(books), self.path)
        return books

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Could not delete catalog file {self.path}: {e}") from e
