from __future__ import annotations

import base64
import binascii
import dataclasses
import uuid
from dataclasses import dataclass, field

MIN_RATING = 0
MAX_RATING = 5


def new_book_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Book:
    """Represents a single book in the catalog."""

    title: str
    author: str
    rating: int = 0
    isbn: str = ""
    notes: str = ""
    cover: bytes | None = field(default=None, repr=False)
    # Identity used to map a filtered row back to the collection; not part of equality
    book_id: str = field(default_factory=new_book_id, compare=False)

    def __post_init__(self) -> None:
        for name in ("title", "author", "isbn", "notes", "book_id"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ValueError(f"{name.capitalize()} must be a string, got {value!r}")
        if isinstance(self.rating, bool) or not isinstance(self.rating, int):
            raise ValueError(f"Rating must be an integer, got {self.rating!r}")
        if not MIN_RATING <= self.rating <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {self.rating}")
        if self.cover is not None:
            object.__setattr__(self, "cover", bytes(self.cover))

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    def is_complete(self) -> bool:
        """A book needs a title before a caller should save it."""
        return bool(self.title.strip())

    @property
    def has_cover(self) -> bool:
        return bool(self.cover)

    def with_cover(self, cover: bytes | None) -> "Book":
        return dataclasses.replace(self, cover=cover)

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "title": self.title,
            "author": self.author,
            "rating": self.rating,
            "isbn": self.isbn,
            "notes": self.notes,
            "cover": base64.b64encode(self.cover).decode("ascii") if self.cover is not None else None,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        if not isinstance(data, dict):
            raise ValueError(f"Book entry must be an object, got {type(data).__name__}")
        cover = data.get("cover")
        if cover is not None:
            try:
                cover = base64.b64decode(cover, validate=True)
            except (binascii.Error, TypeError) as exc:
                raise ValueError("Cover is not valid base64 data") from exc

        kwargs = {
            "title": data["title"],
            "author": data["author"],
            "rating": data.get("rating", 0),
            "isbn": data.get("isbn", ""),
            "notes": data.get("notes", ""),
            "cover": cover,
        }
        if data.get("book_id"):
            kwargs["book_id"] = data["book_id"]
        return Book(**kwargs)
