import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import httpx

from bookcase.book import Book
from bookcase.config import settings
from bookcase.errors import DecodeError, LookupCancelled, LookupServiceError, TransportError
from bookcase.services.covers import is_image
from bookcase.services.http_client import BookcaseHTTPClient, get_http_client

logger = logging.getLogger(__name__)

# Books found remotely carry no ISBN of their own
LOOKUP_ISBN_PLACEHOLDER = "0"

LookupCallback = Callable[[Optional[Book], Optional[Exception]], None]


@dataclass
class VolumeData:
    """The part of a Google Books volume the catalog uses"""
    title: str
    authors: List[str] = field(default_factory=list)
    thumbnail_url: Optional[str] = None

    @property
    def author(self) -> str:
        return ",".join(self.authors)

    def to_book(self) -> Book:
        return Book(
            title=self.title,
            author=self.author,
            rating=0,
            isbn=LOOKUP_ISBN_PLACEHOLDER,
            notes="",
        )


class LookupResult(NamedTuple):
    """Outcome of a lookup: ``(book, None)``, ``(book, error)``, ``(None, error)`` or ``(None, None)``"""
    book: Optional[Book]
    error: Optional[Exception]

    @property
    def not_found(self) -> bool:
        return self.book is None and self.error is None


def normalize_thumbnail_url(url: Any) -> Optional[str]:
    """Return a usable https URL for a thumbnail, or None if it is not well formed"""
    if not isinstance(url, str) or not url.strip():
        return None
    url = url.strip()
    if url.startswith("http://"):
        url = "https://" + url[len("http://"):]
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return None
    if parsed.scheme != "https" or not parsed.host:
        return None
    return str(parsed)


def parse_volume(payload: Any) -> Optional[VolumeData]:
    """
    Extract ``items[0].volumeInfo`` from a volumes search response.

    Returns None when the response holds no volume with both a title and
    authors. Raises DecodeError when the document is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise DecodeError("Volumes response is not a JSON object")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        return None

    first = items[0]
    volume_info = first.get("volumeInfo") if isinstance(first, dict) else None
    if not isinstance(volume_info, dict):
        return None

    title = volume_info.get("title")
    authors = volume_info.get("authors")
    if not isinstance(title, str) or not title:
        return None
    if not isinstance(authors, list) or not authors or not all(isinstance(a, str) for a in authors):
        return None

    image_links = volume_info.get("imageLinks")
    thumbnail = image_links.get("thumbnail") if isinstance(image_links, dict) else None

    return VolumeData(
        title=title,
        authors=authors,
        thumbnail_url=normalize_thumbnail_url(thumbnail),
    )


class LookupHandle:
    """The single in-flight lookup owned by a GoogleBooksService"""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        self.cancelled = False
        self._task: Optional[asyncio.Task] = None
        self._metadata_task: Optional[asyncio.Task] = None
        self._cover_task: Optional[asyncio.Task] = None
        self._delivered = False

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        """Cancel the cover download, or the metadata request if no download started yet"""
        self.cancelled = True
        stage = self._cover_task or self._metadata_task
        if stage is not None and not stage.done():
            stage.cancel()

    def __await__(self):
        return self._task.__await__()


class GoogleBooksService:
    """Resolves a scanned barcode or ISBN to a Book with its cover"""

    def __init__(self, client: Optional[BookcaseHTTPClient] = None, api_url: Optional[str] = None,
                 api_key: Optional[str] = None, require_thumbnail: Optional[bool] = None):
        self._client = client
        self.api_url = api_url or settings.google_books_api_url
        self.api_key = settings.google_books_api_key if api_key is None else api_key
        self.require_thumbnail = settings.lookup_require_thumbnail if require_thumbnail is None else require_thumbnail
        self.timeout = httpx.Timeout(settings.google_books_timeout)
        self.cover_timeout = httpx.Timeout(settings.cover_timeout)
        self._current: Optional[LookupHandle] = None

    @property
    def current(self) -> Optional[LookupHandle]:
        return self._current

    async def _get_client(self) -> BookcaseHTTPClient:
        if self._client is None:
            self._client = await get_http_client()
        return self._client

    # ------------------------- Callback API ------------------------- #
    def get_book(self, identifier: str, callback: LookupCallback) -> LookupHandle:
        """
        Start looking up ``identifier`` on the running event loop.

        Any previous lookup is cancelled first. ``callback(book, error)`` is
        called exactly once, on the loop, when the lookup finishes.
        """
        loop = asyncio.get_running_loop()
        previous = self._current
        if previous is not None and not previous.done():
            logger.debug("Cancelling lookup for %s in favour of %s", previous.identifier, identifier)
            previous.cancel()

        handle = LookupHandle(identifier)
        handle._task = loop.create_task(self._run(handle, identifier, callback))
        self._current = handle
        return handle

    def cancel(self) -> None:
        if self._current is not None:
            self._current.cancel()

    async def lookup(self, identifier: str) -> LookupResult:
        """Awaitable form of get_book"""
        outcome: asyncio.Future = asyncio.get_running_loop().create_future()

        def _finish(book: Optional[Book], error: Optional[Exception]) -> None:
            if not outcome.done():
                outcome.set_result(LookupResult(book, error))

        await self.get_book(identifier, _finish)
        return outcome.result()

    async def fetch_book(self, identifier: str) -> Optional[Book]:
        """
        Fetch a book by barcode or ISBN

        Returns the Book (without cover if the cover could not be fetched) or
        None if nothing was found. Metadata failures are raised.
        """
        result = await self.lookup(identifier)
        if result.book is None and result.error is not None:
            raise result.error
        if result.error is not None:
            logger.warning("Cover for '%s' unavailable: %s", result.book.title, result.error)
        return result.book

    # ------------------------- Lookup stages ------------------------- #
    async def _run(self, handle: LookupHandle, identifier: str, callback: LookupCallback) -> None:
        def deliver(book: Optional[Book], error: Optional[Exception]) -> None:
            if handle._delivered:
                return
            handle._delivered = True
            callback(book, error)

        if handle.cancelled:
            deliver(None, LookupCancelled(f"Lookup for {identifier!r} was cancelled"))
            return

        handle._metadata_task = asyncio.ensure_future(self._fetch_volume(identifier))
        try:
            volume = await handle._metadata_task
        except asyncio.CancelledError:
            deliver(None, LookupCancelled(f"Lookup for {identifier!r} was cancelled"))
            return
        except LookupServiceError as e:
            logger.error("Lookup for %s failed: %s", identifier, e)
            deliver(None, e)
            return
        except Exception as e:
            logger.exception("Lookup for %s failed unexpectedly", identifier)
            error = TransportError(f"Google Books request failed: {e}")
            error.__cause__ = e
            deliver(None, error)
            return

        if volume is None:
            logger.info("Book not found in Google Books: %s", identifier)
            deliver(None, None)
            return

        book = volume.to_book()
        if volume.thumbnail_url is None:
            if self.require_thumbnail:
                logger.info("Volume '%s' has no thumbnail, treating as not found", volume.title)
                deliver(None, None)
            else:
                deliver(book, None)
            return

        if handle.cancelled:
            deliver(book, LookupCancelled(f"Lookup for {identifier!r} was cancelled before the cover download"))
            return

        handle._cover_task = asyncio.ensure_future(self._download_cover(volume.thumbnail_url))
        try:
            cover = await handle._cover_task
        except asyncio.CancelledError:
            deliver(book, LookupCancelled(f"Cover download for '{book.title}' was cancelled"))
        except LookupServiceError as e:
            logger.warning("Cover download for '%s' failed: %s", book.title, e)
            deliver(book, e)
        except Exception as e:
            logger.exception("Cover download for '%s' failed unexpectedly", book.title)
            error = TransportError(f"Cover download failed: {e}")
            error.__cause__ = e
            deliver(book, error)
        else:
            logger.info("Book found via Google Books: %s by %s", book.title, book.author)
            deliver(book.with_cover(cover), None)

    async def _fetch_volume(self, identifier: str) -> Optional[VolumeData]:
        if not identifier or not identifier.strip():
            logger.warning("Empty identifier provided")
            return None

        params: Dict[str, Any] = {"q": identifier}
        if self.api_key:
            params["key"] = self.api_key

        client = await self._get_client()
        try:
            response = await client.get(self.api_url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"Google Books request timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Google Books request failed: {e}") from e

        if not response.is_success:
            raise TransportError(f"Google Books returned HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise DecodeError(f"Google Books returned malformed JSON: {e}") from e
        return parse_volume(payload)

    async def _download_cover(self, url: str) -> bytes:
        client = await self._get_client()
        try:
            response = await client.get(url, timeout=self.cover_timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"Cover download timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Cover download failed: {e}") from e

        if not response.is_success:
            raise TransportError(f"Cover download returned HTTP {response.status_code}")

        data = response.content
        if not is_image(data):
            raise DecodeError(f"Cover at {url} is not a readable image")
        return data
