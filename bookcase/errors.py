"""Exception hierarchy shared by the catalog and the lookup service.

"Not found" is deliberately absent: a lookup that succeeds on the wire but
yields no usable volume is reported as ``None``, never raised.
"""


class BookcaseError(Exception):
    """Base class for all bookcase errors."""


class LookupServiceError(BookcaseError):
    """Raised or reported by the remote book lookup."""


class TransportError(LookupServiceError):
    """Network, DNS, TLS or HTTP status failure at either lookup stage."""


class DecodeError(LookupServiceError):
    """Malformed JSON document or undecodable cover image."""


class LookupCancelled(LookupServiceError):
    """The lookup was cancelled before it completed."""


class CatalogError(BookcaseError):
    """Raised by the catalog store."""


class PersistenceError(CatalogError):
    """The catalog file could not be written or read back."""


class ConsistencyError(CatalogError):
    """A filtered entry could not be located in the full collection."""


class CatalogIndexError(CatalogError, IndexError):
    """Index outside the currently displayed sequence."""
