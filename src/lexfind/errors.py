"""Exception taxonomy shared by the scan and build pipelines."""

from __future__ import annotations


class LexFindError(Exception):
    """Base class for lexfind failures."""


class CatalogUnreadable(LexFindError):
    """A catalog could not be fetched or parsed."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Catalog unreadable: {url} ({reason})")
        self.url = url
        self.reason = reason


class DescriptorUnresolvable(LexFindError):
    """A catalog record's location cannot be turned into a fetchable URL."""

    def __init__(self, location: object, reason: str) -> None:
        super().__init__(f"Unresolvable location {location!r}: {reason}")
        self.location = location
        self.reason = reason


class DocumentFetchError(LexFindError):
    """Base of the per-document fetch failures."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class DocumentUnreachable(DocumentFetchError):
    """Transport error or timeout."""


class NonSuccessStatus(DocumentFetchError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


class DocumentDecodeError(DocumentFetchError):
    """The body is not valid text."""


class IndexEngineFailure(LexFindError):
    """The ranked-index engine rejected the build input."""


class NoUsableDocuments(LexFindError):
    """Not a single document could be fetched for the run."""


class QuerySuperseded(LexFindError):
    """A newer query replaced this one while it was in flight."""
