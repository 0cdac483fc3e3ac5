"""HTTP retrieval of catalogs and documents with a bounded worker pool."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Sequence, Union

import httpx

from lexfind.catalog.normalizer import parse_catalog
from lexfind.config import AppConfig
from lexfind.errors import (
    CatalogUnreadable,
    DocumentDecodeError,
    DocumentFetchError,
    DocumentUnreachable,
    NonSuccessStatus,
)
from lexfind.models import FetchedText, ResolvedDocument
from lexfind.utils.files import compute_sha256

LOGGER = logging.getLogger(__name__)

USER_AGENT = "lexfind/0.1 (+https://texts.wwwbcb.org)"

FetchOutcome = Union[FetchedText, DocumentFetchError]


def make_client(config: AppConfig, *, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create the shared client for one run. Every fetch has a bounded wait."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout),
        limits=httpx.Limits(
            max_connections=config.max_concurrency,
            max_keepalive_connections=config.max_concurrency,
        ),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        transport=transport,
    )


class DocumentFetcher:
    """Fetches catalogs and document texts, never more than ``max_concurrency`` at once.

    There is no caching: every call goes to the network, and the content
    digest is recomputed from the text that was just fetched.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_concurrency: int = 4,
        delay: float = 0.0,
        text_filter: Optional[Callable[[str], str]] = None,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.client = client
        self.max_concurrency = max_concurrency
        self.delay = delay
        self.text_filter = text_filter
        self._slots = asyncio.Semaphore(max_concurrency)

    @classmethod
    def from_config(
        cls,
        client: httpx.AsyncClient,
        config: AppConfig,
        *,
        text_filter: Optional[Callable[[str], str]] = None,
    ) -> "DocumentFetcher":
        return cls(
            client,
            max_concurrency=config.max_concurrency,
            delay=config.request_delay,
            text_filter=text_filter,
        )

    async def _get(self, url: str, accept: str) -> httpx.Response:
        async with self._slots:
            try:
                response = await self.client.get(url, headers={"Accept": accept})
            finally:
                if self.delay:
                    await asyncio.sleep(self.delay)
        return response

    async def fetch_catalog(self, url: str) -> Any:
        """Return the decoded JSON payload of a catalog or raise ``CatalogUnreadable``."""
        try:
            response = await self._get(url, "application/json")
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as exc:
            raise CatalogUnreadable(url, f"{type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise CatalogUnreadable(url, f"HTTP {response.status_code}")
        return parse_catalog(response.content, source=url)

    async def fetch(self, document: ResolvedDocument) -> FetchedText:
        url = document.canonical_url
        try:
            response = await self._get(url, "text/plain")
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as exc:
            # Timeouts and URLs the client refuses to send count as unreachable.
            raise DocumentUnreachable(url, f"{type(exc).__name__}: {exc}") from exc
        if response.status_code >= 400:
            raise NonSuccessStatus(url, response.status_code)

        raw = response.content
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DocumentDecodeError(url, str(exc)) from exc
        if text.startswith("\ufeff"):
            text = text[1:]
        if self.text_filter is not None:
            text = self.text_filter(text)

        LOGGER.debug("Fetched %s (%d bytes)", url, len(raw))
        return FetchedText(
            document=document,
            text=text,
            byte_length=len(raw),
            content_digest=compute_sha256(text),
        )

    async def fetch_outcome(self, document: ResolvedDocument) -> FetchOutcome:
        """Like :meth:`fetch`, but a per-document failure is returned, not raised."""
        try:
            return await self.fetch(document)
        except DocumentFetchError as exc:
            LOGGER.warning("Skipping %s", exc)
            return exc

    async def fetch_many(self, documents: Sequence[ResolvedDocument]) -> List[FetchOutcome]:
        """Fetch documents concurrently; results come back in input order."""
        return list(await asyncio.gather(*(self.fetch_outcome(doc) for doc in documents)))
