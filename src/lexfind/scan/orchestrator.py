"""Online exhaustive scan: every catalogued document is fetched and searched per query."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from lexfind.catalog.normalizer import NormalizedCatalog, normalize_catalog
from lexfind.catalog.urls import resolve_descriptors
from lexfind.config import AppConfig, CatalogSource
from lexfind.errors import CatalogUnreadable, DocumentFetchError, QuerySuperseded
from lexfind.ingestion.fetcher import DocumentFetcher
from lexfind.models import (
    DocumentKind,
    MatchMode,
    ResolvedDocument,
    ResultGroup,
    ScanResult,
    ScanStats,
    SearchResultItem,
)
from lexfind.search.matcher import ParsedQuery, find_spans, parse_query
from lexfind.search.snippets import select_snippets

LOGGER = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    FETCHING_CATALOGS = "fetching_catalogs"
    SCANNING_DOCUMENTS = "scanning_documents"
    DONE = "done"
    FAILED = "failed"


class CancelToken:
    """Marks a query as superseded and abandons the fetches registered with it."""

    def __init__(self) -> None:
        self._cancelled = False
        self._tasks: Set[asyncio.Future] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise QuerySuperseded("Query superseded by a newer one")

    def track(self, future: asyncio.Future) -> None:
        if self._cancelled:
            future.cancel()
            return
        self._tasks.add(future)
        future.add_done_callback(self._tasks.discard)


@dataclass(frozen=True, slots=True)
class ScanOptions:
    mode: MatchMode
    window_chars: int
    max_snippets: int


@dataclass(slots=True)
class _DocumentOutcome:
    bytes_scanned: int = 0
    failed: bool = False
    item: Optional[SearchResultItem] = None


class OnlineScanner:
    """Drives catalogs -> descriptors -> URLs -> texts -> spans -> snippets for one query.

    Only network calls suspend; matching and snippet selection run inline in
    the task that fetched the document. Results are aggregated in catalog
    order once every document has been attempted.
    """

    def __init__(self, config: AppConfig, fetcher: DocumentFetcher) -> None:
        self.config = config
        self.fetcher = fetcher
        self.state = ScanState.IDLE
        self._current: Optional[CancelToken] = None

    def supersede(self) -> CancelToken:
        """Cancel the in-flight query, if any, and hand out a token for the next one."""
        if self._current is not None:
            self._current.cancel()
        self._current = CancelToken()
        return self._current

    async def scan(
        self,
        query: str,
        *,
        mode: Optional[MatchMode] = None,
        window_chars: Optional[int] = None,
        token: Optional[CancelToken] = None,
    ) -> ScanResult:
        token = token or self.supersede()
        options = ScanOptions(
            mode=mode or self.config.match_mode,
            window_chars=window_chars or self.config.window_chars,
            max_snippets=self.config.max_snippets,
        )
        parsed = parse_query(query)
        if parsed.is_empty:
            raise ValueError("Empty query")
        stats = ScanStats()
        started = time.perf_counter()
        try:
            self._transition(token, ScanState.FETCHING_CATALOGS)
            catalogs = await self._fetch_catalogs(token, stats)

            self._transition(token, ScanState.SCANNING_DOCUMENTS)
            groups = await self._scan_catalogs(catalogs, parsed, options, token, stats)
        except QuerySuperseded:
            self._transition(token, ScanState.FAILED)
            LOGGER.info("Query %r superseded; discarding partial results", query)
            raise
        except asyncio.CancelledError:
            self._transition(token, ScanState.FAILED)
            if token.cancelled:
                raise QuerySuperseded("Query superseded by a newer one") from None
            raise
        except Exception:
            self._transition(token, ScanState.FAILED)
            raise

        stats.elapsed_ms = round((time.perf_counter() - started) * 1000)
        self._transition(token, ScanState.DONE)
        LOGGER.info(
            "query=%r scanned %d file(s), %d bytes in %d ms",
            query,
            stats.documents_scanned,
            stats.bytes_scanned,
            stats.elapsed_ms,
        )
        return ScanResult(query=query, mode=options.mode, groups=groups, stats=stats)

    def _transition(self, token: CancelToken, state: ScanState) -> None:
        # A superseded query must not overwrite the state of its successor.
        if self._current is None or self._current is token:
            self.state = state

    async def _fetch_catalogs(
        self, token: CancelToken, stats: ScanStats
    ) -> List[NormalizedCatalog]:
        token.raise_if_cancelled()
        sources = self.config.catalogs
        tasks = [asyncio.ensure_future(self._fetch_catalog(source)) for source in sources]
        for task in tasks:
            token.track(task)
        payloads = await asyncio.gather(*tasks)
        token.raise_if_cancelled()

        catalogs = []
        for source, payload in zip(sources, payloads):
            if payload is None:
                stats.catalogs_skipped += 1
                catalogs.append(NormalizedCatalog(kind=source.kind))
                continue
            catalog = normalize_catalog(payload, source.kind)
            stats.records_skipped += catalog.skipped
            catalogs.append(catalog)
        return catalogs

    async def _fetch_catalog(self, source: CatalogSource) -> object:
        try:
            return await self.fetcher.fetch_catalog(source.url)
        except CatalogUnreadable as exc:
            LOGGER.warning("Skipping catalog: %s", exc)
            return None

    async def _scan_catalogs(
        self,
        catalogs: List[NormalizedCatalog],
        query: ParsedQuery,
        options: ScanOptions,
        token: CancelToken,
        stats: ScanStats,
    ) -> List[ResultGroup]:
        groups: Dict[DocumentKind, ResultGroup] = {kind: ResultGroup(kind=kind) for kind in DocumentKind}
        plan: List[Tuple[DocumentKind, ResolvedDocument]] = []
        for catalog in catalogs:
            documents, dropped = resolve_descriptors(
                catalog.descriptors, self.config.base_origin, self.config.legacy_origins
            )
            stats.descriptors_unresolvable += dropped
            plan.extend((catalog.kind, document) for document in documents)

        token.raise_if_cancelled()
        tasks = [
            asyncio.ensure_future(self._scan_document(document, query, options, token))
            for _, document in plan
        ]
        for task in tasks:
            token.track(task)
        outcomes = await asyncio.gather(*tasks)
        token.raise_if_cancelled()

        # Aggregation runs on one task after every document was attempted.
        for (kind, _), outcome in zip(plan, outcomes):
            if outcome.failed:
                stats.documents_failed += 1
                continue
            stats.documents_scanned += 1
            stats.bytes_scanned += outcome.bytes_scanned
            if outcome.item is not None:
                groups[kind].items.append(outcome.item)
        return [groups[kind] for kind in DocumentKind]

    async def _scan_document(
        self,
        document: ResolvedDocument,
        query: ParsedQuery,
        options: ScanOptions,
        token: CancelToken,
    ) -> _DocumentOutcome:
        token.raise_if_cancelled()
        try:
            fetched = await self.fetcher.fetch(document)
        except DocumentFetchError as exc:
            LOGGER.warning("Skipping document: %s", exc)
            return _DocumentOutcome(failed=True)
        token.raise_if_cancelled()

        outcome = _DocumentOutcome(bytes_scanned=fetched.byte_length)
        spans = find_spans(query, fetched.text, options.mode)
        if spans:
            outcome.item = SearchResultItem(
                document=document,
                spans=spans,
                snippets=select_snippets(
                    spans,
                    fetched.text,
                    width=options.window_chars,
                    max_count=options.max_snippets,
                    terms=query.terms,
                ),
                byte_length=fetched.byte_length,
                content_digest=fetched.content_digest,
            )
        return outcome
