"""Offline index build: fetch, chunk, feed the ranked-index engine, persist."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import IO, Any, Dict, List, Mapping, Optional, Protocol, Sequence

from lunr import get_default_builder

from lexfind.errors import DocumentFetchError, IndexEngineFailure, NoUsableDocuments
from lexfind.ingestion.fetcher import DocumentFetcher
from lexfind.models import BuildManifest, Chunk, ResolvedDocument
from lexfind.utils.files import atomic_writers
from lexfind.utils.text import Chunker

LOGGER = logging.getLogger(__name__)

INDEX_FIELDS = ("text", "title", "kind", "jurisdiction")
REF_FIELD = "id"
INDEX_FILENAME = "lunr-index.json"
CHUNKS_FILENAME = "chunks.jsonl"
MANIFEST_FILENAME = "manifest.json"


class IndexEngine(Protocol):
    """Ranked-index engine contract: ``begin``, repeated ``add``, ``finish``."""

    name: str

    @property
    def version(self) -> str: ...

    def begin(self, fields: Sequence[str], ref: str) -> None: ...

    def add(self, record: Mapping[str, Any]) -> None: ...

    def finish(self) -> str: ...


class LunrEngine:
    """Builds a lunr index; the serialized form loads in lunr.js as well."""

    name = "lunr"

    def __init__(self) -> None:
        self._builder = None

    @property
    def version(self) -> str:
        try:
            return version("lunr")
        except PackageNotFoundError:
            return "unknown"

    def begin(self, fields: Sequence[str], ref: str) -> None:
        builder = get_default_builder()
        builder.ref(ref)
        for name in fields:
            builder.field(name)
        self._builder = builder

    def add(self, record: Mapping[str, Any]) -> None:
        if self._builder is None:
            raise IndexEngineFailure("add() called before begin()")
        try:
            self._builder.add(dict(record))
        except Exception as exc:
            raise IndexEngineFailure(f"lunr rejected record {record.get(REF_FIELD)!r}: {exc}") from exc

    def finish(self) -> str:
        if self._builder is None:
            raise IndexEngineFailure("finish() called before begin()")
        try:
            index = self._builder.build()
            return json.dumps(index.serialize())
        except Exception as exc:
            raise IndexEngineFailure(f"lunr failed to build the index: {exc}") from exc
        finally:
            self._builder = None


def chunk_record(chunk: Chunk) -> Dict[str, Any]:
    """One chunk-store line; also the record handed to the engine."""
    document = chunk.document
    return {
        "id": chunk.id,
        "url": document.canonical_url,
        "title": document.title,
        "kind": document.kind.value,
        "jurisdiction": document.jurisdiction,
        "start": chunk.start_offset,
        "end": chunk.end_offset,
        "text": chunk.text,
    }


@dataclass(slots=True)
class BuildStats:
    catalog_items: int = 0
    attempted: int = 0
    indexed: int = 0
    failed: int = 0
    duplicates: int = 0
    chunks: int = 0
    failed_urls: List[str] = field(default_factory=list)

    def record_failure(self, url: str) -> None:
        self.failed += 1
        self.failed_urls.append(url)


class IndexBuilder:
    """Coordinates fetching, chunking and persistence of one index build.

    Artifacts are written to temp files in ``out_dir`` and renamed into place
    only when the engine has produced an index, so a failed build never
    replaces a previous one.
    """

    def __init__(
        self,
        fetcher: DocumentFetcher,
        engine: IndexEngine,
        chunker: Chunker,
        out_dir: Path,
        *,
        base_origin: str = "",
        batch_size: Optional[int] = None,
    ) -> None:
        self.fetcher = fetcher
        self.engine = engine
        self.chunker = chunker
        self.out_dir = Path(out_dir)
        self.base_origin = base_origin
        self.batch_size = batch_size or fetcher.max_concurrency

    @property
    def index_path(self) -> Path:
        return self.out_dir / INDEX_FILENAME

    @property
    def chunks_path(self) -> Path:
        return self.out_dir / CHUNKS_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.out_dir / MANIFEST_FILENAME

    async def build(
        self, documents: Sequence[ResolvedDocument], *, catalog_items: Optional[int] = None
    ) -> BuildManifest:
        stats = BuildStats(catalog_items=len(documents) if catalog_items is None else catalog_items)
        unique = self._dedupe(documents, stats)
        stats.attempted = len(unique)

        self.engine.begin(INDEX_FIELDS, REF_FIELD)
        artifacts = (self.chunks_path, self.index_path, self.manifest_path)
        # The manifest is renamed last; all three are replaced only after a complete build.
        with atomic_writers(*artifacts) as (store, index_out, manifest_out):
            # Fetch a batch at a time so only a handful of texts are in memory.
            for i in range(0, len(unique), self.batch_size):
                batch = unique[i : i + self.batch_size]
                for outcome in await self.fetcher.fetch_many(batch):
                    if isinstance(outcome, DocumentFetchError):
                        stats.record_failure(outcome.url)
                        continue
                    self._add_document(outcome.document, outcome.text, store, stats)

            if stats.chunks == 0:
                raise NoUsableDocuments(
                    f"No text from {stats.attempted} document(s) ({stats.failed} failed); nothing indexed"
                )
            index_out.write(self.engine.finish())
            manifest = self._manifest(stats)
            manifest_out.write(json.dumps(asdict(manifest), indent=2) + "\n")

        LOGGER.info(
            "Built index: items=%d docs=%d failed=%d chunks=%d",
            stats.catalog_items,
            stats.indexed,
            stats.failed,
            stats.chunks,
        )
        return manifest

    def _dedupe(self, documents: Sequence[ResolvedDocument], stats: BuildStats) -> List[ResolvedDocument]:
        seen = set()
        unique = []
        for document in documents:
            if document.canonical_url in seen:
                LOGGER.debug("Duplicate catalog entry for %s", document.canonical_url)
                stats.duplicates += 1
                continue
            seen.add(document.canonical_url)
            unique.append(document)
        return unique

    def _add_document(
        self, document: ResolvedDocument, text: str, store: IO[str], stats: BuildStats
    ) -> None:
        produced = 0
        for chunk in self.chunker.chunk(document, text):
            record = chunk_record(chunk)
            self.engine.add(record)
            store.write(json.dumps(record, ensure_ascii=False) + "\n")
            produced += 1
        if produced == 0:
            LOGGER.warning("No text in %s", document.canonical_url)
        stats.indexed += 1
        stats.chunks += produced

    def _manifest(self, stats: BuildStats) -> BuildManifest:
        params = self.chunker.params
        return BuildManifest(
            engine=self.engine.name,
            engine_version=self.engine.version,
            built_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            base_origin=self.base_origin,
            catalog_items=stats.catalog_items,
            documents_attempted=stats.attempted,
            documents_indexed=stats.indexed,
            documents_failed=stats.failed,
            chunk_count=stats.chunks,
            chunk_strategy=params.strategy.value,
            index_path=INDEX_FILENAME,
            chunks_path=CHUNKS_FILENAME,
            fields=list(INDEX_FIELDS),
            chunk_parameters=params.describe(),
        )
