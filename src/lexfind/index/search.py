"""Query a built index: ranked lookup in lunr, joined to the chunk store by id."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from lunr.exceptions import QueryParseError
from lunr.index import Index

from lexfind.index.builder import CHUNKS_FILENAME, INDEX_FILENAME, MANIFEST_FILENAME
from lexfind.models import MatchMode, MatchSpan, Snippet
from lexfind.search.matcher import ParsedQuery, find_spans, parse_query
from lexfind.search.snippets import select_snippets

LOGGER = logging.getLogger(__name__)

_WORD = re.compile(r"\w+")


@dataclass(slots=True)
class SearchResult:
    chunk_id: str
    url: str
    title: str
    kind: str
    jurisdiction: str
    start: int
    score: float
    text: str
    spans: List[MatchSpan]
    snippets: List[Snippet]


def engine_query(query: ParsedQuery) -> str:
    """Plain lunr query string made of the query's words, free of lunr operators."""
    words = [word for term in query.terms for word in _WORD.findall(term)]
    return " ".join(words)


class IndexSearcher:
    """High-level API over a built index directory.

    lunr proposes and ranks candidate chunks; each candidate is re-checked
    with the same matcher the online scan uses. lunr only proposes chunks
    sharing a stemmed whole word with the query, so a token that matches
    only inside a larger word (``trus`` in ``trustee``) is found by the
    online scan but not here.
    """

    def __init__(self, index: Index, chunks: Dict[str, dict], manifest: dict | None = None) -> None:
        self.index = index
        self.chunks = chunks
        self.manifest = manifest or {}

    @classmethod
    def load(cls, out_dir: Path) -> "IndexSearcher":
        out_dir = Path(out_dir)
        manifest_path = out_dir / MANIFEST_FILENAME
        manifest = json.loads(manifest_path.read_text(encoding="utf-8")) if manifest_path.exists() else {}
        index_path = out_dir / manifest.get("index_path", INDEX_FILENAME)
        chunks_path = out_dir / manifest.get("chunks_path", CHUNKS_FILENAME)

        index = Index.load(json.loads(index_path.read_text(encoding="utf-8")))
        chunks: Dict[str, dict] = {}
        with chunks_path.open(encoding="utf-8") as handle:
            for line in handle:
                if line.strip():
                    record = json.loads(line)
                    chunks[record["id"]] = record
        LOGGER.debug("Loaded %d chunk(s) from %s", len(chunks), chunks_path)
        return cls(index, chunks, manifest)

    def search(
        self,
        query: str,
        *,
        mode: MatchMode = MatchMode.AND,
        top_k: int = 10,
        window_chars: int = 240,
        max_snippets: int = 3,
    ) -> List[SearchResult]:
        parsed = parse_query(query)
        lookup = engine_query(parsed)
        if not lookup:
            return []
        try:
            hits = self.index.search(lookup)
        except QueryParseError as exc:
            LOGGER.warning("Query %r rejected by the index: %s", lookup, exc)
            return []

        results: List[SearchResult] = []
        for hit in hits:
            record = self.chunks.get(hit["ref"])
            if record is None:
                LOGGER.warning("Index ref %s missing from chunk store", hit["ref"])
                continue
            spans = find_spans(parsed, record["text"], mode)
            if not spans:
                continue
            results.append(
                SearchResult(
                    chunk_id=record["id"],
                    url=record["url"],
                    title=record["title"],
                    kind=record["kind"],
                    jurisdiction=record.get("jurisdiction", ""),
                    start=record["start"],
                    score=float(hit["score"]),
                    text=record["text"],
                    spans=spans,
                    snippets=select_snippets(
                        spans,
                        record["text"],
                        width=window_chars,
                        max_count=max_snippets,
                        terms=parsed.terms,
                    ),
                )
            )
            if len(results) >= top_k:
                break
        return results
