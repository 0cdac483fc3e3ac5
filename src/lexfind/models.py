"""Core lexfind data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class DocumentKind(str, Enum):
    """Semantic kind of a catalogued document."""

    TEXTBOOK = "Textbook"
    LAW = "Law"
    RULE = "Rule"

    @property
    def group_title(self) -> str:
        return f"{self.value}s"

    @classmethod
    def parse(cls, value: str) -> "DocumentKind":
        """Accept ``Law``, ``law``, ``laws`` and similar spellings."""
        lowered = value.strip().lower().rstrip("s")
        for kind in cls:
            if kind.value.lower() == lowered:
                return kind
        raise ValueError(f"Unknown document kind: {value!r}")


class MatchMode(str, Enum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True, slots=True)
class DocumentDescriptor:
    """A catalog record reduced to the fields the pipeline needs."""

    title: str
    kind: DocumentKind
    jurisdiction: str
    source_location: str


@dataclass(frozen=True, slots=True)
class ResolvedDocument:
    """Descriptor paired with its canonical, absolute URL.

    Identity is the canonical URL; titles are not unique.
    """

    descriptor: DocumentDescriptor
    canonical_url: str

    @property
    def title(self) -> str:
        return self.descriptor.title

    @property
    def kind(self) -> DocumentKind:
        return self.descriptor.kind

    @property
    def jurisdiction(self) -> str:
        return self.descriptor.jurisdiction


@dataclass(frozen=True, slots=True)
class FetchedText:
    document: ResolvedDocument
    text: str
    byte_length: int
    content_digest: str


@dataclass(frozen=True, slots=True)
class Chunk:
    """Slice ``[start_offset, end_offset)`` of a document's text."""

    id: str
    document: ResolvedDocument
    text: str
    start_offset: int
    end_offset: int


@dataclass(frozen=True, slots=True, order=True)
class MatchSpan:
    """Half-open character span relative to the text it was found in."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"Empty or inverted span: {self.start}..{self.end}")


@dataclass(frozen=True, slots=True)
class Snippet:
    """Window of source text around a match, plus terms to highlight."""

    text: str
    terms: Tuple[str, ...]
    start: int = 0
    end: int = 0


@dataclass(slots=True)
class SearchResultItem:
    document: ResolvedDocument
    spans: List[MatchSpan]
    snippets: List[Snippet]
    byte_length: int
    content_digest: str

    @property
    def match_count(self) -> int:
        return len(self.spans)


@dataclass(slots=True)
class ResultGroup:
    kind: DocumentKind
    items: List[SearchResultItem] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.kind.group_title


@dataclass(slots=True)
class ScanStats:
    """Counters accumulated over one online scan."""

    bytes_scanned: int = 0
    documents_scanned: int = 0
    documents_failed: int = 0
    catalogs_skipped: int = 0
    records_skipped: int = 0
    descriptors_unresolvable: int = 0
    elapsed_ms: int = 0


@dataclass(slots=True)
class ScanResult:
    query: str
    mode: MatchMode
    groups: List[ResultGroup]
    stats: ScanStats

    @property
    def match_count(self) -> int:
        return sum(len(group.items) for group in self.groups)

    @property
    def status(self) -> str:
        """``no_matches``, ``partial`` (matches despite failures) or ``matches``."""
        if self.match_count == 0:
            return "no_matches"
        failures = (
            self.stats.documents_failed
            + self.stats.catalogs_skipped
            + self.stats.descriptors_unresolvable
        )
        return "partial" if failures else "matches"


@dataclass(slots=True)
class BuildManifest:
    engine: str
    engine_version: str
    built_at: str
    base_origin: str
    catalog_items: int
    documents_attempted: int
    documents_indexed: int
    documents_failed: int
    chunk_count: int
    chunk_strategy: str
    index_path: str
    chunks_path: str
    fields: List[str] = field(default_factory=list)
    chunk_parameters: dict = field(default_factory=dict)
