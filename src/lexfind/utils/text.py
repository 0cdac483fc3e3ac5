"""Text helpers: deterministic chunking with stable offsets."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Iterator, List, Tuple

from lexfind.models import Chunk, ResolvedDocument

if TYPE_CHECKING:
    from lexfind.config import AppConfig

Span = Tuple[int, int]

_PARAGRAPH_BREAK = re.compile(r"\n{2,}")


class ChunkStrategy(str, Enum):
    WINDOW = "window"
    LINES = "lines"
    PARAGRAPHS = "paragraphs"


def iter_window_spans(text: str, *, max_chars: int = 1200, overlap: int = 200) -> Iterator[Span]:
    """Yield ``(start, end)`` of overlapping character windows.

    Window ``k`` starts at ``k * (max_chars - overlap)``; iteration stops as
    soon as a window reaches the end of the text, so the last window may be
    short but is never fully contained in its predecessor.
    """
    if not 0 <= overlap < max_chars:
        raise ValueError("overlap must satisfy 0 <= overlap < max_chars")
    if not text.strip():
        return

    length = len(text)
    step = max_chars - overlap
    start = 0
    while True:
        end = min(start + max_chars, length)
        yield start, end
        if end >= length:
            return
        start += step


def _line_spans(text: str) -> List[Span]:
    spans: List[Span] = []
    start = 0
    length = len(text)
    while start < length:
        newline = text.find("\n", start)
        end = length if newline < 0 else newline + 1
        spans.append((start, end))
        start = end
    return spans


def iter_line_spans(text: str, *, lines: int = 40, step: int = 20) -> Iterator[Span]:
    """Yield windows of ``lines`` lines advancing by ``step`` lines.

    Windows made only of blank lines are skipped; the scan ends once a window
    reaches the last line.
    """
    if not 0 < step <= lines:
        raise ValueError("step must satisfy 0 < step <= lines")
    line_spans = _line_spans(text)
    count = len(line_spans)
    for first in range(0, count, step):
        last = min(first + lines, count) - 1
        start, end = line_spans[first][0], line_spans[last][1]
        if text[start:end].strip():
            yield start, end
        if first + lines >= count:
            return


def iter_paragraph_spans(text: str) -> Iterator[Span]:
    """Yield paragraphs separated by blank lines, trimmed of surrounding whitespace."""
    for block_start, block_end in _paragraph_blocks(text):
        block = text[block_start:block_end]
        stripped = block.strip()
        if not stripped:
            continue
        start = block_start + len(block) - len(block.lstrip())
        yield start, start + len(stripped)


def _paragraph_blocks(text: str) -> Iterator[Span]:
    start = 0
    for match in _PARAGRAPH_BREAK.finditer(text):
        yield start, match.start()
        start = match.end()
    yield start, len(text)


def make_chunk_id(document_url: str, start_offset: int) -> str:
    """Stable id derived from document identity and start offset."""
    digest = hashlib.sha1(document_url.encode("utf-8")).hexdigest()[:12]
    return f"{digest}#{start_offset}"


@dataclass(frozen=True, slots=True)
class ChunkParams:
    strategy: ChunkStrategy = ChunkStrategy.WINDOW
    max_chars: int = 1200
    overlap: int = 200
    lines: int = 40
    step: int = 20

    def __post_init__(self) -> None:
        if not 0 <= self.overlap < self.max_chars:
            raise ValueError("overlap must satisfy 0 <= overlap < max_chars")
        if not 0 < self.step <= self.lines:
            raise ValueError("step must satisfy 0 < step <= lines")

    @classmethod
    def from_config(cls, config: "AppConfig") -> "ChunkParams":
        return cls(
            strategy=ChunkStrategy(config.chunk_strategy),
            max_chars=config.chunk_chars,
            overlap=config.overlap,
            lines=config.chunk_lines,
            step=config.line_step,
        )

    def describe(self) -> dict:
        if self.strategy is ChunkStrategy.WINDOW:
            return {"max_chars": self.max_chars, "overlap": self.overlap}
        if self.strategy is ChunkStrategy.LINES:
            return {"lines": self.lines, "step": self.step}
        return {}


class Chunker:
    """Split a document's text into :class:`Chunk` records using one strategy."""

    def __init__(self, params: ChunkParams | None = None) -> None:
        self.params = params or ChunkParams()

    def spans(self, text: str) -> Iterator[Span]:
        params = self.params
        if params.strategy is ChunkStrategy.WINDOW:
            return iter_window_spans(text, max_chars=params.max_chars, overlap=params.overlap)
        if params.strategy is ChunkStrategy.LINES:
            return iter_line_spans(text, lines=params.lines, step=params.step)
        return iter_paragraph_spans(text)

    def chunk(self, document: ResolvedDocument, text: str) -> Iterator[Chunk]:
        """Produce chunks lazily, in ascending start-offset order."""
        for start, end in self.spans(text):
            yield Chunk(
                id=make_chunk_id(document.canonical_url, start),
                document=document,
                text=text[start:end],
                start_offset=start,
                end_offset=end,
            )
