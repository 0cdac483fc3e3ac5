"""Snippet selection and highlighting."""

from __future__ import annotations

import html
import re
from typing import Iterable, List, Sequence, Tuple

from lexfind.models import MatchSpan, Snippet


def select_spans(spans: Iterable[MatchSpan], max_count: int) -> List[MatchSpan]:
    """Pick up to ``max_count`` non-overlapping spans, left to right.

    First found wins: a span starting before the end of the previously
    selected one is skipped regardless of its length.
    """
    chosen: List[MatchSpan] = []
    if max_count <= 0:
        return chosen
    last_end = -1
    for span in sorted(spans, key=lambda s: s.start):
        if span.start < last_end:
            continue
        chosen.append(span)
        last_end = span.end
        if len(chosen) >= max_count:
            break
    return chosen


def snippet_bounds(span: MatchSpan, text_length: int, width: int) -> Tuple[int, int]:
    """Window of ``width`` characters centered on the span's midpoint, clamped to the text."""
    half = width // 2
    start = max(0, (span.start + span.end) // 2 - half)
    end = min(text_length, start + width)
    return start, end


def select_snippets(
    spans: Iterable[MatchSpan],
    text: str,
    *,
    width: int,
    max_count: int,
    terms: Sequence[str] = (),
) -> List[Snippet]:
    snippets = []
    for span in select_spans(spans, max_count):
        start, end = snippet_bounds(span, len(text), width)
        snippets.append(Snippet(text=text[start:end], terms=tuple(terms), start=start, end=end))
    return snippets


def term_ranges(text: str, terms: Iterable[str]) -> List[Tuple[int, int]]:
    """Non-overlapping ``(start, end)`` ranges of term occurrences, longest term first."""
    taken: List[Tuple[int, int]] = []
    for term in sorted((t for t in terms if t), key=len, reverse=True):
        for match in re.finditer(re.escape(term), text, re.IGNORECASE):
            start, end = match.span()
            if all(end <= s or start >= e for s, e in taken):
                taken.append((start, end))
    return sorted(taken)


def highlight_html(snippet: Snippet) -> str:
    """Escape the snippet and wrap term occurrences in ``<mark>``."""
    parts = []
    cursor = 0
    for start, end in term_ranges(snippet.text, snippet.terms):
        parts.append(html.escape(snippet.text[cursor:start]))
        parts.append(f"<mark>{html.escape(snippet.text[start:end])}</mark>")
        cursor = end
    parts.append(html.escape(snippet.text[cursor:]))
    return "".join(parts)
