"""Span-based query matching shared by the online scan and the index read path."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from lexfind.models import MatchMode, MatchSpan

_QUOTED = re.compile(r'"([^"]+)"')


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    """Either a single quoted phrase or a list of whitespace-separated tokens."""

    raw: str
    phrase: Optional[str] = None
    tokens: Tuple[str, ...] = ()

    @property
    def is_phrase(self) -> bool:
        return self.phrase is not None

    @property
    def terms(self) -> Tuple[str, ...]:
        """Terms to highlight, as the user typed them."""
        return (self.phrase,) if self.phrase is not None else self.tokens

    @property
    def is_empty(self) -> bool:
        return not self.terms


def parse_query(raw: str) -> ParsedQuery:
    """Parse a free-text query.

    A double-quoted substring switches to phrase mode and is the only unit
    matched; anything outside the quotes is ignored. Otherwise the query is
    split on whitespace, dropping repeated tokens (case-insensitively).
    """
    quoted = _QUOTED.search(raw)
    if quoted:
        return ParsedQuery(raw=raw, phrase=quoted.group(1))
    seen = set()
    tokens = []
    for token in raw.split():
        key = token.lower()
        if key not in seen:
            seen.add(key)
            tokens.append(token)
    return ParsedQuery(raw=raw, tokens=tuple(tokens))


def _occurrences(needle: str, text: str) -> List[MatchSpan]:
    # re keeps positions in the original string even where lower() would
    # change the length of a character.
    pattern = re.compile(re.escape(needle), re.IGNORECASE)
    return [MatchSpan(m.start(), m.end()) for m in pattern.finditer(text) if m.end() > m.start()]


def find_spans(query: ParsedQuery, text: str, mode: MatchMode = MatchMode.AND) -> List[MatchSpan]:
    """Return every span of ``text`` satisfying ``query``.

    Matching is case-insensitive substring search, not word-boundary aware.
    Spans are ordered by token, then left to right. In AND mode all tokens'
    spans are collected and the whole result is discarded if any token is
    absent; in OR mode one present token is enough.
    """
    if query.phrase is not None:
        return _occurrences(query.phrase, text)

    spans: List[MatchSpan] = []
    missing = False
    for token in query.tokens:
        found = _occurrences(token, text)
        if not found:
            missing = True
        spans.extend(found)

    if mode is MatchMode.AND and missing:
        return []
    return spans
