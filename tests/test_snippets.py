"""Tests for snippet selection and highlighting."""

from __future__ import annotations

from lexfind.models import MatchSpan, Snippet
from lexfind.search.snippets import (
    highlight_html,
    select_snippets,
    select_spans,
    snippet_bounds,
    term_ranges,
)


class TestSelectSpans:
    def test_overlapping_spans_skipped(self) -> None:
        spans = [MatchSpan(10, 20), MatchSpan(0, 5), MatchSpan(3, 8), MatchSpan(20, 22)]

        assert select_spans(spans, 6) == [MatchSpan(0, 5), MatchSpan(10, 20), MatchSpan(20, 22)]

    def test_first_found_wins_over_longer_span(self) -> None:
        assert select_spans([MatchSpan(0, 2), MatchSpan(1, 30)], 6) == [MatchSpan(0, 2)]

    def test_cap(self) -> None:
        spans = [MatchSpan(i * 10, i * 10 + 3) for i in range(10)]

        assert len(select_spans(spans, 6)) == 6
        assert select_spans(spans, 0) == []


class TestSnippetBounds:
    def test_centered_on_midpoint(self) -> None:
        assert snippet_bounds(MatchSpan(100, 110), 1000, 40) == (85, 125)

    def test_clamped_at_start(self) -> None:
        assert snippet_bounds(MatchSpan(2, 5), 1000, 40) == (0, 40)

    def test_clamped_at_end(self) -> None:
        assert snippet_bounds(MatchSpan(95, 99), 100, 40) == (77, 100)

    def test_text_shorter_than_window(self) -> None:
        assert snippet_bounds(MatchSpan(1, 3), 10, 240) == (0, 10)


class TestSelectSnippets:
    def test_each_snippet_contains_its_span(self) -> None:
        text = "Lorem ipsum trust trust dolor"
        spans = [MatchSpan(12, 17), MatchSpan(18, 23)]

        snippets = select_snippets(spans, text, width=10, max_count=6, terms=("trust",))

        assert [s.text for s in snippets] == ["sum trust ", "st trust d"]
        for span, snippet in zip(spans, snippets):
            assert snippet.start <= span.start and span.end <= snippet.end
        assert sum(len(term_ranges(s.text, s.terms)) for s in snippets) == 2


class TestHighlight:
    def test_marks_terms_and_escapes(self) -> None:
        snippet = Snippet(text="<b>Trust</b> & trust", terms=("trust",))

        assert highlight_html(snippet) == "&lt;b&gt;<mark>Trust</mark>&lt;/b&gt; &amp; <mark>trust</mark>"

    def test_longest_term_wins(self) -> None:
        assert term_ranges("trustee trust", ["trust", "trustee"]) == [(0, 7), (8, 13)]

    def test_no_terms(self) -> None:
        assert highlight_html(Snippet(text="a < b", terms=())) == "a &lt; b"
