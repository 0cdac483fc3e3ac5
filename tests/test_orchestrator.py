"""End-to-end tests for the online scan against an in-memory origin."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import BASE
from lexfind.config import AppConfig, CatalogSource
from lexfind.errors import QuerySuperseded
from lexfind.ingestion.fetcher import DocumentFetcher
from lexfind.models import DocumentKind, MatchMode, ScanResult
from lexfind.scan.orchestrator import OnlineScanner, ScanState
from lexfind.search.snippets import term_ranges

CATALOGS = (
    CatalogSource(DocumentKind.TEXTBOOK, f"{BASE}/texts/catalog.json"),
    CatalogSource(DocumentKind.LAW, f"{BASE}/laws.json"),
    CatalogSource(DocumentKind.RULE, f"{BASE}/rules.json"),
)
LEGACY = "https://legacy.example.org/law-index"


def _config(**overrides) -> AppConfig:
    return AppConfig(catalogs=CATALOGS, base_origin=BASE, legacy_origins=(LEGACY,), **overrides)


def _routes(**extra) -> dict:
    routes = {
        f"{BASE}/texts/catalog.json": {
            "items": [{"title": "Lewin on Trusts", "url_txt": "texts/lewin.txt"}]
        },
        f"{BASE}/laws.json": [
            {"title": "Trusts Law", "jurisdiction": "Jersey", "url_txt": "./data/a.txt"},
            {"title": "Companies Law", "url_txt": f"{LEGACY}/data/b.txt"},
        ],
        f"{BASE}/rules.json": [{"title": "Royal Court Rules", "url": "/rules/rcr.txt"}],
        f"{BASE}/texts/lewin.txt": "Chapter 1. The nature of a trust.",
        f"{BASE}/data/a.txt": "Lorem ipsum trust trust dolor",
        f"{BASE}/data/b.txt": "A company is a body corporate.",
        f"{BASE}/rules/rcr.txt": "Rule 1. Proceedings.",
    }
    routes.update(extra)
    return routes


def _scan(client_factory, routes, query: str, config: AppConfig | None = None, **kwargs) -> ScanResult:
    async def run() -> ScanResult:
        async with client_factory(routes) as client:
            scanner = OnlineScanner(config or _config(), DocumentFetcher(client, max_concurrency=2))
            return await scanner.scan(query, **kwargs)

    return asyncio.run(run())


def _group(result: ScanResult, kind: DocumentKind):
    return next(group for group in result.groups if group.kind is kind)


class TestOnlineScan:
    def test_trust_scenario(self, client_factory) -> None:
        result = _scan(client_factory, _routes(), "trust", window_chars=10)

        laws = _group(result, DocumentKind.LAW)
        assert [item.document.title for item in laws.items] == ["Trusts Law"]
        item = laws.items[0]
        assert item.match_count == 2
        assert item.document.canonical_url == f"{BASE}/data/a.txt"
        assert all("trust" in snippet.text for snippet in item.snippets)
        assert sum(len(term_ranges(s.text, s.terms)) for s in item.snippets) == 2
        assert result.status == "matches"

    def test_groups_follow_kind_order(self, client_factory) -> None:
        result = _scan(client_factory, _routes(), "trust")

        assert [group.kind for group in result.groups] == list(DocumentKind)
        assert [group.title for group in result.groups] == [kind.group_title for kind in DocumentKind]
        assert len(_group(result, DocumentKind.TEXTBOOK).items) == 1
        assert _group(result, DocumentKind.RULE).items == []

    def test_stats_count_every_document(self, client_factory) -> None:
        routes = _routes()
        result = _scan(client_factory, routes, "trust")

        texts = [routes[f"{BASE}/{name}"] for name in ("texts/lewin.txt", "data/a.txt", "data/b.txt", "rules/rcr.txt")]
        assert result.stats.documents_scanned == 4
        assert result.stats.bytes_scanned == sum(len(t.encode("utf-8")) for t in texts)
        assert result.stats.documents_failed == 0
        assert result.stats.catalogs_skipped == 0

    def test_legacy_location_fetched_from_base(self, client_factory) -> None:
        calls: list = []

        async def run() -> ScanResult:
            async with client_factory(_routes(), calls) as client:
                scanner = OnlineScanner(_config(), DocumentFetcher(client))
                return await scanner.scan("company")

        result = asyncio.run(run())

        assert f"{BASE}/data/b.txt" in calls
        assert not any(url.startswith(LEGACY) for url in calls)
        assert _group(result, DocumentKind.LAW).items[0].document.title == "Companies Law"

    def test_malformed_catalog_skipped(self, client_factory) -> None:
        routes = _routes(**{f"{BASE}/rules.json": "[{not json"})
        result = _scan(client_factory, routes, "trust")

        assert result.stats.catalogs_skipped == 1
        assert len(_group(result, DocumentKind.LAW).items) == 1
        assert len(_group(result, DocumentKind.TEXTBOOK).items) == 1
        assert result.status == "partial"

    def test_missing_document_not_fatal(self, client_factory) -> None:
        routes = _routes()
        del routes[f"{BASE}/data/a.txt"]
        result = _scan(client_factory, routes, "trust")

        assert result.stats.documents_failed == 1
        assert result.stats.documents_scanned == 3
        assert _group(result, DocumentKind.LAW).items == []
        assert len(_group(result, DocumentKind.TEXTBOOK).items) == 1

    def test_unresolvable_descriptor_counted(self, client_factory) -> None:
        routes = _routes(**{f"{BASE}/rules.json": [{"title": "Broken", "url_txt": "ftp://x/y.txt"}, {"title": "Empty"}]})
        result = _scan(client_factory, routes, "trust")

        assert result.stats.descriptors_unresolvable == 1
        assert result.stats.records_skipped == 1

    def test_malformed_url_does_not_abort_scan(self, client_factory) -> None:
        routes = _routes(
            **{
                f"{BASE}/laws.json": [
                    {"title": "Trusts Law", "url_txt": "./data/a.txt"},
                    {"title": "Bad Port", "url_txt": "https://texts.example.org:abc/b.txt"},
                ]
            }
        )
        result = _scan(client_factory, routes, "trust")

        assert result.stats.descriptors_unresolvable == 1
        assert result.stats.documents_failed == 0
        assert [item.document.title for item in _group(result, DocumentKind.LAW).items] == ["Trusts Law"]
        assert result.status == "partial"

    def test_or_mode(self, client_factory) -> None:
        result = _scan(client_factory, _routes(), "company proceedings", mode=MatchMode.OR)

        assert len(_group(result, DocumentKind.LAW).items) == 1
        assert len(_group(result, DocumentKind.RULE).items) == 1
        assert result.mode is MatchMode.OR

    def test_every_item_has_a_snippet(self, client_factory) -> None:
        result = _scan(client_factory, _routes(), "trust", config=_config(max_snippets=1))

        for group in result.groups:
            for item in group.items:
                assert 1 <= len(item.snippets) <= 1
                assert item.match_count >= 1

    def test_no_matches_status(self, client_factory) -> None:
        result = _scan(client_factory, _routes(), '"constructive trust"')

        assert result.match_count == 0
        assert result.status == "no_matches"

    def test_empty_query_rejected(self, client_factory) -> None:
        with pytest.raises(ValueError):
            _scan(client_factory, _routes(), "   ")


class TestSupersession:
    def test_new_query_supersedes_running_one(self, client_factory) -> None:
        async def run() -> tuple:
            entered = asyncio.Event()
            release = asyncio.Event()

            async def slow(request: httpx.Request) -> httpx.Response:
                entered.set()
                await release.wait()
                return httpx.Response(200, text="Lorem ipsum trust trust dolor")

            routes = _routes(**{f"{BASE}/data/a.txt": slow})
            async with client_factory(routes) as client:
                scanner = OnlineScanner(_config(), DocumentFetcher(client))
                first = asyncio.ensure_future(scanner.scan("trust"))
                await entered.wait()

                token = scanner.supersede()
                with pytest.raises(QuerySuperseded):
                    await first
                release.set()
                result = await scanner.scan("dolor", token=token)
            return result, scanner.state

        result, state = asyncio.run(run())

        assert result.query == "dolor"
        assert len(_group(result, DocumentKind.LAW).items) == 1
        assert state is ScanState.DONE
