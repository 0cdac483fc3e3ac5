"""Tests for the offline index build."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import BASE
from lexfind.errors import IndexEngineFailure, NoUsableDocuments
from lexfind.index.builder import (
    CHUNKS_FILENAME,
    INDEX_FILENAME,
    MANIFEST_FILENAME,
    IndexBuilder,
    LunrEngine,
)
from lexfind.ingestion.fetcher import DocumentFetcher
from lexfind.models import BuildManifest, DocumentDescriptor, DocumentKind, ResolvedDocument
from lexfind.utils.text import ChunkParams, Chunker

TEXTS = {
    f"{BASE}/laws/trusts.txt": "Article 1. A trust is created by a settlor.\n\nArticle 2. Trustees hold property.",
    f"{BASE}/rules/court.txt": "Rule 1. Proceedings in the Royal Court.",
}


def _documents(*names: str) -> list:
    docs = []
    for name in names:
        kind = DocumentKind.RULE if name.startswith("rules/") else DocumentKind.LAW
        descriptor = DocumentDescriptor(name.rsplit("/", 1)[-1], kind, "Jersey", f"./{name}")
        docs.append(ResolvedDocument(descriptor, f"{BASE}/{name}"))
    return docs


class FailingEngine(LunrEngine):
    def finish(self) -> str:
        super().finish()
        raise IndexEngineFailure("disk full")


def _build(client_factory, out_dir: Path, documents, engine=None) -> BuildManifest:
    async def run() -> BuildManifest:
        async with client_factory(TEXTS) as client:
            builder = IndexBuilder(
                DocumentFetcher(client, max_concurrency=2),
                engine or LunrEngine(),
                Chunker(ChunkParams(max_chars=40, overlap=10)),
                out_dir,
                base_origin=BASE,
            )
            return await builder.build(documents)

    return asyncio.run(run())


class TestIndexBuilder:
    def test_writes_artifacts_and_manifest(self, client_factory, tmp_path) -> None:
        manifest = _build(client_factory, tmp_path, _documents("laws/trusts.txt", "rules/court.txt"))

        assert manifest.documents_indexed == 2
        assert manifest.documents_failed == 0
        assert manifest.engine == "lunr"
        assert manifest.chunk_strategy == "window"
        assert manifest.chunk_parameters == {"max_chars": 40, "overlap": 10}

        stored = json.loads((tmp_path / MANIFEST_FILENAME).read_text(encoding="utf-8"))
        assert stored["chunk_count"] == manifest.chunk_count
        assert stored["base_origin"] == BASE
        assert json.loads((tmp_path / INDEX_FILENAME).read_text(encoding="utf-8"))

        lines = (tmp_path / CHUNKS_FILENAME).read_text(encoding="utf-8").splitlines()
        assert len(lines) == manifest.chunk_count
        first = json.loads(lines[0])
        assert first["url"] == f"{BASE}/laws/trusts.txt"
        assert first["kind"] == "Law"
        assert TEXTS[first["url"]][first["start"] : first["end"]] == first["text"]

    def test_failed_document_counted_not_fatal(self, client_factory, tmp_path) -> None:
        manifest = _build(
            client_factory, tmp_path, _documents("laws/trusts.txt", "laws/missing.txt")
        )

        assert manifest.catalog_items == 2
        assert manifest.documents_attempted == 2
        assert manifest.documents_indexed == 1
        assert manifest.documents_failed == 1

    def test_duplicate_urls_indexed_once(self, client_factory, tmp_path) -> None:
        manifest = _build(
            client_factory, tmp_path, _documents("laws/trusts.txt", "laws/trusts.txt")
        )

        assert manifest.catalog_items == 2
        assert manifest.documents_attempted == 1
        ids = [
            json.loads(line)["id"]
            for line in (tmp_path / CHUNKS_FILENAME).read_text(encoding="utf-8").splitlines()
        ]
        assert len(ids) == len(set(ids))

    def test_rebuild_reproduces_chunk_ids(self, client_factory, tmp_path) -> None:
        documents = _documents("laws/trusts.txt", "rules/court.txt")
        _build(client_factory, tmp_path / "one", documents)
        _build(client_factory, tmp_path / "two", documents)

        one = (tmp_path / "one" / CHUNKS_FILENAME).read_text(encoding="utf-8")
        two = (tmp_path / "two" / CHUNKS_FILENAME).read_text(encoding="utf-8")
        assert one == two

    def test_no_usable_documents(self, client_factory, tmp_path) -> None:
        with pytest.raises(NoUsableDocuments):
            _build(client_factory, tmp_path, _documents("laws/missing.txt"))

        assert not (tmp_path / INDEX_FILENAME).exists()
        assert not (tmp_path / CHUNKS_FILENAME).exists()

    def test_engine_failure_keeps_previous_index(self, client_factory, tmp_path) -> None:
        documents = _documents("laws/trusts.txt")
        _build(client_factory, tmp_path, documents)
        before = {
            name: (tmp_path / name).read_text(encoding="utf-8")
            for name in (INDEX_FILENAME, CHUNKS_FILENAME, MANIFEST_FILENAME)
        }

        with pytest.raises(IndexEngineFailure):
            _build(client_factory, tmp_path, _documents("rules/court.txt"), engine=FailingEngine())

        for name, content in before.items():
            assert (tmp_path / name).read_text(encoding="utf-8") == content
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted(before)

    def test_manifest_failure_keeps_previous_artifacts(self, client_factory, tmp_path) -> None:
        _build(client_factory, tmp_path, _documents("laws/trusts.txt"))
        before = {
            name: (tmp_path / name).read_text(encoding="utf-8")
            for name in (INDEX_FILENAME, CHUNKS_FILENAME, MANIFEST_FILENAME)
        }

        with patch.object(IndexBuilder, "_manifest", side_effect=RuntimeError("clock unavailable")):
            with pytest.raises(RuntimeError):
                _build(client_factory, tmp_path, _documents("rules/court.txt"))

        for name, content in before.items():
            assert (tmp_path / name).read_text(encoding="utf-8") == content
        assert sorted(p.name for p in tmp_path.iterdir()) == sorted(before)

    def test_url_refused_by_client_counted_as_failure(self, client_factory, tmp_path) -> None:
        documents = _documents("laws/trusts.txt")
        descriptor = DocumentDescriptor("bad", DocumentKind.LAW, "", "bad")
        documents.append(ResolvedDocument(descriptor, "https://texts.example.org:abc/bad.txt"))

        manifest = _build(client_factory, tmp_path, documents)

        assert manifest.documents_indexed == 1
        assert manifest.documents_failed == 1


class TestLunrEngine:
    def test_add_before_begin(self) -> None:
        with pytest.raises(IndexEngineFailure):
            LunrEngine().add({"id": "x", "text": "y"})
