"""FastAPI application exposing the online full-text scan."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from lexfind.config import AppConfig
from lexfind.errors import QuerySuperseded
from lexfind.ingestion.fetcher import DocumentFetcher, make_client
from lexfind.models import MatchMode, ScanResult
from lexfind.scan.orchestrator import CancelToken, OnlineScanner
from lexfind.search.snippets import highlight_html

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="lexfind", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class ScanPayload(BaseModel):
    query: str
    mode: MatchMode = MatchMode.AND
    window_chars: Optional[int] = Field(default=None, gt=0, le=5000)


class SnippetOut(BaseModel):
    text: str
    terms: List[str]
    html: str


class ItemOut(BaseModel):
    title: str
    url: str
    jurisdiction: str
    matches: int
    bytes: int
    sha256: str
    snippets: List[SnippetOut]


class GroupOut(BaseModel):
    kind: str
    title: str
    items: List[ItemOut]


class StatsOut(BaseModel):
    scanned_documents: int
    scanned_bytes: int
    failed_documents: int
    skipped_catalogs: int
    elapsed_ms: int


class ScanResponse(BaseModel):
    query: str
    mode: MatchMode
    status: str
    groups: List[GroupOut]
    stats: StatsOut


class ScanSession:
    """Hands out one token per request; a new request supersedes the previous one."""

    def __init__(self) -> None:
        self._current: Optional[CancelToken] = None

    def begin(self) -> CancelToken:
        if self._current is not None:
            self._current.cancel()
        self._current = CancelToken()
        return self._current


session = ScanSession()


def _config() -> AppConfig:
    return AppConfig()


def _to_response(result: ScanResult) -> ScanResponse:
    groups = [
        GroupOut(
            kind=group.kind.value,
            title=group.title,
            items=[
                ItemOut(
                    title=item.document.title,
                    url=item.document.canonical_url,
                    jurisdiction=item.document.jurisdiction,
                    matches=item.match_count,
                    bytes=item.byte_length,
                    sha256=item.content_digest,
                    snippets=[
                        SnippetOut(text=s.text, terms=list(s.terms), html=highlight_html(s))
                        for s in item.snippets
                    ],
                )
                for item in group.items
            ],
        )
        for group in result.groups
    ]
    stats = result.stats
    return ScanResponse(
        query=result.query,
        mode=result.mode,
        status=result.status,
        groups=groups,
        stats=StatsOut(
            scanned_documents=stats.documents_scanned,
            scanned_bytes=stats.bytes_scanned,
            failed_documents=stats.documents_failed,
            skipped_catalogs=stats.catalogs_skipped,
            elapsed_ms=stats.elapsed_ms,
        ),
    )


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/scan")
async def scan_documents(payload: ScanPayload) -> ScanResponse:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    config = _config()
    token = session.begin()
    try:
        async with make_client(config) as client:
            scanner = OnlineScanner(config, DocumentFetcher.from_config(client, config))
            result = await scanner.scan(
                query, mode=payload.mode, window_chars=payload.window_chars, token=token
            )
    except QuerySuperseded:
        raise HTTPException(status_code=409, detail="Query superseded by a newer request")
    if token.cancelled:
        # Finished just as a newer request arrived; its results win.
        raise HTTPException(status_code=409, detail="Query superseded by a newer request")
    return _to_response(result)
