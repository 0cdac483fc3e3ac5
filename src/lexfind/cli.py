"""Command line interface for lexfind."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from lexfind.catalog.normalizer import normalize_catalog
from lexfind.catalog.sync import sync_catalog_file
from lexfind.catalog.urls import inventory_from_mapping, resolve_descriptors
from lexfind.config import AppConfig, CatalogSource
from lexfind.errors import CatalogUnreadable, LexFindError
from lexfind.index.builder import IndexBuilder, LunrEngine
from lexfind.index.search import IndexSearcher
from lexfind.ingestion.fetcher import DocumentFetcher, make_client
from lexfind.ingestion.normalise import clean_text, decode_text
from lexfind.models import BuildManifest, MatchMode, ScanResult, Snippet
from lexfind.scan.orchestrator import OnlineScanner
from lexfind.search.snippets import term_ranges
from lexfind.utils.files import atomic_write_text
from lexfind.utils.text import ChunkParams, ChunkStrategy, Chunker

LOGGER = logging.getLogger(__name__)

console = Console()
app = typer.Typer(help="lexfind - full-text search over catalogued legal texts")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _parse_catalogs(values: Optional[List[str]]) -> Optional[tuple]:
    if not values:
        return None
    try:
        return tuple(CatalogSource.parse(value) for value in values)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--catalog") from exc


def _highlighted(snippet: Snippet) -> Text:
    text = Text(snippet.text.replace("\n", " "))
    for start, end in term_ranges(snippet.text, snippet.terms):
        text.stylize("bold yellow", start, end)
    return text


def _print_scan(result: ScanResult) -> None:
    stats = result.stats
    console.print(
        f'query="{result.query}" - scanned {stats.documents_scanned} file(s), '
        f"{stats.bytes_scanned:,} bytes in {stats.elapsed_ms} ms"
    )
    if stats.documents_failed or stats.catalogs_skipped:
        console.print(
            f"[yellow]{stats.documents_failed} document(s) and "
            f"{stats.catalogs_skipped} catalog(s) could not be read.[/yellow]"
        )
    if result.status == "no_matches":
        console.print("[yellow]No full-text matches.[/yellow]")
        return

    for group in result.groups:
        if not group.items:
            continue
        console.rule(group.title)
        for item in group.items:
            console.print(
                f"[bold]{item.document.title}[/bold]  "
                f"{item.match_count} hit(s) - {item.byte_length:,} B - "
                f"SHA-256 {item.content_digest[:7]}"
            )
            console.print(f"  {item.document.canonical_url}", style="dim")
            for snippet in item.snippets:
                console.print(Text("  ") + _highlighted(snippet))


@app.command()
def scan(
    query: str = typer.Argument(..., help="Query text; wrap a phrase in double quotes"),
    or_mode: bool = typer.Option(False, "--or", help="Match any token instead of all"),
    window: int = typer.Option(AppConfig().window_chars, help="Snippet window in characters"),
    max_snippets: int = typer.Option(AppConfig().max_snippets, help="Snippets per document"),
    catalog: Optional[List[str]] = typer.Option(None, help="Catalog as KIND=URL (repeatable)"),
    concurrency: int = typer.Option(AppConfig().max_concurrency, help="Parallel fetches"),
    timeout: float = typer.Option(AppConfig().timeout, help="Per-request timeout in seconds"),
    normalize: bool = typer.Option(False, "--normalize", help="Clean OCR artifacts before matching"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Fetch every catalogued text and scan it for QUERY."""
    _setup_logging(verbose)
    if not query.strip():
        raise typer.BadParameter("Empty query", param_hint="QUERY")
    try:
        config = AppConfig().with_overrides(
            catalogs=_parse_catalogs(catalog),
            window_chars=window,
            max_snippets=max_snippets,
            max_concurrency=concurrency,
            timeout=timeout,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    async def run() -> ScanResult:
        async with make_client(config) as client:
            fetcher = DocumentFetcher.from_config(
                client, config, text_filter=clean_text if normalize else None
            )
            scanner = OnlineScanner(config, fetcher)
            return await scanner.scan(query, mode=MatchMode.OR if or_mode else MatchMode.AND)

    _print_scan(asyncio.run(run()))


async def _load_documents(config: AppConfig, fetcher: DocumentFetcher) -> tuple:
    documents = []
    items = 0
    for source in config.catalogs:
        try:
            payload = await fetcher.fetch_catalog(source.url)
        except CatalogUnreadable as exc:
            LOGGER.warning("Skipping catalog: %s", exc)
            continue
        catalog = normalize_catalog(payload, source.kind)
        items += len(catalog.descriptors)
        resolved, _ = resolve_descriptors(catalog.descriptors, config.base_origin, config.legacy_origins)
        documents.extend(resolved)
    return documents, items


@app.command()
def build(
    out: Path = typer.Option(AppConfig().output_dir, "--out", help="Output directory"),
    catalog: Optional[List[str]] = typer.Option(None, help="Catalog as KIND=URL (repeatable)"),
    strategy: ChunkStrategy = typer.Option(ChunkStrategy.WINDOW, help="Chunking strategy"),
    chunk_chars: int = typer.Option(AppConfig().chunk_chars, help="Window size in characters"),
    overlap: int = typer.Option(AppConfig().overlap, help="Window overlap in characters"),
    lines: int = typer.Option(AppConfig().chunk_lines, help="Lines per chunk"),
    step: int = typer.Option(AppConfig().line_step, help="Lines to advance per chunk"),
    concurrency: int = typer.Option(AppConfig().max_concurrency, help="Parallel fetches"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Fetch, chunk and index every catalogued text."""
    _setup_logging(verbose)
    try:
        config = AppConfig().with_overrides(
            catalogs=_parse_catalogs(catalog),
            output_dir=out,
            chunk_strategy=strategy.value,
            chunk_chars=chunk_chars,
            overlap=overlap,
            chunk_lines=lines,
            line_step=step,
            max_concurrency=concurrency,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    out_dir = config.resolve_output_dir(Path.cwd())
    chunker = Chunker(ChunkParams.from_config(config))

    async def run() -> BuildManifest:
        async with make_client(config) as client:
            fetcher = DocumentFetcher.from_config(client, config)
            documents, items = await _load_documents(config, fetcher)
            builder = IndexBuilder(
                fetcher, LunrEngine(), chunker, out_dir, base_origin=config.base_origin
            )
            return await builder.build(documents, catalog_items=items)

    console.print(f"Building index into [bold]{out_dir}[/bold]...")
    try:
        manifest = asyncio.run(run())
    except LexFindError as exc:
        console.print(f"[red]Build failed:[/red] {exc}")
        raise typer.Exit(code=1)
    console.print(
        f"Catalog items: {manifest.catalog_items}, indexed: {manifest.documents_indexed}, "
        f"failed: {manifest.documents_failed}, chunks: {manifest.chunk_count}"
    )


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    index: Path = typer.Option(AppConfig().output_dir, "--index", help="Index directory"),
    or_mode: bool = typer.Option(False, "--or", help="Match any token instead of all"),
    top_k: int = typer.Option(10, help="Number of results to display"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Query a previously built index."""
    _setup_logging(verbose)
    index_dir = AppConfig(output_dir=index).resolve_output_dir(Path.cwd())
    if not index_dir.exists():
        raise typer.BadParameter(f"Index not found: {index_dir}")

    searcher = IndexSearcher.load(index_dir)
    results = searcher.search(query, mode=MatchMode.OR if or_mode else MatchMode.AND, top_k=top_k)
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Offset")
    table.add_column("Snippet")

    for result in results:
        snippet = _highlighted(result.snippets[0]) if result.snippets else Text(result.text[:180])
        table.add_row(f"{result.score:.4f}", result.title, str(result.start), snippet)

    console.print(table)


@app.command("sync-catalog")
def sync_catalog(
    files: List[Path] = typer.Argument(..., help="Catalog JSON files to rewrite", exists=True),
    base: str = typer.Option(AppConfig().base_origin, help="Canonical origin"),
    legacy: Optional[List[str]] = typer.Option(None, help="Legacy origin to rewrite (repeatable)"),
    inventory: Optional[Path] = typer.Option(
        None, help="JSON object mapping origin to known file paths", exists=True
    ),
    prefer: Optional[List[str]] = typer.Option(None, help="Origin preference order (repeatable)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report without writing"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Normalize url_txt entries of catalog files to absolute canonical URLs."""
    _setup_logging(verbose)
    files_inventory = None
    if inventory is not None:
        files_inventory = inventory_from_mapping(json.loads(inventory.read_text(encoding="utf-8")))
    legacy_origins = tuple(legacy) if legacy else AppConfig().legacy_origins

    for path in files:
        try:
            report = sync_catalog_file(
                path,
                base,
                legacy_origins,
                inventory=files_inventory,
                preference=tuple(prefer or ()),
                dry_run=dry_run,
            )
        except ValueError as exc:
            console.print(f"[red]{path}: not valid JSON ({exc})[/red]")
            raise typer.Exit(code=1)
        verb = "Would update" if dry_run else "Updated"
        if report.changed:
            console.print(f"{verb} {path}: {report.changed} of {report.entries} entr(ies)")
        else:
            console.print(f"No changes for {path}")
        if report.unresolvable:
            console.print(f"[yellow]{report.unresolvable} unresolvable entr(ies) left as-is[/yellow]")


@app.command()
def normalize(
    source: Path = typer.Argument(..., help="Raw text file", exists=True, dir_okay=False),
    target: Path = typer.Argument(..., help="Where to write the cleaned UTF-8 text"),
) -> None:
    """Clean OCR artifacts and encoding problems in a text file."""
    text = clean_text(decode_text(source.read_bytes()))
    atomic_write_text(target, text)
    console.print(f"Normalized -> {target.resolve()}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from lexfind.web.app import app as web_app

    console.print(f"Starting web interface on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")
