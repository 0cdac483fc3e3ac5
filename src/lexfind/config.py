"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Tuple

from lexfind.models import DocumentKind, MatchMode
from lexfind.utils.text import ChunkStrategy

DEFAULT_BASE_ORIGIN = "https://texts.wwwbcb.org"
DEFAULT_LEGACY_ORIGINS = ("https://info1691.github.io/law-index",)


@dataclass(frozen=True, slots=True)
class CatalogSource:
    kind: DocumentKind
    url: str

    @classmethod
    def parse(cls, value: str) -> "CatalogSource":
        """Parse ``KIND=URL`` as given on the command line."""
        kind, sep, url = value.partition("=")
        if not sep or not url.strip():
            raise ValueError(f"Expected KIND=URL, got {value!r}")
        return cls(kind=DocumentKind.parse(kind), url=url.strip())


DEFAULT_CATALOGS: Tuple[CatalogSource, ...] = (
    CatalogSource(DocumentKind.TEXTBOOK, f"{DEFAULT_BASE_ORIGIN}/texts/catalog.json"),
    CatalogSource(DocumentKind.LAW, f"{DEFAULT_BASE_ORIGIN}/laws.json"),
    CatalogSource(DocumentKind.RULE, f"{DEFAULT_BASE_ORIGIN}/rules.json"),
)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Immutable settings handed to every pipeline stage."""

    catalogs: Tuple[CatalogSource, ...] = DEFAULT_CATALOGS
    base_origin: str = DEFAULT_BASE_ORIGIN
    legacy_origins: Tuple[str, ...] = DEFAULT_LEGACY_ORIGINS
    window_chars: int = 240
    max_snippets: int = 6
    match_mode: MatchMode = MatchMode.AND
    max_concurrency: int = 4
    request_delay: float = 0.0
    timeout: float = 30.0
    chunk_strategy: str = "window"
    chunk_chars: int = 1200
    overlap: int = 200
    chunk_lines: int = 40
    line_step: int = 20
    output_dir: Path = Path("data/index")

    def __post_init__(self) -> None:
        if not 0 <= self.overlap < self.chunk_chars:
            raise ValueError("overlap must satisfy 0 <= overlap < chunk_chars")
        if not 0 < self.line_step <= self.chunk_lines:
            raise ValueError("line_step must satisfy 0 < line_step <= chunk_lines")
        if self.chunk_strategy not in {strategy.value for strategy in ChunkStrategy}:
            raise ValueError(f"Unknown chunk strategy: {self.chunk_strategy!r}")
        if self.window_chars <= 0:
            raise ValueError("window_chars must be positive")
        if self.max_snippets <= 0:
            raise ValueError("max_snippets must be positive")
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def with_overrides(self, **changes: Any) -> "AppConfig":
        """Return a copy with the non-``None`` values of ``changes`` applied."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    def resolve_output_dir(self, base_dir: Path | None = None) -> Path:
        if Path(self.output_dir).is_absolute() or base_dir is None:
            return Path(self.output_dir)
        return base_dir / self.output_dir
