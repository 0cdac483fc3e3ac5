"""Canonical URL resolution and inventory reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import unquote, urljoin, urlsplit

import httpx

from lexfind.errors import DescriptorUnresolvable
from lexfind.models import DocumentDescriptor, ResolvedDocument

LOGGER = logging.getLogger(__name__)

FETCHABLE_SCHEMES = ("http", "https")


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of resolving one location: either ``url`` or ``reason`` is set."""

    url: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.url is not None


def _valid_origin(origin: str) -> bool:
    parts = urlsplit(origin)
    return parts.scheme in FETCHABLE_SCHEMES and bool(parts.netloc)


def _rewrite_legacy(url: str, base_origin: str, legacy_origins: Sequence[str]) -> str:
    for legacy in legacy_origins:
        prefix = legacy.rstrip("/")
        if url == prefix or url.startswith(prefix + "/"):
            return base_origin.rstrip("/") + url[len(prefix):]
    return url


def _checked(url: str) -> Resolution:
    # urlsplit accepts some URLs the HTTP client refuses, e.g. a non-numeric port.
    try:
        urlsplit(url).port
        httpx.URL(url)
    except (httpx.InvalidURL, ValueError) as exc:
        return Resolution(reason=f"malformed URL {url!r}: {exc}")
    return Resolution(url=url)


def resolve_location(
    location: object,
    base_origin: str,
    legacy_origins: Sequence[str] = (),
) -> Resolution:
    """Resolve a raw catalog location to one absolute URL.

    Absolute URLs are kept, except that a known legacy origin is swapped for
    ``base_origin`` with the path preserved. Relative locations (``./x``,
    ``x``, ``/x``) are resolved against ``base_origin``. Never raises.
    """
    if not isinstance(location, str) or not location.strip():
        return Resolution(reason="missing location")
    location = location.strip()
    if not _valid_origin(base_origin):
        return Resolution(reason=f"invalid base origin {base_origin!r}")

    try:
        parts = urlsplit(location)
    except ValueError as exc:
        return Resolution(reason=f"malformed location: {exc}")

    if parts.scheme:
        if parts.scheme.lower() not in FETCHABLE_SCHEMES:
            return Resolution(reason=f"unsupported scheme {parts.scheme!r}")
        if not parts.netloc:
            return Resolution(reason="absolute location without host")
        return _checked(_rewrite_legacy(location, base_origin, legacy_origins))

    try:
        resolved = urljoin(base_origin.rstrip("/") + "/", location)
    except ValueError as exc:
        return Resolution(reason=f"malformed location: {exc}")
    if not _valid_origin(resolved):
        return Resolution(reason=f"could not resolve {location!r}")
    return _checked(_rewrite_legacy(resolved, base_origin, legacy_origins))


def resolve_descriptors(
    descriptors: Iterable[DocumentDescriptor],
    base_origin: str,
    legacy_origins: Sequence[str] = (),
) -> Tuple[List[ResolvedDocument], int]:
    """Resolve descriptors in order, dropping (and counting) unresolvable ones."""
    resolved: List[ResolvedDocument] = []
    dropped = 0
    for descriptor in descriptors:
        outcome = resolve_location(descriptor.source_location, base_origin, legacy_origins)
        if not outcome.ok:
            LOGGER.warning(
                "Dropping %r: %s",
                descriptor.title,
                DescriptorUnresolvable(descriptor.source_location, outcome.reason),
            )
            dropped += 1
            continue
        resolved.append(ResolvedDocument(descriptor=descriptor, canonical_url=outcome.url))
    return resolved, dropped


# --- inventory reconciliation -------------------------------------------------


@dataclass(frozen=True, slots=True)
class Candidate:
    origin: str
    path: str

    @property
    def url(self) -> str:
        return f"{self.origin.rstrip('/')}/{self.path.lstrip('/')}"


CatalogSyncInventory = Dict[str, List[Candidate]]


def normalize_filename(name: str) -> str:
    """Final path segment, percent-decoded and lower-cased."""
    segment = urlsplit(name).path.rstrip("/").rsplit("/", 1)[-1]
    return unquote(segment).lower()


def build_inventory(entries: Iterable[Tuple[str, str]]) -> CatalogSyncInventory:
    """Group ``(origin, path)`` pairs by normalized filename, keeping discovery order."""
    inventory: CatalogSyncInventory = {}
    for origin, path in entries:
        key = normalize_filename(path)
        if not key:
            continue
        candidate = Candidate(origin=origin, path=path)
        bucket = inventory.setdefault(key, [])
        if candidate not in bucket:
            bucket.append(candidate)
    return inventory


def inventory_from_mapping(data: Mapping[str, Iterable[str]]) -> CatalogSyncInventory:
    """Build an inventory from ``{origin: [path, ...]}``."""
    return build_inventory((origin, path) for origin, paths in data.items() for path in paths)


def pick_candidate(
    inventory: CatalogSyncInventory,
    filename: str,
    preference: Sequence[str] = (),
) -> Optional[Candidate]:
    """Pick the best location for ``filename``.

    The earliest origin in ``preference`` wins; origins not listed rank after
    all listed ones, in discovery order.
    """
    candidates = inventory.get(normalize_filename(filename))
    if not candidates:
        return None
    ranks = {origin.rstrip("/"): rank for rank, origin in enumerate(preference)}
    unranked = len(ranks)
    # sorted() is stable, so discovery order breaks ties.
    return sorted(candidates, key=lambda c: ranks.get(c.origin.rstrip("/"), unranked))[0]
