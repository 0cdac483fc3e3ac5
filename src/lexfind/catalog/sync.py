"""Rewrite catalog files so every ``url_txt`` is canonical and absolute."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from lexfind.catalog.urls import CatalogSyncInventory, pick_candidate, resolve_location
from lexfind.utils.files import atomic_write_text

LOGGER = logging.getLogger(__name__)

SYNC_FIELD = "url_txt"


@dataclass(slots=True)
class SyncReport:
    path: Optional[Path] = None
    entries: int = 0
    changed: int = 0
    unresolvable: int = 0
    relocated: int = 0


def _sync_entry(
    entry: Any,
    report: SyncReport,
    base_origin: str,
    legacy_origins: Sequence[str],
    inventory: Optional[CatalogSyncInventory],
    preference: Sequence[str],
) -> None:
    if not isinstance(entry, dict) or not entry.get(SYNC_FIELD):
        return
    report.entries += 1
    current = entry[SYNC_FIELD]
    target: Optional[str] = None

    if inventory:
        candidate = pick_candidate(inventory, str(current), preference)
        if candidate is not None:
            target = candidate.url
            if target != current:
                report.relocated += 1

    if target is None:
        outcome = resolve_location(current, base_origin, legacy_origins)
        if not outcome.ok:
            LOGGER.warning("Leaving %r untouched: %s", current, outcome.reason)
            report.unresolvable += 1
            return
        target = outcome.url

    if target != current:
        entry[SYNC_FIELD] = target
        report.changed += 1


def sync_catalog(
    data: Any,
    base_origin: str,
    legacy_origins: Sequence[str] = (),
    *,
    inventory: Optional[CatalogSyncInventory] = None,
    preference: Sequence[str] = (),
) -> SyncReport:
    """Canonicalize ``url_txt`` in place for a bare array or ``{"items": [...]}``."""
    report = SyncReport()
    if isinstance(data, list):
        entries = data
    elif isinstance(data, dict) and isinstance(data.get("items"), list):
        entries = data["items"]
    else:
        return report
    for entry in entries:
        _sync_entry(entry, report, base_origin, legacy_origins, inventory, preference)
    return report


def sync_catalog_file(
    path: Path,
    base_origin: str,
    legacy_origins: Sequence[str] = (),
    *,
    inventory: Optional[CatalogSyncInventory] = None,
    preference: Sequence[str] = (),
    dry_run: bool = False,
) -> SyncReport:
    """Sync one catalog file, rewriting it only when something changed."""
    original = path.read_text(encoding="utf-8")
    data = json.loads(original)
    report = sync_catalog(
        data, base_origin, legacy_origins, inventory=inventory, preference=preference
    )
    report.path = path
    updated = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if report.changed and updated != original and not dry_run:
        atomic_write_text(path, updated)
        LOGGER.info("Updated %s (%d entr%s)", path, report.changed, "y" if report.changed == 1 else "ies")
    else:
        LOGGER.info("No changes written for %s", path)
    return report
