"""Turn heterogeneous catalog payloads into document descriptors."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Sequence

from lexfind.errors import CatalogUnreadable
from lexfind.models import DocumentDescriptor, DocumentKind

LOGGER = logging.getLogger(__name__)

# Checked in order; the first non-empty string wins.
LOCATION_FIELDS: Sequence[str] = ("url_txt", "url", "href")
TITLE_FIELDS: Sequence[str] = ("title", "name", "label")
UNTITLED = "(untitled)"


@dataclass(slots=True)
class NormalizedCatalog:
    kind: DocumentKind
    descriptors: List[DocumentDescriptor] = field(default_factory=list)
    skipped: int = 0


def extract_records(raw: Any) -> list:
    """Find the record list in a payload of unknown shape.

    Accepts a bare array, an object with an ``items`` or ``records`` array, or
    an arbitrary object whose values are the records.
    """
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        for key in ("items", "records"):
            if isinstance(raw.get(key), list):
                return raw[key]
        return list(raw.values())
    return []


def _first_string(record: dict, names: Sequence[str]) -> str:
    for name in names:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def normalize_catalog(raw: Any, kind: DocumentKind) -> NormalizedCatalog:
    """Map every record carrying a text location to a descriptor.

    Source order is preserved; records without a location are counted as
    skipped.
    """
    result = NormalizedCatalog(kind=kind)
    for record in extract_records(raw):
        if not isinstance(record, dict):
            result.skipped += 1
            continue
        location = _first_string(record, LOCATION_FIELDS)
        if not location:
            result.skipped += 1
            continue
        jurisdiction = record.get("jurisdiction")
        result.descriptors.append(
            DocumentDescriptor(
                title=_first_string(record, TITLE_FIELDS) or UNTITLED,
                kind=kind,
                jurisdiction=jurisdiction.strip() if isinstance(jurisdiction, str) else "",
                source_location=location,
            )
        )
    if result.skipped:
        LOGGER.debug("Skipped %d %s record(s) without a text location", result.skipped, kind.value)
    return result


def parse_catalog(payload: str | bytes, *, source: str = "<catalog>") -> Any:
    """Decode a JSON catalog body, raising ``CatalogUnreadable`` on bad input."""
    try:
        return json.loads(payload)
    except (ValueError, UnicodeDecodeError) as exc:
        raise CatalogUnreadable(source, f"invalid JSON: {exc}") from exc
