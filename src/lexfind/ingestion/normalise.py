"""Clean-up filter for OCR'd and scraped legal texts: raw text in, normalized text out."""

from __future__ import annotations

import html
import logging
import re

LOGGER = logging.getLogger(__name__)

REPLACEMENT_CHAR = "\ufffd"
# More replacement characters than this means the file was probably not UTF-8.
MAX_REPLACEMENTS = 10

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_DASHES = re.compile(r" *\u2010|[\u2011\u2012\u2013\u2014]")
_TRAILING_BLANKS = re.compile(r"[ \t]+\n")
_BLANK_RUNS = re.compile(r"\n{3,}")
_PAGE_FOOTER = re.compile(r"\n?Page\s+\d+\s+of\s+\d+\s*\n")


def decode_text(raw: bytes) -> str:
    """Decode bytes as UTF-8, falling back to Windows-1252 for mis-encoded files."""
    text = raw.decode("utf-8", errors="replace")
    if text.count(REPLACEMENT_CHAR) > MAX_REPLACEMENTS:
        LOGGER.debug("Too many replacement characters, decoding as cp1252")
        text = raw.decode("cp1252", errors="replace")
    return text


def clean_text(text: str) -> str:
    text = _CONTROL_CHARS.sub("", text)
    text = html.unescape(text)

    text = text.replace("\u00a0", " ").replace("\u00ad", "")
    text = _DASHES.sub("-", text)
    text = _TRAILING_BLANKS.sub("\n", text)
    text = _BLANK_RUNS.sub("\n\n", text)

    text = (
        text.replace("\u201c", '"')
        .replace("\u201d", '"')
        .replace("\u2018", "'")
        .replace("\u2019", "'")
        .replace("\u2026", "...")
    )
    return _PAGE_FOOTER.sub("\n", text)
