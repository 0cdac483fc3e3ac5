"""Utility helpers for working with files and digests."""

from __future__ import annotations

import hashlib
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, List, Tuple


def compute_sha256(text: str) -> str:
    """Compute the SHA-256 hex digest of text encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@contextmanager
def atomic_writers(*paths: Path) -> Iterator[Tuple[IO[str], ...]]:
    """Write several files through temp files and rename them into place together.

    No target is replaced until every handle has been written and synced. On
    error all temp files are removed and the targets are left as they were.
    """
    pending: List[Tuple[IO[str], str, Path]] = []
    try:
        for path in map(Path, paths):
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            pending.append((os.fdopen(fd, "w", encoding="utf-8", newline="\n"), tmp_name, path))
        yield tuple(handle for handle, _, _ in pending)
        for handle, _, _ in pending:
            handle.flush()
            os.fsync(handle.fileno())
            handle.close()
        for _, tmp_name, path in pending:
            os.replace(tmp_name, path)
    except BaseException:
        for handle, tmp_name, _ in pending:
            handle.close()
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
        raise


@contextmanager
def atomic_writer(path: Path) -> Iterator[IO[str]]:
    """Write to a temp file beside ``path`` and rename it over ``path`` on success."""
    with atomic_writers(path) as (handle,):
        yield handle


def atomic_write_text(path: Path, text: str) -> None:
    with atomic_writer(path) as handle:
        handle.write(text)
