"""Tag ingester: rebuild tags and chunks for every pending file."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from codefacts.indexing.chunker import build_chunks, sort_tags
from codefacts.indexing.tagger import TAG_KINDS, TagRecord, run_tagger
from codefacts.indexing.text import count_lines, read_text_sanitized, sha256_text, slice_lines

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Callable, Iterable, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingFile:
    """A file whose last indexed digest differs from its current digest."""

    id: int
    path: str
    sha: str
    mtime: int


@dataclass
class IndexResult:
    """Summary of an index run."""

    files_indexed: int = 0
    files_skipped: int = 0
    tags_indexed: int = 0
    chunks_indexed: int = 0
    nothing_changed: bool = False
    warnings: list[str] = field(default_factory=list)


def pending_files(conn: sqlite3.Connection, namespace: str) -> list[PendingFile]:
    """Return files never indexed or changed since their last index, ordered by path."""
    rows = conn.execute(
        "SELECT id, path, COALESCE(sha, '') AS sha, COALESCE(mtime, 0) AS mtime "
        "FROM files "
        "WHERE namespace = ? AND (indexed_sha IS NULL OR indexed_sha != sha) "
        "ORDER BY path",
        (namespace,),
    ).fetchall()
    return [
        PendingFile(id=r["id"], path=r["path"], sha=r["sha"], mtime=r["mtime"])
        for r in rows
    ]


def group_tags(records: Iterable[TagRecord]) -> dict[str, list[TagRecord]]:
    """Keep chunkable records, group them by path and sort each group by line."""
    by_path: dict[str, list[TagRecord]] = defaultdict(list)
    for rec in records:
        if rec.line is None or rec.kind not in TAG_KINDS:
            continue
        by_path[rec.path].append(rec)
    return {path: sort_tags(tags) for path, tags in by_path.items()}


def _replace_file_index(
    conn: sqlite3.Connection,
    pending: PendingFile,
    tags: Sequence[TagRecord],
    text: str,
) -> tuple[int, int]:
    """Delete and re-insert one file's tags and chunks. Returns ``(tags, chunks)``."""
    conn.execute("DELETE FROM tags WHERE file_id = ?", (pending.id,))
    conn.execute("DELETE FROM chunks WHERE file_id = ?", (pending.id,))

    for tag in tags:
        conn.execute(
            "INSERT INTO tags (file_id, name, kind, line, scope, scope_kind, "
            "signature, lang, end_line) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                pending.id,
                tag.name,
                tag.kind,
                tag.line,
                tag.scope,
                tag.scope_kind,
                tag.signature,
                tag.language or "",
                tag.end,
            ),
        )

    chunk_bounds = build_chunks(tags, count_lines(text))
    for bounds in chunk_bounds:
        chunk_text = slice_lines(text, bounds.begin_line, bounds.end_line)
        conn.execute(
            "INSERT INTO chunks (file_id, kind, symbol, begin_line, end_line, sha, "
            "mtime, text) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                pending.id,
                bounds.kind,
                bounds.symbol,
                bounds.begin_line,
                bounds.end_line,
                sha256_text(chunk_text),
                pending.mtime,
                chunk_text,
            ),
        )
    return len(tags), len(chunk_bounds)


def index(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    *,
    tagger: Callable[[Path, Sequence[str]], list[TagRecord]] = run_tagger,
) -> IndexResult:
    """Rebuild tags and chunks for every pending file in *namespace*.

    The tagger runs once for the whole batch before anything is written,
    so a tagger failure (``TaggerError``) leaves every file pending. A file
    that cannot be read is skipped with a warning and stays pending. All
    writes happen in one transaction.
    """
    result = IndexResult()

    pending = pending_files(conn, namespace)
    if not pending:
        result.nothing_changed = True
        return result

    records = tagger(project_root, [p.path for p in pending])
    by_path = group_tags(records)
    now = int(time.time())

    with conn:
        total = len(pending)
        for pos, pf in enumerate(pending, start=1):
            logger.info("Indexing %d/%d: %s", pos, total, pf.path)
            try:
                text = read_text_sanitized(project_root / pf.path)
            except OSError as exc:
                logger.warning("Cannot read %s, leaving it pending: %s", pf.path, exc)
                result.warnings.append(f"{pf.path}: {exc}")
                result.files_skipped += 1
                continue

            n_tags, n_chunks = _replace_file_index(conn, pf, by_path.get(pf.path, []), text)
            conn.execute(
                "UPDATE files SET indexed_sha = ?, indexed_at = ? WHERE id = ?",
                (pf.sha, now, pf.id),
            )
            result.files_indexed += 1
            result.tags_indexed += n_tags
            result.chunks_indexed += n_chunks

    return result
