"""Index statistics for one namespace."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import sqlite3
    from pathlib import Path

_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


@dataclass
class IndexStats:
    namespace: str
    db_path: str
    db_bytes: int = 0
    files_total: int = 0
    bytes_total: int = 0
    files_indexed: int = 0
    files_pending: int = 0
    doc_kinds: list[tuple[str, int]] = field(default_factory=list)
    tags: int = 0
    chunks: int = 0
    chunk_text_bytes: int = 0
    last_seen_at: int | None = None
    last_indexed_at: int | None = None


def human_size(n: int) -> str:
    """Format a byte count with a binary unit: ``1536`` → ``1.50 KB``."""
    if n <= 0:
        return "0 B"
    v = float(n)
    i = 0
    while v >= 1024 and i < len(_UNITS) - 1:
        v /= 1024
        i += 1
    if v >= 100:
        return f"{v:.0f} {_UNITS[i]}"
    if v >= 10:
        return f"{v:.1f} {_UNITS[i]}"
    return f"{v:.2f} {_UNITS[i]}"


def format_ts(ts: int | None) -> str:
    """UTC ISO-8601 for a unix timestamp, ``-`` when unset."""
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")


def collect_stats(conn: sqlite3.Connection, namespace: str, db_path: Path) -> IndexStats:
    """Gather file, tag and chunk totals for *namespace*."""
    stats = IndexStats(namespace=namespace, db_path=str(db_path))
    try:
        stats.db_bytes = db_path.stat().st_size
    except OSError:
        stats.db_bytes = 0

    row = conn.execute(
        "SELECT COUNT(*), COALESCE(SUM(size), 0), "
        "COALESCE(SUM(CASE WHEN indexed_sha IS NOT NULL AND indexed_sha = sha "
        "THEN 1 ELSE 0 END), 0), "
        "MAX(seen_at), MAX(indexed_at) "
        "FROM files WHERE namespace = ?",
        (namespace,),
    ).fetchone()
    stats.files_total = row[0]
    stats.bytes_total = row[1]
    stats.files_indexed = row[2]
    stats.files_pending = stats.files_total - stats.files_indexed
    stats.last_seen_at = row[3]
    stats.last_indexed_at = row[4]

    stats.doc_kinds = [
        (r[0] or "?", r[1])
        for r in conn.execute(
            "SELECT doc_kind, COUNT(*) FROM files WHERE namespace = ? "
            "GROUP BY doc_kind ORDER BY COUNT(*) DESC, doc_kind",
            (namespace,),
        )
    ]

    stats.tags = conn.execute(
        "SELECT COUNT(*) FROM tags t JOIN files f ON f.id = t.file_id WHERE f.namespace = ?",
        (namespace,),
    ).fetchone()[0]

    row = conn.execute(
        "SELECT COUNT(*), COALESCE(SUM(length(c.text)), 0) "
        "FROM chunks c JOIN files f ON f.id = c.file_id WHERE f.namespace = ?",
        (namespace,),
    ).fetchone()
    stats.chunks = row[0]
    stats.chunk_text_bytes = row[1]
    return stats
