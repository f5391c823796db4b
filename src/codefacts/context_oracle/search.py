"""Chunk text search: FTS5 token search and exact substring lookup."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import sqlite3

# Path heuristic for test code when doc_kind was not classified as tests.
_TEST_PATH_CLAUSE = "(f.doc_kind = 'tests' OR instr(lower(f.path), 'test') > 0)"


def _escape_fts5_query(query: str) -> str:
    """Escape and prepare a query string for FTS5 MATCH.

    Splits into words and double-quotes each token so that special
    characters (``*``, ``-``, ``:``, etc.) are treated as literals.
    """
    words = query.strip().split()
    if not words:
        return ""
    return " ".join('"{}"'.format(w.replace('"', '""')) for w in words)


def search_chunks(
    conn: sqlite3.Connection,
    namespace: str,
    query: str,
    *,
    kind: str | None = None,
    limit: int = 10,
) -> list[dict[str, Any]]:
    """Search chunk text with FTS5, best match first.

    Returns list of dicts with path, kind, symbol, begin_line, end_line,
    snippet, rank.
    """
    safe_query = _escape_fts5_query(query)
    if not safe_query:
        return []

    sql = (
        "SELECT f.path, c.kind, c.symbol, c.begin_line, c.end_line, "
        "snippet(fts_chunks, 0, '[', ']', '...', 16) AS snippet, "
        "fts_chunks.rank AS rank "
        "FROM fts_chunks "
        "JOIN chunks c ON c.id = fts_chunks.rowid "
        "JOIN files f ON f.id = c.file_id "
        "WHERE fts_chunks MATCH ? AND f.namespace = ?"
    )
    params: list[Any] = [safe_query, namespace]
    if kind:
        sql += " AND c.kind = ?"
        params.append(kind)
    sql += " ORDER BY rank, f.path, c.begin_line LIMIT ?"
    params.append(limit)

    rows = conn.execute(sql, params).fetchall()
    return [
        {
            "path": r["path"],
            "kind": r["kind"],
            "symbol": r["symbol"],
            "begin_line": r["begin_line"],
            "end_line": r["end_line"],
            "snippet": r["snippet"],
            "rank": r["rank"],
        }
        for r in rows
    ]


def find_chunks_containing(
    conn: sqlite3.Connection,
    namespace: str,
    needle: str,
    *,
    tests_only: bool = False,
    limit: int = 10,
) -> list[tuple[str, int]]:
    """Return ``(path, begin_line)`` of chunks whose text contains *needle* verbatim.

    Case-sensitive; LIKE wildcards in *needle* have no special meaning.
    """
    if not needle:
        return []
    sql = (
        "SELECT f.path, c.begin_line FROM chunks c "
        "JOIN files f ON f.id = c.file_id "
        "WHERE f.namespace = ? AND instr(c.text, ?) > 0"
    )
    if tests_only:
        sql += f" AND {_TEST_PATH_CLAUSE}"
    sql += " ORDER BY f.path, c.begin_line LIMIT ?"
    rows = conn.execute(sql, (namespace, needle, limit)).fetchall()
    return [(r["path"], r["begin_line"]) for r in rows]


def has_fts5(conn: sqlite3.Connection) -> bool:
    """Check if the FTS5 shadow table exists and is populated."""
    try:
        row = conn.execute("SELECT count(*) FROM fts_chunks").fetchone()
        return bool(row[0] > 0)
    except Exception:  # table may not exist
        return False
