"""Target resolver: map a symbol or a file + line range to one concrete target."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from codefacts.errors import RangeParseError, TargetNotFoundError
from codefacts.indexing.text import count_lines, read_text_sanitized

if TYPE_CHECKING:
    import sqlite3
    from pathlib import Path

logger = logging.getLogger(__name__)

SCOPE_SEPARATOR = "::"
RANGE_TARGET_NAME = "<range>"

_BOUND_RE = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class Target:
    """The resolved subject of a context query."""

    path: str
    name: str
    kind: str
    begin_line: int
    end_line: int
    fqn: str | None = None
    signature: str | None = None

    @property
    def display_name(self) -> str:
        return self.fqn or self.name


def split_fqn(symbol: str) -> tuple[str | None, str]:
    """Split ``a::b::c`` into ``("a::b", "c")``; unscoped names get ``None``."""
    scope, sep, name = symbol.rpartition(SCOPE_SEPARATOR)
    if not sep:
        return None, symbol
    return scope, name


def parse_range(value: str) -> tuple[int, int]:
    """Parse ``"A:B"`` into ``(min, max)``.

    Raises
    ------
    RangeParseError
        Unless *value* is exactly two colon-separated integers.
    """
    parts = value.split(":")
    if len(parts) != 2:
        msg = f"lines must be A:B, got {value!r}"
        raise RangeParseError(msg)
    if not all(_BOUND_RE.fullmatch(part) for part in parts):
        msg = f"lines must be A:B with integer bounds, got {value!r}"
        raise RangeParseError(msg)
    a, b = int(parts[0]), int(parts[1])
    return min(a, b), max(a, b)


def file_line_count(project_root: Path, path: str) -> int:
    """Number of lines in the sanitized text of *path*.

    Raises
    ------
    TargetNotFoundError
        If the file is gone or unreadable, e.g. deleted since the last index run.
    """
    try:
        text = read_text_sanitized(project_root / path)
    except OSError as exc:
        msg = (
            f"cannot read {path}: {exc.strerror or exc} "
            "(re-run `codefacts scan` and `codefacts index`)"
        )
        raise TargetNotFoundError(msg) from exc
    return count_lines(text)


def end_line_fallback(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    path: str,
    line: int,
) -> int:
    """Approximate the end of a tag at *line* that has no declared end.

    The line before the next tag in the same file, or the file's last line
    when no later tag exists.
    """
    row = conn.execute(
        "SELECT MIN(t.line) FROM tags t JOIN files f ON f.id = t.file_id "
        "WHERE f.namespace = ? AND f.path = ? AND t.line > ?",
        (namespace, path, line),
    ).fetchone()
    if row is not None and row[0] is not None:
        return int(row[0]) - 1
    return file_line_count(project_root, path)


def _tag_end(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    path: str,
    line: int,
    end_line: int | None,
) -> int:
    if end_line is not None and end_line > 0:
        return end_line
    return end_line_fallback(conn, project_root, namespace, path, line)


def _qualify(scope: str | None, name: str) -> str | None:
    return f"{scope}{SCOPE_SEPARATOR}{name}" if scope else None


def resolve_symbol(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    symbol: str,
) -> Target:
    """Resolve a short or scope-qualified symbol name.

    Unscoped tags win over scoped ones, then lower path, then lower line.
    """
    _scope, short = split_fqn(symbol)
    row = conn.execute(
        "SELECT f.path, t.name, t.kind, t.line, t.end_line, t.scope, t.signature "
        "FROM tags t JOIN files f ON f.id = t.file_id "
        "WHERE f.namespace = ? "
        "AND (t.name = ? OR (t.scope IS NOT NULL AND t.scope || '::' || t.name = ?)) "
        "ORDER BY (CASE WHEN t.scope IS NULL OR t.scope = '' THEN 0 ELSE 1 END), "
        "f.path, t.line "
        "LIMIT 1",
        (namespace, short, symbol),
    ).fetchone()
    if row is None:
        msg = f"symbol not found: {symbol}"
        raise TargetNotFoundError(msg)

    path: str = row["path"]
    line: int = row["line"]
    return Target(
        path=path,
        name=row["name"],
        kind=row["kind"],
        begin_line=line,
        end_line=_tag_end(conn, project_root, namespace, path, line, row["end_line"]),
        fqn=_qualify(row["scope"], row["name"]),
        signature=row["signature"],
    )


def resolve_range(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    path: str,
    lines: str,
) -> Target:
    """Resolve a line range to the symbol starting at or above its first line.

    The symbol's extent is widened to cover the whole range. When no tag
    starts at or above the range, the range itself becomes a ``block``
    target.
    """
    a, b = parse_range(lines)
    file_row = conn.execute(
        "SELECT id FROM files WHERE namespace = ? AND path = ?",
        (namespace, path),
    ).fetchone()
    if file_row is None:
        msg = f"file not indexed: {path}"
        raise TargetNotFoundError(msg)

    tag = conn.execute(
        "SELECT name, kind, line, end_line, scope, signature FROM tags "
        "WHERE file_id = ? AND line <= ? ORDER BY line DESC, id LIMIT 1",
        (file_row["id"], a),
    ).fetchone()
    if tag is None:
        logger.debug("No tag at or above %s:%d, using raw range", path, a)
        return Target(
            path=path,
            name=RANGE_TARGET_NAME,
            kind="block",
            begin_line=a,
            end_line=b,
        )

    line: int = tag["line"]
    tag_end = _tag_end(conn, project_root, namespace, path, line, tag["end_line"])
    return Target(
        path=path,
        name=tag["name"],
        kind=tag["kind"],
        begin_line=line,
        end_line=max(b, tag_end),
        fqn=_qualify(tag["scope"], tag["name"]),
        signature=tag["signature"],
    )


def resolve(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    *,
    symbol: str | None = None,
    file: str | None = None,
    lines: str | None = None,
) -> Target | None:
    """Resolve a query to a :class:`Target`.

    A symbol takes precedence over a file + line range. Returns ``None``
    when neither was requested.

    Raises
    ------
    TargetNotFoundError
        If the symbol or file is not in the index.
    RangeParseError
        If *lines* is not ``A:B``.
    """
    if symbol:
        return resolve_symbol(conn, project_root, namespace, symbol)
    if file and lines:
        return resolve_range(conn, project_root, namespace, file, lines)
    return None
