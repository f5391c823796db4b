"""Context assembler: expand a target into six bounded fact sections.

Every section is best-effort. A section with nothing to report, or whose
lookup fails, renders :data:`PLACEHOLDER` instead of raising, so one
unreadable file or missing tag never costs the whole bundle.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from codefacts.catalog.classify import is_header
from codefacts.context_oracle.resolver import SCOPE_SEPARATOR, end_line_fallback
from codefacts.context_oracle.search import find_chunks_containing
from codefacts.indexing.text import read_text_sanitized, slice_lines, split_lines

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Callable
    from pathlib import Path

    from codefacts.context_oracle.resolver import Target

logger = logging.getLogger(__name__)

PLACEHOLDER = "—"

DEFAULT_MARGIN = 8

# Preprocessor section: fixed re-slice span and output cap.
PREPROCESSOR_SPAN = 30
PREPROCESSOR_MAX_LINES = 30

# Callees section.
CALLEES_MAX_NAMES = 12
CALLEES_MAX_MATCHES = 3

# Usage section.
USAGE_MAX_HITS = 3

# Preceding-comments section.
COMMENT_SCAN_DEPTH = 40
COMMENT_MAX_LINES = 12

_CALL_RE = re.compile(r"\b([A-Za-z_][\w:<>]*)\s*\(")

# Call-like tokens that are control flow or operators, not callees.
_CALL_DENYLIST = frozenset({
    "if",
    "for",
    "while",
    "switch",
    "return",
    "sizeof",
    "alignof",
    "decltype",
    "typeid",
    "static_cast",
    "dynamic_cast",
    "const_cast",
    "reinterpret_cast",
    "new",
    "delete",
    "catch",
    "defined",
})

_COMMENT_PREFIXES = ("//", "/*", "*", "*/")


@dataclass(frozen=True)
class ContextBundle:
    """The six fact sections assembled for one target."""

    decl_def: str
    class_type: str
    preprocessor: str
    callees: str
    usage: str
    comments: str


def _or_placeholder(text: str) -> str:
    return text if text.strip() else PLACEHOLDER


def _best_effort(section: str, build: Callable[[], str]) -> str:
    try:
        return _or_placeholder(build())
    except Exception as exc:  # noqa: BLE001
        logger.debug("Section %s unavailable: %s", section, exc)
        return PLACEHOLDER


def section_decl_def(project_root: Path, target: Target, margin: int) -> str:
    """Source of the target plus *margin* lines on each side."""
    text = read_text_sanitized(project_root / target.path)
    return slice_lines(text, max(target.begin_line - margin, 1), target.end_line + margin)


def enclosing_type_name(target: Target) -> str | None:
    """Name of the scope component directly enclosing the target, if any."""
    if not target.fqn:
        return None
    parts = target.fqn.split(SCOPE_SEPARATOR)
    if len(parts) < 2:
        return None
    return parts[-2] or None


def section_class_type(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    target: Target,
    margin: int,
) -> str:
    """Declaration of the class/struct enclosing the target, headers first."""
    type_name = enclosing_type_name(target)
    if type_name is None:
        return ""
    rows = conn.execute(
        "SELECT f.path, t.line, t.end_line FROM tags t "
        "JOIN files f ON f.id = t.file_id "
        "WHERE f.namespace = ? AND t.kind IN ('class', 'struct') AND t.name = ? "
        "ORDER BY f.path, t.line",
        (namespace, type_name),
    ).fetchall()
    if not rows:
        return ""
    row = sorted(rows, key=lambda r: 0 if is_header(r["path"]) else 1)[0]
    path: str = row["path"]
    line: int = row["line"]
    end = row["end_line"]
    if end is None or end <= 0:
        end = end_line_fallback(conn, project_root, namespace, path, line)
    text = read_text_sanitized(project_root / path)
    return slice_lines(text, max(line - margin, 1), end + margin)


def section_preprocessor(project_root: Path, target: Target) -> str:
    """Preprocessor directives around the target."""
    text = read_text_sanitized(project_root / target.path)
    window = slice_lines(
        text,
        max(target.begin_line - PREPROCESSOR_SPAN, 1),
        target.end_line + PREPROCESSOR_SPAN,
    )
    directives = [ln for ln in split_lines(window) if ln.lstrip().startswith("#")]
    return "\n".join(directives[:PREPROCESSOR_MAX_LINES])


def extract_call_names(body: str, limit: int = CALLEES_MAX_NAMES) -> list[str]:
    """Call-like tokens in *body*, first-seen order, keywords removed."""
    names: list[str] = []
    for match in _CALL_RE.finditer(body):
        name = match.group(1)
        if name.split("<", 1)[0] in _CALL_DENYLIST or name in names:
            continue
        names.append(name)
        if len(names) >= limit:
            break
    return names


def _short_name(token: str) -> str:
    """``ns::Type<int>::get`` → ``get``."""
    return token.split("<", 1)[0].rsplit(SCOPE_SEPARATOR, 1)[-1]


def section_callees(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    target: Target,
) -> str:
    """Known signatures of functions called from the target body."""
    text = read_text_sanitized(project_root / target.path)
    body = slice_lines(text, target.begin_line, target.end_line)

    out: list[str] = []
    seen: set[str] = set()
    for token in extract_call_names(body):
        short = _short_name(token)
        # a::get and b::get look up the same tags
        if not short or short in seen:
            continue
        seen.add(short)
        rows = conn.execute(
            "SELECT DISTINCT t.name, t.scope, t.signature FROM tags t "
            "JOIN files f ON f.id = t.file_id "
            "WHERE f.namespace = ? AND t.name = ? "
            "AND t.kind IN ('function', 'prototype', 'member') "
            "ORDER BY f.path, t.line LIMIT ?",
            (namespace, short, CALLEES_MAX_MATCHES),
        ).fetchall()
        matches = []
        for r in rows:
            fqn = f"{r['scope']}{SCOPE_SEPARATOR}{r['name']}" if r["scope"] else r["name"]
            matches.append(f"• {fqn}{r['signature'] or ''}")
        if matches:
            out.append(" | ".join(matches))
    return "\n".join(out)


def section_usage(conn: sqlite3.Connection, namespace: str, target: Target) -> str:
    """Locations in test code that mention the target's short name."""
    hits = find_chunks_containing(
        conn, namespace, target.name, tests_only=True, limit=USAGE_MAX_HITS
    )
    return "\n".join(f"• {path}:{line}" for path, line in hits)


def section_comments(project_root: Path, target: Target) -> str:
    """The comment block closest above the target, in source order."""
    lines = split_lines(read_text_sanitized(project_root / target.path))
    collected: list[str] = []
    # Index of the line immediately above the target (0-based).
    start = min(target.begin_line - 2, len(lines) - 1)
    stop = max(start - COMMENT_SCAN_DEPTH, -1)
    for idx in range(start, stop, -1):
        line = lines[idx]
        if line.lstrip().startswith(_COMMENT_PREFIXES):
            collected.append(line)
            if len(collected) >= COMMENT_MAX_LINES:
                break
        elif collected:
            break
    collected.reverse()
    return "\n".join(collected)


def assemble(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    target: Target,
    margin: int = DEFAULT_MARGIN,
) -> ContextBundle:
    """Build all six sections for *target*."""
    return ContextBundle(
        decl_def=_best_effort(
            "decl_def", lambda: section_decl_def(project_root, target, margin)
        ),
        class_type=_best_effort(
            "class_type",
            lambda: section_class_type(conn, project_root, namespace, target, margin),
        ),
        preprocessor=_best_effort(
            "preprocessor", lambda: section_preprocessor(project_root, target)
        ),
        callees=_best_effort(
            "callees", lambda: section_callees(conn, project_root, namespace, target)
        ),
        usage=_best_effort("usage", lambda: section_usage(conn, namespace, target)),
        comments=_best_effort("comments", lambda: section_comments(project_root, target)),
    )
