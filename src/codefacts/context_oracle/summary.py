"""Project summary facts: build directives, entry points, structure, TODOs."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from codefacts.indexing.text import read_text_sanitized, split_lines

if TYPE_CHECKING:
    import sqlite3
    from pathlib import Path

logger = logging.getLogger(__name__)

BUILD_LIMIT = 40
STRUCTURE_TOP = 10
TODO_LIMIT = 20

# CMake directives that say something about how the project is built.
_CMAKE_SIGNAL_RE = re.compile(
    r"^\s*(?:project\s*\(|add_(?:executable|library)\s*\(|target_link_libraries\s*\("
    r"|find_package\s*\(|target_compile_features\s*\(|set\s*\(\s*CMAKE_CXX_STANDARD\b"
    r"|target_include_directories\s*\(|include_directories\s*\(|add_subdirectory\s*\("
    r"|option\s*\()",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class ProjectSummary:
    """Four fact sections describing the project as a whole."""

    build: str
    entrypoints: str
    structure: str
    todos: str

    def render(self) -> str:
        return (
            f"[BUILD]\n{self.build}\n\n"
            f"[ENTRYPOINTS]\n{self.entrypoints}\n\n"
            f"[STRUCTURE]\n{self.structure}\n\n"
            f"[TODOs]\n{self.todos}\n"
        )


def collect_build_facts(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    limit: int = BUILD_LIMIT,
) -> str:
    """Signal CMake directives from manifest files, deduplicated."""
    rows = conn.execute(
        "SELECT path FROM files WHERE namespace = ? AND doc_kind = 'manifest' "
        "AND (lower(path) LIKE '%cmakelists.txt' OR lower(path) LIKE '%.cmake') "
        "ORDER BY path",
        (namespace,),
    ).fetchall()

    out: list[str] = []
    seen: set[str] = set()
    for row in rows:
        path: str = row["path"]
        try:
            text = read_text_sanitized(project_root / path)
        except OSError as exc:
            logger.debug("Cannot read %s: %s", path, exc)
            continue
        for line in split_lines(text):
            if not _CMAKE_SIGNAL_RE.match(line):
                continue
            norm = " ".join(line.split())
            if norm in seen:
                continue
            seen.add(norm)
            out.append(f"{path}: {norm}")
            if len(out) >= limit:
                return "\n".join(out)
    return "\n".join(out) if out else "— no CMake build directives found"


def collect_entry_points(conn: sqlite3.Connection, namespace: str) -> str:
    """``main`` functions plus a count of chunks carrying test-framework markers."""
    out = [
        f"main: {r['path']}:{r['line']}"
        for r in conn.execute(
            "SELECT f.path, t.line FROM tags t JOIN files f ON f.id = t.file_id "
            "WHERE f.namespace = ? AND t.kind = 'function' AND t.name = 'main' "
            "ORDER BY f.path, t.line",
            (namespace,),
        )
    ]
    tests = conn.execute(
        "SELECT COUNT(*) FROM chunks c JOIN files f ON f.id = c.file_id "
        "WHERE f.namespace = ? AND (instr(c.text, 'TEST(') > 0 "
        "OR instr(c.text, 'TEST_CASE(') > 0 OR instr(c.text, 'Catch::Session') > 0)",
        (namespace,),
    ).fetchone()[0]
    if tests:
        out.append(f"tests: ~{tests} chunks with test markers (gtest/catch2)")
    return "\n".join(out) if out else "— no main() found"


def short_dir(path: str) -> str:
    """Last two directory components of *path*, or ``.`` at the root."""
    parts = path.split("/")[:-1]
    return "/".join(parts[-2:]) if parts else "."


def collect_structure(
    conn: sqlite3.Connection, namespace: str, top: int = STRUCTURE_TOP
) -> str:
    """Per-directory counts of classes, functions and namespaces, busiest first."""
    per_dir: dict[str, list[int]] = {}
    for row in conn.execute(
        "SELECT f.path, t.kind FROM tags t JOIN files f ON f.id = t.file_id "
        "WHERE f.namespace = ?",
        (namespace,),
    ):
        counts = per_dir.setdefault(short_dir(row["path"]), [0, 0, 0])
        kind = row["kind"]
        if kind in ("class", "struct"):
            counts[0] += 1
        elif kind in ("function", "member", "prototype"):
            counts[1] += 1
        elif kind == "namespace":
            counts[2] += 1

    ranked = sorted(per_dir.items(), key=lambda item: (-sum(item[1]), item[0]))
    out = [
        f"{d}: classes={c}, funcs={f}, namespaces={n}"
        for d, (c, f, n) in ranked[:top]
    ]
    return "\n".join(out) if out else "— no tags (run index)"


def collect_todos(conn: sqlite3.Connection, namespace: str, limit: int = TODO_LIMIT) -> str:
    """Locations of chunks mentioning TODO, FIXME or HACK."""
    out = [
        f"{r['path']}:{r['begin_line']}"
        for r in conn.execute(
            "SELECT f.path, c.begin_line FROM chunks c JOIN files f ON f.id = c.file_id "
            "WHERE f.namespace = ? AND (instr(c.text, 'TODO') > 0 "
            "OR instr(c.text, 'FIXME') > 0 OR instr(c.text, 'HACK') > 0) "
            "ORDER BY f.path, c.begin_line LIMIT ?",
            (namespace, limit),
        )
    ]
    return "\n".join(out) if out else "— no TODO/FIXME/HACK found"


def summarize(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    *,
    build_limit: int = BUILD_LIMIT,
) -> ProjectSummary:
    """Collect the four project-level fact sections."""
    return ProjectSummary(
        build=collect_build_facts(conn, project_root, namespace, build_limit),
        entrypoints=collect_entry_points(conn, namespace),
        structure=collect_structure(conn, namespace),
        todos=collect_todos(conn, namespace),
    )
