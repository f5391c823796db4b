"""File catalog: walk the project tree, fingerprint files, upsert into ``files``."""

from __future__ import annotations

import fnmatch
import hashlib
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import pathspec

from codefacts.catalog.classify import classify_doc, guess_lang

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

GITIGNORE_FILENAME = ".gitignore"

# Digest read size; bounds memory for arbitrarily large files.
_BLOCK_SIZE = 64 * 1024

DEFAULT_INCLUDE: tuple[str, ...] = (
    # C/C++ sources and headers
    "*.c", "*.cc", "*.cpp", "*.cxx", "*.h", "*.hh", "*.hpp", "*.inl", "*.ipp",
    # build and meta files
    "CMakeLists.txt", "*.cmake", "Makefile", "meson.build", "conanfile.*",
    "vcpkg.json", "compile_commands.json", "README*", "*.md",
)

DEFAULT_EXCLUDE_DIRS: tuple[str, ...] = (
    ".git", ".codefacts", "build", "out", "dist", "target", "node_modules",
    "__pycache__", ".cache", ".ccls-cache", ".venv", "venv", "cmake-build-*",
)


@dataclass(frozen=True)
class ScanPolicy:
    """Which files the walk picks up (glob patterns on file / directory names)."""

    include: tuple[str, ...] = DEFAULT_INCLUDE
    exclude_dirs: tuple[str, ...] = DEFAULT_EXCLUDE_DIRS
    gitignore: bool = True

    def wants_file(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pat) for pat in self.include)

    def skips_dir(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pat) for pat in self.exclude_dirs)


class GitIgnoreRules:
    """``.gitignore`` files met during the walk, each applied below its own directory."""

    def __init__(self) -> None:
        self._specs: list[tuple[str, pathspec.GitIgnoreSpec]] = []

    def load(self, project_root: Path, directory: Path) -> None:
        """Compile ``directory/.gitignore`` if present; an unreadable file is skipped."""
        path = directory / GITIGNORE_FILENAME
        if not path.is_file():
            return
        try:
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            return
        rel_dir = directory.relative_to(project_root).as_posix()
        spec = pathspec.GitIgnoreSpec.from_lines(lines)
        self._specs.append(("" if rel_dir == "." else rel_dir, spec))

    def ignores(self, rel_path: str, *, is_dir: bool = False) -> bool:
        """True if a ``.gitignore`` above *rel_path* (POSIX, project-relative) excludes it."""
        for base, spec in self._specs:
            if base:
                if not rel_path.startswith(base + "/"):
                    continue
                local = rel_path[len(base) + 1:]
            else:
                local = rel_path
            if spec.match_file(local + "/" if is_dir else local):
                return True
        return False


@dataclass
class ScanResult:
    """Summary of a scan run."""

    files_seen: int = 0
    bytes_seen: int = 0
    warnings: list[str] = field(default_factory=list)


def sha256_file(path: Path) -> str:
    """Compute the SHA-256 of a file by streaming fixed-size blocks."""
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for block in iter(lambda: fh.read(_BLOCK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def iter_project_files(project_root: Path, policy: ScanPolicy) -> Iterator[Path]:
    """Yield regular files under *project_root* accepted by *policy*, in sorted order.

    Symlinked files and directories are not followed. With ``policy.gitignore``
    set, paths matched by any ``.gitignore`` in the tree are left out.
    """
    rules = GitIgnoreRules()
    for dirpath, dirnames, filenames in os.walk(project_root, followlinks=False):
        base = Path(dirpath)
        if policy.gitignore:
            rules.load(project_root, base)
        rel_base = base.relative_to(project_root).as_posix()
        prefix = "" if rel_base == "." else rel_base + "/"
        dirnames[:] = sorted(
            d for d in dirnames
            if not policy.skips_dir(d) and not rules.ignores(prefix + d, is_dir=True)
        )
        for name in sorted(filenames):
            if not policy.wants_file(name) or rules.ignores(prefix + name):
                continue
            path = base / name
            if path.is_symlink() or not path.is_file():
                continue
            yield path


def scan(
    conn: sqlite3.Connection,
    project_root: Path,
    namespace: str,
    *,
    policy: ScanPolicy | None = None,
) -> ScanResult:
    """Walk the tree and upsert one ``files`` row per file.

    Never touches ``indexed_sha`` / ``indexed_at``: a changed digest is what
    leaves a file pending for the next index run. All writes of the walk
    are committed in a single transaction.
    """
    policy = policy or ScanPolicy()
    result = ScanResult()
    now = int(time.time())

    with conn:
        for path in iter_project_files(project_root, policy):
            rel_path = path.relative_to(project_root).as_posix()
            try:
                stat = path.stat()
                digest = sha256_file(path)
            except OSError as exc:
                logger.warning("Cannot read %s: %s", rel_path, exc)
                result.warnings.append(f"{rel_path}: {exc}")
                continue

            conn.execute(
                "INSERT INTO files (namespace, path, size, mtime, sha, lang_guess, "
                "doc_kind, seen_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(namespace, path) DO UPDATE SET "
                "size = excluded.size, mtime = excluded.mtime, sha = excluded.sha, "
                "lang_guess = excluded.lang_guess, doc_kind = excluded.doc_kind, "
                "seen_at = excluded.seen_at",
                (
                    namespace,
                    rel_path,
                    stat.st_size,
                    int(stat.st_mtime),
                    digest,
                    guess_lang(rel_path),
                    classify_doc(rel_path),
                    now,
                ),
            )
            result.files_seen += 1
            result.bytes_seen += stat.st_size

    logger.info("Scanned %d files (%d bytes)", result.files_seen, result.bytes_seen)
    return result
