"""Tests for codefacts.catalog.scanner — tree walk and file fingerprints."""

from __future__ import annotations

import hashlib
import os
from typing import TYPE_CHECKING

import pytest

from codefacts.catalog.scanner import ScanPolicy, iter_project_files, scan, sha256_file

if TYPE_CHECKING:
    import sqlite3
    from pathlib import Path


def _rows(conn: sqlite3.Connection, namespace: str) -> dict[str, sqlite3.Row]:
    return {
        r["path"]: r
        for r in conn.execute("SELECT * FROM files WHERE namespace = ?", (namespace,))
    }


class TestSha256File:
    def test_matches_hashlib(self, tmp_path: Path) -> None:
        data = os.urandom(200_000)
        path = tmp_path / "blob.bin"
        path.write_bytes(data)
        assert sha256_file(path) == hashlib.sha256(data).hexdigest()


class TestIterProjectFiles:
    def test_default_policy(self, tmp_project: Path) -> None:
        (tmp_project / "notes.txt").write_text("x")
        found = [p.relative_to(tmp_project).as_posix() for p in iter_project_files(
            tmp_project, ScanPolicy()
        )]
        assert found == [
            "CMakeLists.txt",
            "src/worker.cpp",
            "src/worker.hpp",
            "tests/worker_test.cpp",
        ]

    def test_excluded_dirs_not_walked(self, tmp_project: Path) -> None:
        for d in (".git", "build", "cmake-build-debug", ".codefacts"):
            (tmp_project / d).mkdir()
            (tmp_project / d / "gen.cpp").write_text("int x;\n")
        found = {p.name for p in iter_project_files(tmp_project, ScanPolicy())}
        assert "gen.cpp" not in found

    def test_custom_policy(self, tmp_project: Path) -> None:
        policy = ScanPolicy(include=("*.hpp",), exclude_dirs=())
        found = [p.name for p in iter_project_files(tmp_project, policy)]
        assert found == ["worker.hpp"]

    def test_gitignore_honoured(self, tmp_project: Path) -> None:
        (tmp_project / ".gitignore").write_text("# generated\nvendor/\n*.gen.hpp\n")
        (tmp_project / "vendor").mkdir()
        (tmp_project / "vendor" / "x.cpp").write_text("int x;\n")
        (tmp_project / "src" / "table.gen.hpp").write_text("int t;\n")
        found = [p.relative_to(tmp_project).as_posix() for p in iter_project_files(
            tmp_project, ScanPolicy()
        )]
        assert "vendor/x.cpp" not in found
        assert "src/table.gen.hpp" not in found
        assert "src/worker.cpp" in found

    def test_nested_gitignore_and_negation(self, tmp_project: Path) -> None:
        (tmp_project / "src" / ".gitignore").write_text("*.hpp\n!keep.hpp\n")
        (tmp_project / "src" / "keep.hpp").write_text("int k;\n")
        (tmp_project / "worker.hpp").write_text("int w;\n")
        found = {p.relative_to(tmp_project).as_posix() for p in iter_project_files(
            tmp_project, ScanPolicy()
        )}
        assert "src/worker.hpp" not in found
        assert "src/keep.hpp" in found
        # rules only apply below the directory holding the .gitignore
        assert "worker.hpp" in found

    def test_gitignore_disabled(self, tmp_project: Path) -> None:
        (tmp_project / ".gitignore").write_text("src/\n")
        names = {p.name for p in iter_project_files(tmp_project, ScanPolicy(gitignore=False))}
        assert "worker.cpp" in names

    def test_symlinks_skipped(self, tmp_project: Path) -> None:
        link = tmp_project / "src" / "alias.cpp"
        try:
            link.symlink_to(tmp_project / "src" / "worker.cpp")
        except OSError:
            pytest.skip("symlinks not supported")
        found = {p.name for p in iter_project_files(tmp_project, ScanPolicy())}
        assert "alias.cpp" not in found


class TestScan:
    def test_records_files(
        self, conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        result = scan(conn, tmp_project, namespace)
        assert result.files_seen == 4
        assert result.warnings == []

        rows = _rows(conn, namespace)
        cpp = rows["src/worker.cpp"]
        data = (tmp_project / "src" / "worker.cpp").read_bytes()
        assert cpp["sha"] == hashlib.sha256(data).hexdigest()
        assert cpp["size"] == len(data)
        assert cpp["lang_guess"] == "cpp"
        assert cpp["doc_kind"] == "code"
        assert cpp["indexed_sha"] is None
        assert rows["CMakeLists.txt"]["doc_kind"] == "manifest"
        assert rows["tests/worker_test.cpp"]["doc_kind"] == "tests"
        assert result.bytes_seen == sum(r["size"] for r in rows.values())

    def test_rescan_is_idempotent(
        self, conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        scan(conn, tmp_project, namespace)
        before = {p: (r["id"], r["sha"]) for p, r in _rows(conn, namespace).items()}
        scan(conn, tmp_project, namespace)
        after = {p: (r["id"], r["sha"]) for p, r in _rows(conn, namespace).items()}
        assert before == after

    def test_rescan_keeps_indexed_sha(
        self, conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        scan(conn, tmp_project, namespace)
        conn.execute("UPDATE files SET indexed_sha = sha, indexed_at = 1")
        conn.commit()
        (tmp_project / "src" / "worker.cpp").write_text("int changed;\n")
        scan(conn, tmp_project, namespace)

        rows = _rows(conn, namespace)
        changed = rows["src/worker.cpp"]
        assert changed["indexed_sha"] is not None
        assert changed["indexed_sha"] != changed["sha"]
        unchanged = rows["src/worker.hpp"]
        assert unchanged["indexed_sha"] == unchanged["sha"]

    def test_ignored_file_not_recorded(
        self, conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        (tmp_project / ".gitignore").write_text("vendor/\n")
        (tmp_project / "vendor").mkdir()
        (tmp_project / "vendor" / "x.cpp").write_text("int x;\n")
        result = scan(conn, tmp_project, namespace)
        assert result.files_seen == 4
        assert "vendor/x.cpp" not in _rows(conn, namespace)

    def test_namespaces_are_separate(
        self, conn: sqlite3.Connection, tmp_project: Path
    ) -> None:
        scan(conn, tmp_project, "a@main")
        scan(conn, tmp_project, "b@main")
        assert len(_rows(conn, "a@main")) == 4
        assert len(_rows(conn, "b@main")) == 4

    def test_unreadable_file_skipped(
        self,
        conn: sqlite3.Connection,
        tmp_project: Path,
        namespace: str,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        import codefacts.catalog.scanner as scanner_mod

        real = scanner_mod.sha256_file

        def flaky(path: Path) -> str:
            if path.name == "worker.hpp":
                msg = "permission denied"
                raise PermissionError(msg)
            return real(path)

        monkeypatch.setattr(scanner_mod, "sha256_file", flaky)
        result = scan(conn, tmp_project, namespace)
        assert result.files_seen == 3
        assert len(result.warnings) == 1
        assert "src/worker.hpp" in result.warnings[0]
        assert "src/worker.hpp" not in _rows(conn, namespace)
