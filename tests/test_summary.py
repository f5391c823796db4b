"""Tests for codefacts.context_oracle.summary — project-level facts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from codefacts.catalog.scanner import scan
from codefacts.context_oracle.summary import (
    ProjectSummary,
    collect_build_facts,
    collect_entry_points,
    collect_structure,
    collect_todos,
    short_dir,
    summarize,
)
from codefacts.indexing.ingest import index
from codefacts.indexing.tagger import TagRecord

if TYPE_CHECKING:
    import sqlite3
    from pathlib import Path

    from conftest import FakeTagger


class TestShortDir:
    def test_deep(self) -> None:
        assert short_dir("a/b/c/d.cpp") == "b/c"

    def test_shallow(self) -> None:
        assert short_dir("src/a.cpp") == "src"

    def test_root(self) -> None:
        assert short_dir("main.cpp") == "."


class TestBuildFacts:
    def test_signal_directives(
        self, indexed_conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        lines = collect_build_facts(indexed_conn, tmp_project, namespace).splitlines()
        assert lines == [
            "CMakeLists.txt: project(app CXX)",
            "CMakeLists.txt: set(CMAKE_CXX_STANDARD 17)",
            "CMakeLists.txt: add_library(app src/worker.cpp)",
            "CMakeLists.txt: add_executable(app_tests tests/worker_test.cpp)",
            "CMakeLists.txt: target_link_libraries(app_tests app GTest::gtest_main)",
            "CMakeLists.txt: find_package(GTest REQUIRED)",
        ]

    def test_limit(
        self, indexed_conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        assert len(collect_build_facts(indexed_conn, tmp_project, namespace, 2).splitlines()) == 2

    def test_duplicates_collapsed(
        self, conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        (tmp_project / "CMakeLists.txt").write_text("project(a)\nproject(a)\n  project( a)\n")
        scan(conn, tmp_project, namespace)
        assert collect_build_facts(conn, tmp_project, namespace).splitlines() == [
            "CMakeLists.txt: project(a)",
            "CMakeLists.txt: project( a)",
        ]

    def test_no_cmake(
        self, conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        (tmp_project / "CMakeLists.txt").unlink()
        scan(conn, tmp_project, namespace)
        assert collect_build_facts(conn, tmp_project, namespace) == (
            "— no CMake build directives found"
        )


class TestEntryPoints:
    def test_test_markers(self, indexed_conn: sqlite3.Connection, namespace: str) -> None:
        assert collect_entry_points(indexed_conn, namespace) == (
            "tests: ~1 chunks with test markers (gtest/catch2)"
        )

    def test_main_listed(
        self,
        conn: sqlite3.Connection,
        tmp_project: Path,
        namespace: str,
        tagger_factory: type[FakeTagger],
    ) -> None:
        (tmp_project / "main.cpp").write_text("int main() {\n    return 0;\n}\n")
        tagger = tagger_factory({
            "main.cpp": [TagRecord(name="main", path="main.cpp", kind="function", line=1, end=3)],
        })
        scan(conn, tmp_project, namespace)
        index(conn, tmp_project, namespace, tagger=tagger)
        assert collect_entry_points(conn, namespace) == "main: main.cpp:1"

    def test_nothing(self, conn: sqlite3.Connection, namespace: str) -> None:
        assert collect_entry_points(conn, namespace) == "— no main() found"


class TestStructure:
    def test_per_directory(self, indexed_conn: sqlite3.Connection, namespace: str) -> None:
        assert collect_structure(indexed_conn, namespace).splitlines() == [
            "src: classes=1, funcs=6, namespaces=1",
            "tests: classes=0, funcs=1, namespaces=0",
        ]

    def test_top(self, indexed_conn: sqlite3.Connection, namespace: str) -> None:
        assert collect_structure(indexed_conn, namespace, top=1).startswith("src:")

    def test_empty(self, conn: sqlite3.Connection, namespace: str) -> None:
        assert collect_structure(conn, namespace) == "— no tags (run index)"


class TestTodos:
    def test_none(self, indexed_conn: sqlite3.Connection, namespace: str) -> None:
        assert collect_todos(indexed_conn, namespace) == "— no TODO/FIXME/HACK found"

    def test_found(
        self,
        indexed_conn: sqlite3.Connection,
        tmp_project: Path,
        namespace: str,
        fake_tagger: FakeTagger,
    ) -> None:
        cpp = tmp_project / "src" / "worker.cpp"
        cpp.write_text(cpp.read_text().replace("return x * 2;", "return x * 2;  // FIXME"))
        scan(indexed_conn, tmp_project, namespace)
        index(indexed_conn, tmp_project, namespace, tagger=fake_tagger)
        assert collect_todos(indexed_conn, namespace) == "src/worker.cpp:7"


class TestSummarize:
    def test_render_sections(
        self, indexed_conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        summary = summarize(indexed_conn, tmp_project, namespace)
        assert isinstance(summary, ProjectSummary)
        text = summary.render()
        headers = [line for line in text.splitlines() if line.startswith("[")]
        assert headers == ["[BUILD]", "[ENTRYPOINTS]", "[STRUCTURE]", "[TODOs]"]
        assert "find_package(GTest REQUIRED)" in text

    def test_build_limit(
        self, indexed_conn: sqlite3.Connection, tmp_project: Path, namespace: str
    ) -> None:
        summary = summarize(indexed_conn, tmp_project, namespace, build_limit=1)
        assert summary.build == "CMakeLists.txt: project(app CXX)"
