"""Shared test fixtures for codefacts."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from codefacts.indexing.tagger import TagRecord
from codefacts.infrastructure.db import db_path_for, open_db

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterator, Sequence
    from pathlib import Path

NAMESPACE = "proj@main"

WORKER_HPP = """\
#pragma once
#include <vector>

namespace app {

// Runs queued jobs.
// Not thread-safe.
class Worker {
public:
    void run();
    int pending() const;
private:
    std::vector<int> jobs_;
};

}  // namespace app
"""

WORKER_CPP = """\
#include "worker.hpp"

#ifdef APP_TRACE
#define TRACE(x) log(x)
#endif

static int helper(int x) {
    return x * 2;
}

/*
 * Drain every queued job.
 */
void app::Worker::run() {
    for (int j : jobs_) {
        helper(j);
        TRACE(j);
    }
    jobs_.clear();
}

int app::Worker::pending() const {
    return static_cast<int>(jobs_.size());
}
"""

WORKER_TEST_CPP = """\
#include "worker.hpp"

TEST(Worker, RunDrainsQueue) {
    app::Worker w;
    w.run();
    EXPECT_EQ(w.pending(), 0);
}
"""

CMAKELISTS = """\
cmake_minimum_required(VERSION 3.20)
project(app   CXX)
set(CMAKE_CXX_STANDARD 17)
add_library(app src/worker.cpp)
add_executable(app_tests tests/worker_test.cpp)
target_link_libraries(app_tests app GTest::gtest_main)
find_package(GTest REQUIRED)
"""

# Tagger output for the sample project, as universal-ctags would report it.
SAMPLE_TAGS: dict[str, list[TagRecord]] = {
    "src/worker.hpp": [
        TagRecord(name="app", path="src/worker.hpp", kind="namespace", line=4, end=16),
        TagRecord(
            name="Worker", path="src/worker.hpp", kind="class", line=8, end=14,
            scope="app", scope_kind="namespace",
        ),
        TagRecord(
            name="run", path="src/worker.hpp", kind="prototype", line=10,
            scope="app::Worker", scope_kind="class", signature="()",
        ),
        TagRecord(
            name="pending", path="src/worker.hpp", kind="prototype", line=11,
            scope="app::Worker", scope_kind="class", signature="() const",
        ),
        TagRecord(
            name="jobs_", path="src/worker.hpp", kind="member", line=13,
            scope="app::Worker", scope_kind="class",
        ),
    ],
    "src/worker.cpp": [
        TagRecord(name="TRACE", path="src/worker.cpp", kind="macro", line=4),
        TagRecord(
            name="helper", path="src/worker.cpp", kind="function", line=7, end=9,
            signature="(int x)",
        ),
        TagRecord(
            name="run", path="src/worker.cpp", kind="function", line=14, end=20,
            scope="app::Worker", scope_kind="class", signature="()",
        ),
        TagRecord(
            name="pending", path="src/worker.cpp", kind="function", line=22, end=24,
            scope="app::Worker", scope_kind="class", signature="() const",
        ),
    ],
    "tests/worker_test.cpp": [
        TagRecord(name="TEST", path="tests/worker_test.cpp", kind="function", line=3, end=7),
    ],
}


class FakeTagger:
    """Tagger stand-in returning canned records and remembering each call."""

    def __init__(self, tags: dict[str, list[TagRecord]] | None = None) -> None:
        self.tags = dict(SAMPLE_TAGS if tags is None else tags)
        self.calls: list[list[str]] = []

    def __call__(self, project_root: Path, paths: Sequence[str]) -> list[TagRecord]:
        self.calls.append(list(paths))
        out: list[TagRecord] = []
        for path in paths:
            out.extend(self.tags.get(path, []))
        return out


def write_sample_project(root: Path) -> Path:
    """Write the sample C++ project under *root* and return it."""
    (root / "src").mkdir(parents=True, exist_ok=True)
    (root / "tests").mkdir(exist_ok=True)
    (root / "src" / "worker.hpp").write_text(WORKER_HPP)
    (root / "src" / "worker.cpp").write_text(WORKER_CPP)
    (root / "tests" / "worker_test.cpp").write_text(WORKER_TEST_CPP)
    (root / "CMakeLists.txt").write_text(CMAKELISTS)
    return root


@pytest.fixture()
def tmp_project(tmp_path: Path) -> Path:
    """Create the sample project structure for testing."""
    return write_sample_project(tmp_path / "proj")


@pytest.fixture()
def conn(tmp_project: Path) -> Iterator[sqlite3.Connection]:
    """Open (and create) the index database of the sample project."""
    c = open_db(db_path_for(tmp_project))
    yield c
    c.close()


@pytest.fixture()
def fake_tagger() -> FakeTagger:
    return FakeTagger()


@pytest.fixture()
def indexed_conn(
    tmp_project: Path, conn: sqlite3.Connection, fake_tagger: FakeTagger
) -> sqlite3.Connection:
    """Index database with the sample project scanned and indexed."""
    from codefacts.catalog.scanner import scan
    from codefacts.indexing.ingest import index

    scan(conn, tmp_project, NAMESPACE)
    index(conn, tmp_project, NAMESPACE, tagger=fake_tagger)
    return conn


@pytest.fixture()
def namespace() -> str:
    return NAMESPACE


@pytest.fixture()
def tagger_factory() -> type[FakeTagger]:
    """``FakeTagger`` class, for tests that need custom canned records."""
    return FakeTagger
