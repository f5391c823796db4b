"""SQLite database layer: connection management, schema, versioning."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from codefacts.errors import StoreError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# Schema version stored in PRAGMA user_version; increment on breaking changes.
SCHEMA_VERSION = 1

# Store location relative to the project root.
STATE_DIR = ".codefacts"
DB_FILENAME = "index.sqlite"

_SCHEMA_V1_SQL = """\
-- Files discovered by scan
CREATE TABLE IF NOT EXISTS files (
    id          INTEGER PRIMARY KEY,
    namespace   TEXT NOT NULL,
    path        TEXT NOT NULL,
    size        INTEGER,
    mtime       INTEGER,
    sha         TEXT,
    lang_guess  TEXT,
    doc_kind    TEXT,
    seen_at     INTEGER,
    indexed_sha TEXT,
    indexed_at  INTEGER,
    UNIQUE(namespace, path)
);

-- Raw tagger records
CREATE TABLE IF NOT EXISTS tags (
    id          INTEGER PRIMARY KEY,
    file_id     INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    kind        TEXT NOT NULL,
    line        INTEGER,
    scope       TEXT,
    scope_kind  TEXT,
    signature   TEXT,
    lang        TEXT,
    end_line    INTEGER
);

-- Line-bounded chunks derived from tags
CREATE TABLE IF NOT EXISTS chunks (
    id          INTEGER PRIMARY KEY,
    file_id     INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    kind        TEXT NOT NULL,
    symbol      TEXT,
    begin_line  INTEGER NOT NULL,
    end_line    INTEGER NOT NULL,
    sha         TEXT,
    mtime       INTEGER,
    text        TEXT NOT NULL,
    CHECK(begin_line <= end_line)
);

-- Full-text shadow index over chunk text
CREATE VIRTUAL TABLE IF NOT EXISTS fts_chunks
    USING fts5(text, content='chunks', content_rowid='id');

-- Keep fts_chunks in lock step with chunks
CREATE TRIGGER IF NOT EXISTS chunks_ai AFTER INSERT ON chunks BEGIN
    INSERT INTO fts_chunks(rowid, text) VALUES (new.id, new.text);
END;
CREATE TRIGGER IF NOT EXISTS chunks_ad AFTER DELETE ON chunks BEGIN
    INSERT INTO fts_chunks(fts_chunks, rowid, text) VALUES ('delete', old.id, old.text);
END;
CREATE TRIGGER IF NOT EXISTS chunks_au AFTER UPDATE OF text ON chunks BEGIN
    INSERT INTO fts_chunks(fts_chunks, rowid, text) VALUES ('delete', old.id, old.text);
    INSERT INTO fts_chunks(rowid, text) VALUES (new.id, new.text);
END;

-- Indexes
CREATE INDEX IF NOT EXISTS idx_files_ns_path ON files(namespace, path);
CREATE INDEX IF NOT EXISTS idx_tags_file_line ON tags(file_id, line);
CREATE INDEX IF NOT EXISTS idx_tags_name ON tags(name);
CREATE INDEX IF NOT EXISTS idx_chunks_file_begin ON chunks(file_id, begin_line);
"""


def db_path_for(project_root: Path) -> Path:
    """Return the index database location for *project_root*."""
    return project_root / STATE_DIR / DB_FILENAME


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the index database and make sure its schema is current.

    Sets WAL journal mode (persistent per-file, lets readers run while a
    single writer reindexes) and enables foreign keys (per-connection,
    required on every open).

    Returns a connection with ``sqlite3.Row`` row factory.

    Raises
    ------
    StoreError
        If the file cannot be opened or carries a newer schema version.
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))
    except (OSError, sqlite3.Error) as exc:
        msg = f"cannot open index database {db_path}: {exc}"
        raise StoreError(msg) from exc

    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        ensure_schema(conn)
    except sqlite3.Error as exc:
        conn.close()
        msg = f"cannot initialise index database {db_path}: {exc}"
        raise StoreError(msg) from exc
    except StoreError:
        conn.close()
        raise
    return conn


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the schema version from ``PRAGMA user_version``."""
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0])


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the schema on first open; refuse databases from the future.

    Safe to call multiple times.
    """
    version = get_schema_version(conn)
    if version > SCHEMA_VERSION:
        msg = (
            f"index schema version {version} is newer than supported "
            f"version {SCHEMA_VERSION}; upgrade codefacts"
        )
        raise StoreError(msg)
    if version == 0:
        logger.debug("Creating index schema v%d", SCHEMA_VERSION)
        conn.executescript(_SCHEMA_V1_SQL)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.commit()
