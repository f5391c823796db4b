"""Indexing: sanitized text, tagger records, chunk derivation and ingestion."""

from codefacts.indexing.chunker import ChunkBounds, build_chunks
from codefacts.indexing.ingest import IndexResult, index, pending_files
from codefacts.indexing.tagger import TagRecord, make_tagger, parse_tag_line, run_tagger
from codefacts.indexing.text import sanitize_bytes, slice_lines

__all__ = [
    "ChunkBounds",
    "IndexResult",
    "TagRecord",
    "build_chunks",
    "index",
    "make_tagger",
    "parse_tag_line",
    "pending_files",
    "run_tagger",
    "sanitize_bytes",
    "slice_lines",
]
