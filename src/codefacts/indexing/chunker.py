"""Chunk boundary derivation from sorted tag records."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from codefacts.indexing.tagger import TagRecord

# Tagger kind → chunk kind. Kinds not listed become "block".
CHUNK_KIND_BY_TAG_KIND: dict[str, str] = {
    "function": "function",
    "prototype": "function",
    "member": "function",
    "class": "class",
    "struct": "class",
    "namespace": "namespace",
    "enum": "enum",
    "union": "union",
    "typedef": "typedef",
}

FALLBACK_CHUNK_KIND = "block"


@dataclass(frozen=True)
class ChunkBounds:
    """Line bounds and classification of one chunk, before its text is sliced."""

    kind: str
    symbol: str
    begin_line: int
    end_line: int


def normalize_kind(tag_kind: str) -> str:
    """Map a tagger kind onto the chunk kind vocabulary."""
    return CHUNK_KIND_BY_TAG_KIND.get(tag_kind, FALLBACK_CHUNK_KIND)


def sort_tags(tags: Sequence[TagRecord]) -> list[TagRecord]:
    """Order one file's tags by line; ties keep tagger order."""
    return sorted(tags, key=lambda t: t.line or 0)


def build_chunks(tags: Sequence[TagRecord], total_lines: int) -> list[ChunkBounds]:
    """Derive one chunk per tag of a single file.

    *tags* must already be sorted by line. A tag without a declared end
    runs up to the line before the next tag, but never ends before it begins,
    or to the end of the file for the last tag. Malformed ranges
    (``begin <= 0`` or a declared ``end < begin``) are dropped.
    """
    chunks: list[ChunkBounds] = []
    for i, tag in enumerate(tags):
        begin = tag.line or 0
        if tag.end is not None:
            end = tag.end
        elif i + 1 < len(tags):
            # a tag sharing its line with the next one, e.g. typedef struct {...} X;
            end = max((tags[i + 1].line or 0) - 1, begin)
        else:
            end = total_lines

        if begin <= 0 or end < begin:
            continue

        chunks.append(ChunkBounds(
            kind=normalize_kind(tag.kind),
            symbol=tag.fqn,
            begin_line=begin,
            end_line=end,
        ))
    return chunks
