"""Byte sanitizing and 1-based line slicing shared by the indexer and context builder."""

from __future__ import annotations

import hashlib
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

# Replacement for one run of undecodable bytes, whatever its length.
PLACEHOLDER = "???"

# surrogateescape maps every undecodable byte to a lone surrogate in this range.
_INVALID_RUN_RE = re.compile("[\udc80-\udcff]+")


def sanitize_bytes(data: bytes) -> str:
    """Decode *data* as UTF-8, collapsing each run of invalid bytes into ``???``.

    Valid input is returned unchanged, so sanitizing never fails.
    """
    text = data.decode("utf-8", errors="surrogateescape")
    return _INVALID_RUN_RE.sub(PLACEHOLDER, text)


def read_text_sanitized(path: Path) -> str:
    """Read a file and return its sanitized text.

    Raises ``OSError`` if the file cannot be read.
    """
    return sanitize_bytes(path.read_bytes())


def split_lines(text: str) -> list[str]:
    r"""Split *text* into lines on ``\n``, dropping a trailing ``\r`` per line.

    A trailing newline does not produce an extra empty line. Other Unicode
    line separators are kept as ordinary characters so line numbers agree
    with the tagger's.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def count_lines(text: str) -> int:
    """Return the number of lines in *text* (at least 1)."""
    return max(len(split_lines(text)), 1)


def slice_lines(text: str, begin: int, end: int) -> str:
    """Return lines ``[begin, end]`` (1-based, inclusive), each ending in ``\\n``.

    Out-of-range bounds are clipped; an empty range yields ``""``.
    """
    lines = split_lines(text)
    start = max(begin, 1) - 1
    if end < begin or start >= len(lines):
        return ""
    return "".join(f"{line}\n" for line in lines[start:max(end, 0)])


def sha256_text(text: str) -> str:
    """Hex SHA-256 of *text* encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
