"""External tagger: run universal-ctags (or a compatible tool) and parse its NDJSON."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from codefacts.errors import TaggerError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TAGGER_COMMAND: tuple[str, ...] = (
    "ctags",
    "-n",
    "--output-format=json",
    "--languages=C,C++",
    "--fields=+KlnSmt",
    "--extras=+F",
    "--sort=no",
    "-L",
    "-",
    "-f",
    "-",
)

# Tag kinds retained for chunking; everything else the tagger emits is dropped.
TAG_KINDS = frozenset({
    "function",
    "class",
    "struct",
    "namespace",
    "prototype",
    "member",
    "enum",
    "union",
    "typedef",
})


@dataclass(frozen=True)
class TagRecord:
    """One symbol record emitted by the tagger.

    ``name`` and ``path`` are always present; every other field is
    optional because taggers omit what they cannot determine.
    """

    name: str
    path: str
    kind: str = ""
    language: str | None = None
    line: int | None = None
    end: int | None = None
    scope: str | None = None
    scope_kind: str | None = None
    signature: str | None = None
    typeref: str | None = None

    @property
    def fqn(self) -> str:
        """Scope-qualified name (``scope::name``), or the bare name when unscoped."""
        if self.scope:
            return f"{self.scope}::{self.name}"
        return self.name


def _opt_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    return value if isinstance(value, str) and value else None


def _opt_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def parse_tag_line(line: str | bytes) -> TagRecord | None:
    """Parse one NDJSON line into a :class:`TagRecord`.

    Returns ``None`` for blank lines, non-JSON, pseudo-tags (``_type:
    ptag``) and records lacking a string ``name`` or ``path``.
    """
    if not line.strip():
        return None
    try:
        raw = json.loads(line)
    except ValueError:
        return None
    if not isinstance(raw, dict) or raw.get("_type") == "ptag":
        return None
    name = raw.get("name")
    path = raw.get("path")
    if not isinstance(name, str) or not isinstance(path, str) or not name or not path:
        return None
    kind = raw.get("kind")
    return TagRecord(
        name=name,
        path=path,
        kind=kind if isinstance(kind, str) else "",
        language=_opt_str(raw, "language"),
        line=_opt_int(raw, "line"),
        end=_opt_int(raw, "end"),
        scope=_opt_str(raw, "scope"),
        scope_kind=_opt_str(raw, "scopeKind"),
        signature=_opt_str(raw, "signature"),
        typeref=_opt_str(raw, "typeref"),
    )


def parse_tag_output(lines: Iterable[str | bytes]) -> list[TagRecord]:
    """Parse tagger output, silently skipping lines that are not tag records."""
    records: list[TagRecord] = []
    skipped = 0
    for line in lines:
        record = parse_tag_line(line)
        if record is None:
            if line.strip():
                skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.debug("Skipped %d unparseable tagger lines", skipped)
    return records


def run_tagger(
    project_root: Path,
    paths: Sequence[str],
    *,
    command: Sequence[str] = DEFAULT_TAGGER_COMMAND,
) -> list[TagRecord]:
    """Run the tagger once over *paths* (relative to *project_root*).

    Paths go to stdin one per line; the process runs from the project root
    so the paths it reports match the ``files`` table.

    Raises
    ------
    TaggerError
        If the executable cannot be started or exits non-zero.
    """
    stdin = "".join(f"{p}\n" for p in paths).encode("utf-8")
    logger.debug("Running tagger %s on %d files", command[0], len(paths))
    try:
        proc = subprocess.run(  # noqa: S603
            list(command),
            input=stdin,
            cwd=project_root,
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        msg = f"cannot run tagger {command[0]!r}: {exc}"
        raise TaggerError(msg) from exc

    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        msg = f"tagger {command[0]!r} exited with status {proc.returncode}"
        if stderr:
            msg = f"{msg}: {stderr}"
        raise TaggerError(msg)

    return parse_tag_output(proc.stdout.splitlines())


def make_tagger(command: Sequence[str]) -> Callable[[Path, Sequence[str]], list[TagRecord]]:
    """Bind *command* into a tagger callable for :func:`codefacts.indexing.ingest.index`."""
    bound = tuple(command)

    def _tagger(project_root: Path, paths: Sequence[str]) -> list[TagRecord]:
        return run_tagger(project_root, paths, command=bound)

    return _tagger
