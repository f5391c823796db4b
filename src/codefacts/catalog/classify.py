"""Path heuristics: language guess by extension and document-kind classification."""

from __future__ import annotations

# Extension → language. Anything not listed is "other".
_LANG_BY_SUFFIX: dict[str, str] = {
    ".rs": "rust",
    ".py": "python",
    ".ts": "ts",
    ".tsx": "ts",
    ".js": "js",
    ".jsx": "js",
    ".lua": "lua",
    ".c": "c",
    ".h": "cpp",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".hh": "cpp",
    ".hpp": "cpp",
    ".inl": "cpp",
    ".ipp": "cpp",
}

_MANIFEST_NAMES = frozenset({
    "cmakelists.txt",
    "makefile",
    "meson.build",
    "vcpkg.json",
    "compile_commands.json",
})

DOC_KINDS = ("docs", "manifest", "tests", "code")


def guess_lang(rel_path: str) -> str:
    """Guess the source language of *rel_path* from its extension."""
    lowered = rel_path.lower()
    dot = lowered.rfind(".")
    slash = lowered.rfind("/")
    if dot <= slash:
        return "other"
    return _LANG_BY_SUFFIX.get(lowered[dot:], "other")


def classify_doc(rel_path: str) -> str:
    """Classify *rel_path* as ``docs``, ``manifest``, ``tests`` or ``code``.

    Checked in that order; the first matching heuristic wins.
    """
    lowered = rel_path.lower()
    name = lowered.rsplit("/", 1)[-1]

    if lowered.endswith(".md") or lowered.startswith("docs/"):
        return "docs"
    if name in _MANIFEST_NAMES or name.endswith(".cmake") or name.startswith("conanfile."):
        return "manifest"
    if (
        lowered.startswith(("test/", "tests/"))
        or "/test/" in lowered
        or "/tests/" in lowered
        or name.endswith(("_test.c", "_test.cc", "_test.cpp"))
    ):
        return "tests"
    return "code"


def is_header(rel_path: str) -> bool:
    """Return True for header-like paths (preferred when locating type declarations)."""
    return rel_path.lower().endswith((".h", ".hh", ".hpp", ".hxx", ".inl", ".ipp"))
