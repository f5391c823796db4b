"""Fact sheet rendering: the sectioned text handed to the generation model."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codefacts.context_oracle.assembler import ContextBundle
    from codefacts.context_oracle.resolver import Target

EXPLAIN_SYSTEM_PROMPT = (
    "You are a senior C/C++ reviewer. Explain strictly from the facts given, "
    "briefly and with structure. Do not invent anything.\n"
    "Answer structure: Purpose; How it works; Inputs/outputs and invariants; "
    "Errors/exceptions; Threads/memory/reentrancy; Complexity/performance; "
    "Usage examples; Risks/edge cases."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a technical reviewer of C/C++ projects. Be brief and structured. "
    "Rely only on the [BUILD]/[ENTRYPOINTS]/[STRUCTURE]/[TODOs] sections provided. "
    "Output: 1) short description; 2) build (list); 3) modules and responsibilities; "
    "4) external dependencies and why; 5) tests/infrastructure; "
    "6) risks/technical debt (list)."
)

_ASK = (
    "Give an overview following the structure from the system message. "
    "If data is insufficient, explicitly mark the matching section as \"not found\"."
)


def render_facts(target: Target, bundle: ContextBundle) -> str:
    """Render *target* and its sections in the fixed fact sheet layout."""
    return "\n".join([
        "[TARGET]",
        f"name: {target.display_name}",
        f"file: {target.path}:{target.begin_line}-{target.end_line}",
        f"kind: {target.kind}",
        f"signature: {target.signature or ''}",
        "",
        "[DECL/DEF]",
        bundle.decl_def.rstrip("\n"),
        "",
        "[CLASS/TYPE]",
        bundle.class_type.rstrip("\n"),
        "",
        "[PREPROCESSOR]",
        bundle.preprocessor,
        "",
        "[CALLEES]",
        bundle.callees,
        "",
        "[USAGE]",
        bundle.usage,
        "",
        "[COMMENTS]",
        bundle.comments,
        "",
        "[ASK]",
        _ASK,
    ])


AUTO_LANG = "auto"

# Language codes accepted for ``lang``; any other value is used as the language name.
LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "ru": "Russian",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
    "it": "Italian",
    "pt": "Portuguese",
    "uk": "Ukrainian",
    "zh": "Chinese",
    "ja": "Japanese",
}


def with_language(system_prompt: str, lang: str) -> str:
    """Append an answer-language instruction to *system_prompt*.

    ``auto`` (or an empty value) leaves the prompt as is, so the model picks
    the language of the question.
    """
    lang = lang.strip()
    if not lang or lang.lower() == AUTO_LANG:
        return system_prompt
    name = LANGUAGE_NAMES.get(lang.lower(), lang)
    return f"{system_prompt}\nAnswer in {name}."
