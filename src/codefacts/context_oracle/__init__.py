"""Context oracle: target resolution, fact sections, search and project summary."""

from codefacts.context_oracle.assembler import ContextBundle, assemble
from codefacts.context_oracle.facts import render_facts
from codefacts.context_oracle.resolver import Target, resolve
from codefacts.context_oracle.search import find_chunks_containing, search_chunks
from codefacts.context_oracle.summary import ProjectSummary, summarize

__all__ = [
    "ContextBundle",
    "ProjectSummary",
    "Target",
    "assemble",
    "find_chunks_containing",
    "render_facts",
    "resolve",
    "search_chunks",
    "summarize",
]
