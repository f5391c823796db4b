"""Exception hierarchy shared by the index, resolver and CLI."""

from __future__ import annotations


class CodefactsError(Exception):
    """Base class for all codefacts errors."""


class StoreError(CodefactsError):
    """Raised when the index database cannot be opened or initialised."""


class TaggerError(CodefactsError):
    """Raised when the external tagger is missing or exits non-zero."""


class TargetNotFoundError(CodefactsError, LookupError):
    """Raised when a requested symbol or file is not in the index."""


class RangeParseError(CodefactsError, ValueError):
    """Raised for a malformed ``A:B`` line-range argument."""


class ConfigError(CodefactsError, ValueError):
    """Raised when a configuration file is unreadable or invalid."""
