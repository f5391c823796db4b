"""File catalog: project walk, fingerprints and path classification."""

from codefacts.catalog.classify import classify_doc, guess_lang, is_header
from codefacts.catalog.scanner import ScanPolicy, ScanResult, scan

__all__ = [
    "ScanPolicy",
    "ScanResult",
    "classify_doc",
    "guess_lang",
    "is_header",
    "scan",
]
